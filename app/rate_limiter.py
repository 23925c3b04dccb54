# app/rate_limiter.py
"""
In-memory login throttle.

Uses token bucket algorithm:
- Each (client IP, email) pair gets a bucket with burst_size capacity
- Tokens refill at requests_per_minute / 60 per second
- Each login attempt consumes 1 token
- When the bucket is empty, the attempt is rejected with 429

State is per process; run one instance or accept per-instance limits.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

_logger = logging.getLogger(__name__)

# Buckets untouched for this long are dropped
STALE_BUCKET_SECONDS = 300.0


@dataclass
class TokenBucket:
    """Token bucket for a single client."""
    tokens: float
    last_refill: float
    max_tokens: float
    refill_rate: float  # tokens per second

    def consume(self, now: float) -> Tuple[bool, float]:
        """
        Try to consume a token.

        Returns:
            (allowed, retry_after_seconds)
        """
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True, 0.0

        tokens_needed = 1.0 - self.tokens
        return False, tokens_needed / self.refill_rate


@dataclass
class RateLimiter:
    """
    Token bucket limiter keyed by an arbitrary string.

    Attributes:
        requests_per_minute: Sustained attempt rate
        burst_size: Bucket capacity
        clock: Callable returning current time (for testing)
    """
    requests_per_minute: int = 5
    burst_size: int = 5
    clock: Callable[[], float] = field(default=time.time)
    _buckets: Dict[str, TokenBucket] = field(default_factory=dict)
    _lock: Lock = field(default_factory=Lock)
    _cleanup_interval: float = 60.0
    _last_cleanup: float = field(default=0.0)

    def __post_init__(self):
        self._refill_rate = self.requests_per_minute / 60.0
        self._last_cleanup = self.clock()

    def check(self, key: str) -> Tuple[bool, float]:
        """
        Check whether an attempt for `key` is allowed.

        Returns:
            (allowed, retry_after_seconds)
        """
        now = self.clock()

        with self._lock:
            if now - self._last_cleanup > self._cleanup_interval:
                self._cleanup_stale_buckets(now)
                self._last_cleanup = now

            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucket(
                    tokens=self.burst_size,
                    last_refill=now,
                    max_tokens=self.burst_size,
                    refill_rate=self._refill_rate,
                )
                self._buckets[key] = bucket

            allowed, retry_after = bucket.consume(now)

        if not allowed:
            _logger.warning(f"Login throttled for {key} (retry after {retry_after:.1f}s)")
        return allowed, retry_after

    def _cleanup_stale_buckets(self, now: float) -> None:
        stale_keys = [
            key for key, bucket in self._buckets.items()
            if now - bucket.last_refill > STALE_BUCKET_SECONDS
        ]
        for key in stale_keys:
            del self._buckets[key]

    def reset(self) -> None:
        """Reset all buckets (for testing)."""
        with self._lock:
            self._buckets.clear()


class DisabledRateLimiter:
    """A limiter that always allows attempts (LOGIN_RATE_LIMIT_PER_MINUTE=0)."""

    def check(self, key: str) -> Tuple[bool, float]:
        return True, 0.0

    def reset(self) -> None:
        pass


def build_login_limiter(requests_per_minute: int, burst_size: int):
    """Create the login limiter for the configured rate."""
    if requests_per_minute <= 0:
        _logger.warning("Login throttling disabled")
        return DisabledRateLimiter()
    return RateLimiter(requests_per_minute=requests_per_minute, burst_size=burst_size)


def throttle_key(client_ip: str, email: Optional[str]) -> str:
    return f"{client_ip}|{(email or '').strip().lower()}"


def get_client_ip(request) -> str:
    """
    Extract client IP from request, respecting X-Forwarded-For.

    Only the first IP in X-Forwarded-For is used.
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_ip = forwarded_for.split(",")[0].strip()
        if first_ip:
            return first_ip

    if request.client and request.client.host:
        return request.client.host

    return "unknown"
