# app/tests/test_correlation.py
"""
Tests for correlation ID middleware and logging safety.

These tests verify:
1. Client-provided X-Request-Id is echoed in response
2. Missing or invalid X-Request-Id generates a new one
3. Log records are stamped with the current request ID
4. Passwords and tokens never reach the logs
"""
import logging

import pytest

from app.correlation import (
    RequestIdLogFilter,
    _request_id,
    current_request_id,
    validate_request_id,
)


class TestValidateRequestId:
    """Tests for request ID validation."""

    def test_valid_uuid(self):
        request_id = "550e8400-e29b-41d4-a716-446655440000"
        assert validate_request_id(request_id) == request_id

    def test_valid_alphanumeric(self):
        request_id = "abc123-DEF_456"
        assert validate_request_id(request_id) == request_id

    def test_empty_and_none_rejected(self):
        assert validate_request_id("") is None
        assert validate_request_id(None) is None

    def test_too_long_rejected(self):
        """IDs longer than 64 chars are rejected."""
        assert validate_request_id("a" * 65) is None
        assert validate_request_id("a" * 64) == "a" * 64

    def test_special_chars_rejected(self):
        assert validate_request_id("abc@123") is None
        assert validate_request_id("abc 123") is None
        assert validate_request_id("abc/123") is None
        assert validate_request_id("abc;123") is None


class TestRequestIdLogFilter:
    """Tests for stamping log records."""

    def _record(self):
        return logging.LogRecord("test", logging.INFO, __file__, 1, "message", None, None)

    def test_default_placeholder(self):
        record = self._record()
        assert RequestIdLogFilter().filter(record) is True
        assert record.request_id == "-"

    def test_uses_current_request_id(self):
        token = _request_id.set("req-123")
        try:
            record = self._record()
            RequestIdLogFilter().filter(record)
            assert record.request_id == "req-123"
            assert current_request_id() == "req-123"
        finally:
            _request_id.reset(token)

        assert current_request_id() == "-"


class TestCorrelationIdIntegration:
    """Integration tests for correlation ID with FastAPI."""

    @pytest.fixture
    def client(self, make_client):
        return make_client()

    def test_client_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-Id": "my-custom-request-id-123"})
        assert response.headers.get("X-Request-Id") == "my-custom-request-id-123"

    def test_missing_request_id_generated(self, client):
        response = client.get("/health")
        request_id = response.headers.get("X-Request-Id")
        assert request_id is not None
        assert len(request_id.split("-")) == 5

    def test_invalid_request_id_replaced(self, client):
        invalid_request_id = "invalid@id!with#special"
        response = client.get("/health", headers={"X-Request-Id": invalid_request_id})

        returned_id = response.headers.get("X-Request-Id")
        assert returned_id != invalid_request_id
        assert len(returned_id.split("-")) == 5

    def test_error_responses_get_request_id(self, client):
        response = client.get("/user", headers={"X-Request-Id": "error-test-id-789"})

        assert response.status_code == 401
        assert response.headers.get("X-Request-Id") == "error-test-id-789"


class TestLoggingSafety:
    """Credentials must never be logged."""

    def test_passwords_and_tokens_not_logged(self, make_client, caplog):
        client = make_client()
        password = "Secret1Pass!"

        with caplog.at_level(logging.INFO):
            registered = client.post("/auth/register", json={
                "name": "Jane Doe",
                "email": "jane@example.com",
                "password": password,
                "c_password": password,
            })
            token = registered.json()["data"]["access_token"]["token"]
            client.post("/auth/login", json={"email": "jane@example.com", "password": "Wrong1Pass!"})
            client.get("/user", headers={"Authorization": f"Bearer {token}"})

        assert caplog.records
        for record in caplog.records:
            message = record.getMessage()
            assert password not in message
            assert "Wrong1Pass!" not in message
            assert token not in message

    def test_failed_login_logged(self, make_client, caplog):
        client = make_client()

        with caplog.at_level(logging.WARNING, logger="auth.service"):
            client.post("/auth/login", json={"email": "nobody@example.com", "password": "Wrong1Pass!"})

        assert any("non-existent user" in record.getMessage() for record in caplog.records)
