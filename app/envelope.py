# app/envelope.py
"""
Uniform response envelope.

Every response body has the shape
    {"success": bool, "status": int, "message": str, "data"?: object}
so clients branch only on `success` / `status`.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from fastapi.responses import JSONResponse


def envelope(status: int, message: str, data: Optional[Any] = None) -> Dict[str, Any]:
    """Build an envelope dict; `success` follows the status code."""
    body: Dict[str, Any] = {
        "success": 200 <= status < 300,
        "status": status,
        "message": message,
    }
    if data is not None:
        body["data"] = data
    return body


def envelope_response(
    status: int,
    message: str,
    data: Optional[Any] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=envelope(status, message, data),
        headers=dict(headers) if headers else None,
    )
