"""Canonical API error envelope helpers."""

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse

from trustgate.core.logging import request_context


def http_status_to_code(status_code: int) -> str:
    """Map HTTP status to a generic error code."""
    return f"E{status_code}0"


def current_request_id() -> str | None:
    ctx = request_context.get()
    return ctx.get("request_id") if ctx else None


def build_error_envelope(
    *,
    code: str,
    message: str,
    request_id: str | None,
    detail: str | None = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the error payload shared by handlers and middleware."""
    payload: dict[str, Any] = {
        "detail": detail if detail is not None else message,
        "error": {
            "code": code,
            "message": message,
            "request_id": request_id,
        },
    }
    if extra:
        payload.update(extra)
    return payload


def error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    headers: dict[str, str] | None = None,
    extra: dict[str, Any] | None = None,
) -> JSONResponse:
    """Render an error envelope as a JSON response."""
    return JSONResponse(
        status_code=status_code,
        content=build_error_envelope(
            code=code,
            message=message,
            request_id=current_request_id(),
            extra=extra,
        ),
        headers=headers,
    )
