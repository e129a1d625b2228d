"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Exceptions carrying the call-surface error codes
      (BAD_ARGS, NO_PERMISSION, SEND_FAIL)
    • Consistent JSON error response format
    • Automatic logging of unhandled errors
    • Request context in error responses (non-production)

The SMS core never lets these escape to its caller: it returns a
SendResult. The HTTP layer raises them from an error result via
``error_for_code`` and the handlers below render the envelope.

Usage:
    from backend.app.core.errors import (
        SmsBridgeError,
        BadArgumentsError,
        PermissionDeniedError,
        SubmissionError,
        register_error_handlers,
    )

    raise BadArgumentsError("phone or message missing")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class SmsBridgeError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class BadArgumentsError(SmsBridgeError):
    """Caller input invalid (400). Never retried."""

    def __init__(self, message: str = "phone or message missing", **details: Any):
        super().__init__(
            message=message,
            status_code=400,
            error_code="BAD_ARGS",
            details=details,
        )


class PermissionDeniedError(SmsBridgeError):
    """Required platform permission is not held (403)."""

    def __init__(self, permission: str, message: str = ""):
        super().__init__(
            message=message or f"{permission} permission not granted",
            status_code=403,
            error_code="NO_PERMISSION",
            details={"permission": permission},
        )


class SubmissionError(SmsBridgeError):
    """Provider rejected the message or raised during submission (502)."""

    def __init__(self, message: str = "SMS send failed", **details: Any):
        super().__init__(
            message=message,
            status_code=502,
            error_code="SEND_FAIL",
            details=details,
        )


_ERRORS_BY_CODE = {
    "BAD_ARGS": BadArgumentsError,
    "SEND_FAIL": SubmissionError,
}


def error_for_code(error_code: str, message: str, **details: Any) -> SmsBridgeError:
    """Build the exception matching a call-surface error code."""
    if error_code == "NO_PERMISSION":
        return PermissionDeniedError(details.pop("permission", "SEND_SMS"), message)
    error_cls = _ERRORS_BY_CODE.get(error_code)
    if error_cls is None:
        return SmsBridgeError(message, error_code=error_code, details=details)
    return error_cls(message, **details)


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(SmsBridgeError)
    async def handle_bridge_error(request: Request, exc: SmsBridgeError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            level,
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError: %s", exc)
        return _build_error_response(
            422, "VALIDATION_ERROR", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if settings.DEBUG else None
        )
        return _build_error_response(
            500, "INTERNAL_ERROR", message, details, request,
        )
