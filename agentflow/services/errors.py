"""Shared service-layer error types and HTTP error mapping."""

from __future__ import annotations

from typing import Any

from loguru import logger

from agentflow.utils.exceptions import (
    AgentflowError,
    ErrorCategory,
    classify_exception,
    sanitize_error_message,
)


class ServiceError(Exception):
    """Domain error raised by shared services."""

    def __init__(self, *, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


_SERVICE_CODE_STATUS = {
    "INVALID_REQUEST": 400,
    "UNAUTHORIZED": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
}

_CATEGORY_STATUS = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.PERMISSION: 403,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.CONFLICT: 409,
    ErrorCategory.TIMEOUT: 504,
    ErrorCategory.RETRYABLE: 503,
}


def classify_http_status(exc: Exception) -> int:
    """Map exception to appropriate HTTP status code."""
    if isinstance(exc, ServiceError):
        return _SERVICE_CODE_STATUS.get(exc.code, 500)
    if isinstance(exc, AgentflowError):
        return _CATEGORY_STATUS.get(exc.category, 500)
    return 500


def error_response(exc: Exception) -> tuple[int, dict[str, Any]]:
    """(status, payload) for an exception. Unexpected errors never leak internals."""
    status = classify_http_status(exc)
    if isinstance(exc, ServiceError):
        return status, {"ok": False, "error": {"code": exc.code, "message": exc.message}}
    if isinstance(exc, AgentflowError):
        return status, {"ok": False, "error": exc.to_dict()}
    code, _, _ = classify_exception(exc)
    logger.exception(f"Unhandled exception [{code}]: {sanitize_error_message(str(exc))}")
    return 500, {
        "ok": False,
        "error": {"error": "INTERNAL_ERROR", "message": "An unexpected error occurred", "code": code},
    }
