"""
Error types shared by the engine, planner, storage and adapters.

Each error carries a stable code and a category; the adapter layer maps the
category to an HTTP status (see agentflow.services.errors).
"""

from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    RETRYABLE = "retryable"
    FATAL = "fatal"


class AgentflowError(Exception):
    """Root of every error raised on purpose by agentflow.

    Subclasses set `default_code` / `default_category`; callers may override
    either per instance.
    """

    default_code = "UNKNOWN_ERROR"
    default_category = ErrorCategory.FATAL

    def __init__(
        self,
        message: str,
        code: str | None = None,
        category: ErrorCategory | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.category = category or self.default_category
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        """Wire form used in adapter error payloads."""
        return dict(
            error=self.code,
            message=self.message,
            category=self.category.value,
            details=self.details,
        )

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(AgentflowError):
    """Bad caller input; nothing was persisted."""

    default_code = "VALIDATION_ERROR"
    default_category = ErrorCategory.VALIDATION

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class NotFoundError(AgentflowError):
    default_code = "NOT_FOUND"
    default_category = ErrorCategory.NOT_FOUND

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(AgentflowError):
    """State machine violation: closed session, illegal transition, second approval response."""

    default_code = "CONFLICT"
    default_category = ErrorCategory.CONFLICT

    def __init__(self, message: str, resource_type: str | None = None, resource_id: str | None = None):
        details = {k: v for k, v in (("resource_type", resource_type), ("resource_id", resource_id)) if v}
        super().__init__(message, details=details)


class UnsupportedFrameworkError(AgentflowError):
    """Framework tag outside the closed catalogue."""

    default_code = "UNSUPPORTED_FRAMEWORK"
    default_category = ErrorCategory.VALIDATION

    def __init__(self, framework: str, supported: list[str] | None = None):
        supported = list(supported or [])
        message = f"Unsupported framework: {framework}"
        if supported:
            message = f"{message}. Supported frameworks: {', '.join(supported)}"
        super().__init__(message, details={"framework": framework, "supported": supported})
        self.framework = framework


# Secrets that may end up in httpx error strings or config-driven messages.
_REDACT = [
    re.compile(r"\b(api[_-]?key|token|secret|password|auth)\s*[=:]\s*['\"]?[^\s'\",;&]+['\"]?", re.IGNORECASE),
    re.compile(r"\bbearer\s+[\w\-.~+/]+=*", re.IGNORECASE),
    re.compile(r"(?<=://)[^/\s:@]+:[^/\s@]+(?=@)"),  # user:password in URLs
    re.compile(r"\b[0-9a-f]{64}\b", re.IGNORECASE),  # HMAC-SHA256 signatures
    re.compile(r"\b[A-Za-z0-9]{40,}\b"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Strip credentials and signatures before a message is logged or returned."""
    for pattern in _REDACT:
        message = pattern.sub(replacement, message)
    return message


# Checked in order; JSONDecodeError must precede ValueError.
_BUILTIN_CLASSES: list[tuple[type[BaseException], str, ErrorCategory, bool]] = [
    (asyncio.TimeoutError, "TIMEOUT", ErrorCategory.TIMEOUT, True),
    (ConnectionError, "CONNECTION_ERROR", ErrorCategory.RETRYABLE, True),
    (json.JSONDecodeError, "JSON_PARSE_ERROR", ErrorCategory.VALIDATION, False),
    (ValueError, "INVALID_VALUE", ErrorCategory.VALIDATION, False),
    (KeyError, "INVALID_VALUE", ErrorCategory.VALIDATION, False),
    (TypeError, "INVALID_VALUE", ErrorCategory.VALIDATION, False),
]


def classify_exception(exc: BaseException) -> tuple[str, ErrorCategory, bool]:
    """(code, category, should_retry) for any exception."""
    if isinstance(exc, AgentflowError):
        return exc.code, exc.category, exc.category is ErrorCategory.RETRYABLE
    for exc_type, code, category, retry in _BUILTIN_CLASSES:
        if isinstance(exc, exc_type):
            return code, category, retry
    return "INTERNAL_ERROR", ErrorCategory.FATAL, False
