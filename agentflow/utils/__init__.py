"""Utility functions for agentflow."""

from agentflow.utils.helpers import ensure_dir, get_data_path, new_id, utc_now
from agentflow.utils.exceptions import (
    AgentflowError,
    ValidationError,
    NotFoundError,
    ConflictError,
    UnsupportedFrameworkError,
    ErrorCategory,
    classify_exception,
    sanitize_error_message,
)

__all__ = [
    "ensure_dir",
    "get_data_path",
    "new_id",
    "utc_now",
    "AgentflowError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "UnsupportedFrameworkError",
    "ErrorCategory",
    "classify_exception",
    "sanitize_error_message",
]
