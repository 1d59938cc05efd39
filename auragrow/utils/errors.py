"""
Error handling utilities for sanitizing user-facing messages and logging.

Provides consistent error handling across the application:
- Sanitizes error messages to prevent information leakage
- Logs detailed error information for debugging
- Attaches key=value context to log lines
"""

from __future__ import annotations
from flask import current_app

# User-friendly generic error messages
GENERIC_MESSAGES = {
    "storage": "We're experiencing technical difficulties. Please try again.",
    "validation": "The information provided is invalid. Please check and try again.",
    "not_found": "The requested item was not found.",
    "network": "Network error occurred. Please try again later.",
}


def sanitize_error(
    error: Exception,
    error_type: str = "storage",
    log_prefix: str = ""
) -> str:
    """
    Sanitize error message for user display and log full details.

    Args:
        error: The exception that occurred
        error_type: Type of error (storage, validation, not_found, network)
        log_prefix: Optional prefix for log message context

    Returns:
        User-friendly error message
    """
    error_message = str(error)
    log_message = f"{log_prefix}: {error_message}" if log_prefix else error_message

    if error_type in ["validation", "not_found"]:
        current_app.logger.info(f"Expected error - {log_message}")
    else:
        current_app.logger.error(f"Unexpected error - {log_message}", exc_info=True)

    return GENERIC_MESSAGES.get(error_type, GENERIC_MESSAGES["storage"])


def _with_context(message: str, context: dict) -> str:
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        message = f"{message} | Context: {context_str}"
    return message


def log_warning(message: str, **context) -> None:
    """
    Log a warning with optional context.

    Examples:
        >>> log_warning("AI responded with error", kind="auth_error", status=401)
    """
    current_app.logger.warning(_with_context(message, context))


def log_info(message: str, **context) -> None:
    """Log an info message with optional context."""
    current_app.logger.info(_with_context(message, context))
