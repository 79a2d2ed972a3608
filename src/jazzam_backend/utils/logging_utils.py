"""
Structured lifecycle and error logging helpers.
"""

from typing import Any, Dict, Optional

from jazzam_backend.managers.logging_manager import get_logger

lifecycle_logger = get_logger(prefix="[LIFECYCLE]")
error_logger = get_logger(prefix="[ERROR]")


def log_application_lifecycle(event: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Log an application lifecycle event such as `startup_completed`."""
    details = details or {}
    rendered = ", ".join(f"{key}={value}" for key, value in details.items())
    lifecycle_logger.info(f"{event} | {rendered}" if rendered else event)


def log_error_with_context(error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
    """Log `error` together with the operation context it occurred in."""
    context = context or {}
    error_logger.error(f"{type(error).__name__}: {error} | context={context}", exc_info=error)
