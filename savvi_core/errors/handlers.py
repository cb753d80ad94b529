# =============================================================================
# savvi_core/errors/handlers.py
# Error Handling Utilities for savviFinance
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Optional, Callable, TypeVar, Any

from savvi_core.logging import get_logger
from .exceptions import SavviError
from .classify import classify_error

logger = get_logger(__name__)

T = TypeVar("T")

# Inline, dismissible messages disappear after this many seconds
MESSAGE_TIMEOUT_SECONDS = 8


def _show_user_message(message: str, recoverable: bool) -> None:
    import streamlit as st

    if recoverable:
        st.error(f"Error: {message}")
    else:
        st.error(f"Critical Error: {message}. Please contact support.")


def handle_error(
    error: Exception,
    show_user_message: bool = False,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> str:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        show_user_message: Whether to display error to user via st.error
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)

    Returns:
        The message that was (or would have been) shown to the user
    """
    classified = classify_error(error)
    message = user_message or classified.message

    if log_error:
        details = classified.details
        if not isinstance(error, SavviError):
            details = {**details, "traceback": traceback.format_exc()}
        logger.error(
            f"[{classified.code}] {message}",
            extra={"details": details},
            exc_info=error,
        )

    if show_user_message:
        _show_user_message(message, classified.recoverable)

    return message


class ErrorContext:
    """
    Context manager for error handling with automatic logging.

    Usage:
        with ErrorContext("Saving transaction"):
            result = run(service.save_transaction(...))

        # On error, logs and records: "Error during: Saving transaction"
    """

    def __init__(
        self,
        operation: str,
        recoverable: bool = True,
        show_user_message: bool = False,
    ):
        self.operation = operation
        self.recoverable = recoverable
        self.show_user_message = show_user_message
        self.error_message: Optional[str] = None

    def __enter__(self) -> ErrorContext:
        logger.info(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            if not isinstance(exc_val, Exception):
                return False

            if isinstance(exc_val, SavviError):
                self.error_message = handle_error(
                    exc_val, show_user_message=self.show_user_message
                )
            else:
                self.error_message = handle_error(
                    exc_val,
                    show_user_message=self.show_user_message,
                    user_message=f"Error during: {self.operation}",
                )

            # Suppress exception if recoverable
            return self.recoverable

        logger.info(f"Completed: {self.operation}")
        return False


def error_boundary(
    default_return: Any = None,
    log: bool = True,
):
    """
    Decorator to wrap functions with error handling.

    Args:
        default_return: Value to return if function fails
        log: Whether to log errors

    Usage:
        @error_boundary(default_return={})
        def build_summary(snapshot) -> dict:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log:
                    logger.error(
                        f"Error in {func.__name__}: {e}",
                        exc_info=True,
                    )
                return default_return

        return wrapper

    return decorator
