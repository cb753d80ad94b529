# =============================================================================
# savvi_core/logging/config.py
# Logging Configuration for savviFinance
# =============================================================================

import logging
import sys
import time


# Log format
LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Supabase pulls in several chatty HTTP/SDK loggers
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "hpack",
    "supabase",
    "supabase_auth",
    "postgrest",
    "realtime",
    "websockets",
)


def setup_logging(level: int = logging.INFO) -> None:
    """
    Configure application-wide logging to stdout, where Streamlit collects it.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,  # Override any existing configuration
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("savvi_core").info("Logging initialized")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ from the calling module)

    Returns:
        Configured logger instance

    Usage:
        from savvi_core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Snapshot loaded")
    """
    return logging.getLogger(name)


class LogContext:
    """
    Context manager for logging operation timing and status.

    Works for both plain and async blocks:

        with LogContext(logger, "Loading snapshot"):
            await state_machine.load_data()
        # Logs: "Loading snapshot... started"
        # Logs: "Loading snapshot... completed (0.42s)"
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time = None

    def __enter__(self):
        self.start_time = time.monotonic()
        self.logger.info(f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.monotonic() - self.start_time

        if exc_type is None:
            self.logger.info(f"{self.operation}... completed ({elapsed:.2f}s)")
        else:
            self.logger.error(
                f"{self.operation}... failed ({elapsed:.2f}s): {exc_val}",
                exc_info=True
            )

        return False  # Don't suppress exceptions
