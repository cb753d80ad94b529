# =============================================================================
# savvi_core/errors/__init__.py
# Centralized Error Handling for savviFinance
# =============================================================================

from .exceptions import (
    SavviError,
    NetworkError,
    OperationTimeoutError,
    SchemaMissingError,
    RemoteError,
    CredentialError,
    PartialDataError,
    ValidationError,
    ConfigurationError,
)

from .classify import (
    classify_error,
    is_network_class,
    is_schema_missing,
    error_message,
)

from .handlers import (
    handle_error,
    ErrorContext,
    error_boundary,
    MESSAGE_TIMEOUT_SECONDS,
)

__all__ = [
    # Exceptions
    "SavviError",
    "NetworkError",
    "OperationTimeoutError",
    "SchemaMissingError",
    "RemoteError",
    "CredentialError",
    "PartialDataError",
    "ValidationError",
    "ConfigurationError",
    # Classification
    "classify_error",
    "is_network_class",
    "is_schema_missing",
    "error_message",
    # Handlers
    "handle_error",
    "ErrorContext",
    "error_boundary",
    "MESSAGE_TIMEOUT_SECONDS",
]
