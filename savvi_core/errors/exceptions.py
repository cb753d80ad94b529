# =============================================================================
# savvi_core/errors/exceptions.py
# Custom Exception Hierarchy for savviFinance
# =============================================================================

from typing import Optional, Dict, Any


class SavviError(Exception):
    """
    Base exception for all savviFinance errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "NET_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "SAVVI_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# CONNECTIVITY EXCEPTIONS
# =============================================================================

class NetworkError(SavviError):
    """Raised when the remote store cannot be reached at the transport level"""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="NET_001",
            details=details,
            **kwargs,
        )


class OperationTimeoutError(SavviError):
    """Raised when a remote call does not finish within its allotted time"""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        timeout: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if timeout is not None:
            details["timeout"] = timeout

        super().__init__(
            message=message,
            code="NET_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# REMOTE STORE EXCEPTIONS
# =============================================================================

class SchemaMissingError(SavviError):
    """Raised when the expected tables are not provisioned on the remote store"""

    def __init__(self, message: str, table: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table

        super().__init__(
            message=message,
            code="DB_001",
            details=details,
            **kwargs,
        )


class RemoteError(SavviError):
    """Raised for provider errors that are neither connectivity nor schema related"""

    def __init__(self, message: str, provider_code: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if provider_code:
            details["provider_code"] = provider_code

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )


class CredentialError(SavviError):
    """Raised when the identity provider rejects credentials or account data"""

    def __init__(self, message: str, email: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if email:
            details["email"] = email

        super().__init__(
            message=message,
            code="AUTH_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# DATA EXCEPTIONS
# =============================================================================

class PartialDataError(SavviError):
    """Raised (and usually only logged) when some snapshot collections failed to load"""

    def __init__(self, message: str, failed: Optional[list] = None, **kwargs):
        details = kwargs.pop("details", {})
        if failed:
            details["failed"] = failed

        super().__init__(
            message=message,
            code="DATA_001",
            details=details,
            **kwargs,
        )


class ValidationError(SavviError):
    """Raised when user-entered finance data fails validation"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value

        super().__init__(
            message=message,
            code="DATA_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(SavviError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
