# =============================================================================
# savvi_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from __future__ import annotations
from abc import ABC
from typing import Optional, Dict, Any, Awaitable, Callable
from dataclasses import dataclass

from savvi_core.logging import get_logger, LogContext
from savvi_core.errors import handle_error, SavviError, classify_error


@dataclass
class ServiceResult:
    """
    Standard result container for service operations.

    Provides consistent structure for all service method returns.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, metadata: Dict[str, Any] = None) -> ServiceResult:
        """Create a successful result"""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        metadata: Dict[str, Any] = None
    ) -> ServiceResult:
        """Create a failed result"""
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            metadata=metadata,
        )

    @classmethod
    def from_exception(cls, e: Exception) -> ServiceResult:
        """Create a failed result from an exception"""
        classified = classify_error(e)
        return cls(
            success=False,
            error=classified.message,
            error_code=classified.code,
            metadata=classified.details,
        )


class BaseService(ABC):
    """
    Abstract base class for all services.

    Provides common functionality:
    - Logging
    - Error handling
    - Result standardization

    Usage:
        class MyService(BaseService):
            async def do_something(self) -> ServiceResult:
                return await self.safe_execute("Doing something", self._do_it)
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def log_operation(self, operation: str) -> LogContext:
        """
        Create a logging context for an operation.

        Usage:
            with self.log_operation("Saving goal"):
                await remote.insert("goals", row)
        """
        return LogContext(self.logger, operation)

    async def safe_execute(
        self,
        operation: str,
        func: Callable[..., Awaitable[Any]],
        *args,
        **kwargs
    ) -> ServiceResult:
        """
        Await a coroutine function with error handling and logging.

        Args:
            operation: Description of the operation
            func: Coroutine function to execute
            *args, **kwargs: Arguments to pass to func

        Returns:
            ServiceResult with success/failure status
        """
        try:
            with self.log_operation(operation):
                result = await func(*args, **kwargs)
            return ServiceResult.ok(result)
        except SavviError as e:
            handle_error(e, show_user_message=False)
            return ServiceResult.from_exception(e)
        except Exception as e:
            self.logger.error(f"{operation} failed: {e}")
            return ServiceResult.from_exception(e)
