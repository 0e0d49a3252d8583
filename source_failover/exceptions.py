"""
Source Failover Exceptions.

Raised by CircuitedOperation when neither source produced a result.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class FailoverError(Exception):
    """Base exception for the primary/secondary executor."""
    
    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)
    
    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "provider": self.provider,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class OperationTimeoutError(FailoverError):
    """An operation did not settle within the configured timeout."""
    
    def __init__(
        self,
        provider: str,
        timeout_seconds: float,
    ) -> None:
        super().__init__(
            f"{provider.capitalize()} operation timeout after {timeout_seconds}s",
            provider=provider,
        )
        self.timeout_seconds = timeout_seconds


class BothProvidersUnavailableError(FailoverError):
    """Secondary was required but is marked unavailable. Terminal."""
    
    def __init__(self, original_error: Optional[BaseException] = None) -> None:
        super().__init__(
            "Both primary and secondary sources are unavailable",
            original_error=original_error,
        )


class SecondaryOperationError(FailoverError):
    """The secondary operation failed after primary was skipped or failed."""
    
    def __init__(self, original_error: BaseException) -> None:
        super().__init__(
            f"Operation failed: {original_error}",
            provider="secondary",
            original_error=original_error,
        )
