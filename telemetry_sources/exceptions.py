"""
Telemetry Sources Exceptions - Typed error taxonomy for channel fetches.

Callers branch on the exception class or on NetworkError.kind, never on
the message text.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class NetworkErrorKind(Enum):
    """Classification of a failed network attempt."""
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    GENERIC = "generic"


class ChannelClientError(Exception):
    """Base exception for all channel client errors."""
    
    def __init__(
        self,
        message: str,
        channel_id: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.channel_id = channel_id
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)
    
    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "channel_id": self.channel_id,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }
    
    def __str__(self) -> str:
        parts = [self.message]
        if self.channel_id:
            parts.append(f"[channel={self.channel_id}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class ValidationError(ChannelClientError):
    """Missing or malformed caller input. Never retried."""
    
    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        channel_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, channel_id)
        self.field_name = field_name
    
    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field_name"] = self.field_name
        return data


class ConfigurationError(ChannelClientError):
    """Invalid client configuration."""
    
    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.config_key = config_key
    
    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data


class NetworkError(ChannelClientError):
    """A network attempt failed. Retryable."""
    
    kind = NetworkErrorKind.GENERIC
    
    def __init__(
        self,
        message: str,
        channel_id: Optional[str] = None,
        status_code: Optional[int] = None,
        request_url: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, channel_id, original_error, context)
        self.status_code = status_code
        self.request_url = request_url
    
    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "kind": self.kind.value,
            "status_code": self.status_code,
            "request_url": self.request_url,
        })
        return data


class ChannelNotFoundError(NetworkError):
    """HTTP 404."""
    kind = NetworkErrorKind.NOT_FOUND


class InvalidApiKeyError(NetworkError):
    """HTTP 401."""
    kind = NetworkErrorKind.UNAUTHORIZED


class RateLimitError(NetworkError):
    """HTTP 429."""
    
    kind = NetworkErrorKind.RATE_LIMITED
    
    def __init__(
        self,
        message: str,
        channel_id: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
        request_url: Optional[str] = None,
    ) -> None:
        super().__init__(message, channel_id, status_code=429, request_url=request_url)
        self.retry_after_seconds = retry_after_seconds
    
    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class ServerError(NetworkError):
    """HTTP 5xx."""
    kind = NetworkErrorKind.SERVER_ERROR


class ExhaustedRetriesError(NetworkError):
    """
    Every live path failed and no cached data was available. Terminal.
    
    kind and status_code mirror the last observed network error, so a
    caller sees e.g. SERVER_ERROR after three HTTP 500 responses.
    """
    
    def __init__(
        self,
        message: str,
        channel_id: Optional[str] = None,
        attempts: int = 0,
        last_error: Optional[ChannelClientError] = None,
    ) -> None:
        super().__init__(
            message,
            channel_id,
            status_code=getattr(last_error, "status_code", None),
            request_url=getattr(last_error, "request_url", None),
            original_error=last_error,
        )
        self.attempts = attempts
        self.last_error = last_error
        if isinstance(last_error, NetworkError):
            self.kind = last_error.kind
    
    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "attempts": self.attempts,
            "last_error_type": self.last_error.__class__.__name__ if self.last_error else None,
        })
        return data


class SourcesUnavailableError(NetworkError):
    """Every configured source is demoted. Terminal until a source is reset."""


class InvalidResponseError(ChannelClientError):
    """Structurally invalid payload. Retryable, like a network error."""
    
    def __init__(
        self,
        message: str,
        channel_id: Optional[str] = None,
        raw_data: Optional[Any] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, channel_id, original_error)
        self.raw_data = raw_data
    
    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["raw_data"] = str(self.raw_data)[:500] if self.raw_data is not None else None
        return data


class FetchCancelledError(ChannelClientError):
    """The caller abandoned the fetch through its cancellation event."""


def classify_http_error(
    status: int,
    body: str = "",
    request_url: Optional[str] = None,
    channel_id: Optional[str] = None,
    retry_after: Optional[str] = None,
) -> NetworkError:
    """
    Map a non-2xx HTTP status to its typed error.
    
    Args:
        status: HTTP status code
        body: Response body text (used for unmapped statuses)
        request_url: Masked request URL
        channel_id: Channel being fetched
        retry_after: Raw Retry-After header value
        
    Returns:
        NetworkError subclass instance (not raised)
    """
    if status == 404:
        return ChannelNotFoundError(
            "Channel not found", channel_id, status_code=status, request_url=request_url,
        )
    if status == 401:
        return InvalidApiKeyError(
            "Invalid API key or insufficient permissions",
            channel_id,
            status_code=status,
            request_url=request_url,
        )
    if status == 429:
        return RateLimitError(
            "Rate limit exceeded. Please try again later",
            channel_id,
            retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
            request_url=request_url,
        )
    if 500 <= status < 600:
        return ServerError(
            f"ThingSpeak server error ({status})",
            channel_id,
            status_code=status,
            request_url=request_url,
        )
    
    message = f"HTTP error: {status}"
    try:
        data = json.loads(body) if body else None
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        message = str(data["error"])
    
    return NetworkError(message, channel_id, status_code=status, request_url=request_url)
