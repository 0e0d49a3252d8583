"""
Telemetry Sources Package - Resilient ThingSpeak channel data layer.

Fetches channel feeds from an unreliable, rate-limited API for the
dashboard's chart and report collaborators.

Features:
- Retries with linear backoff under a per-attempt timeout
- In-memory TTL cache keyed by request shape
- Proxy transport fallback
- Expired-cache fallback flagged as stale
- Typed errors callers can branch on

Quick Start:
    from telemetry_sources import ClientConfig, ResilientChannelClient
    
    async def refresh():
        async with ResilientChannelClient(ClientConfig.from_env()) as client:
            payload = await client.fetch_channel("12397", api_key, results=100)
            
            energy_field = payload.field_for_label("energy") or "field1"
            for timestamp, value in payload.series(energy_field):
                print(timestamp, value)
"""

from telemetry_sources.base import BaseChannelSource
from telemetry_sources.cache import CacheEntry, ResponseCache
from telemetry_sources.client import ResilientChannelClient
from telemetry_sources.config import ChannelSettings, ClientConfig
from telemetry_sources.diagnostics import ConnectionReport, PathResult, probe_connection
from telemetry_sources.exceptions import (
    ChannelClientError,
    ChannelNotFoundError,
    ConfigurationError,
    ExhaustedRetriesError,
    FetchCancelledError,
    InvalidApiKeyError,
    InvalidResponseError,
    NetworkError,
    NetworkErrorKind,
    RateLimitError,
    ServerError,
    SourcesUnavailableError,
    ValidationError,
    classify_http_error,
)
from telemetry_sources.failover import FailoverChannelSource
from telemetry_sources.models import (
    Channel,
    ChannelPayload,
    ChannelRequest,
    ClientStatus,
    FeedEntry,
    HistoricalRequest,
    PayloadMeta,
    format_wire_datetime,
)
from telemetry_sources.transport import AiohttpTransport, ChannelTransport


__version__ = "1.0.0"

__all__ = [
    # Sources
    "BaseChannelSource",
    "ResilientChannelClient",
    "FailoverChannelSource",
    
    # Transport
    "ChannelTransport",
    "AiohttpTransport",
    
    # Cache
    "CacheEntry",
    "ResponseCache",
    
    # Config
    "ClientConfig",
    "ChannelSettings",
    
    # Models
    "Channel",
    "ChannelPayload",
    "ChannelRequest",
    "HistoricalRequest",
    "ClientStatus",
    "FeedEntry",
    "PayloadMeta",
    "format_wire_datetime",
    
    # Diagnostics
    "ConnectionReport",
    "PathResult",
    "probe_connection",
    
    # Exceptions
    "ChannelClientError",
    "ValidationError",
    "ConfigurationError",
    "NetworkError",
    "NetworkErrorKind",
    "ChannelNotFoundError",
    "InvalidApiKeyError",
    "RateLimitError",
    "ServerError",
    "SourcesUnavailableError",
    "ExhaustedRetriesError",
    "InvalidResponseError",
    "FetchCancelledError",
    "classify_http_error",
]
