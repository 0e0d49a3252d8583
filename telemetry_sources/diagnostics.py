"""
Connection Diagnostics - Probe the direct and proxy paths separately.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from telemetry_sources.client import ResilientChannelClient
from telemetry_sources.exceptions import ChannelClientError
from telemetry_sources.models import ChannelPayload, ChannelRequest


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int], None]


@dataclass
class PathResult:
    """Outcome of probing one path."""
    attempted: bool = False
    success: bool = False
    elapsed_ms: Optional[float] = None
    error: Optional[str] = None
    
    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "success": self.success,
            "elapsed_ms": round(self.elapsed_ms, 1) if self.elapsed_ms is not None else None,
            "error": self.error,
        }


@dataclass
class ConnectionReport:
    """Result of probe_connection()."""
    direct: PathResult = field(default_factory=PathResult)
    proxy: PathResult = field(default_factory=PathResult)
    payload: Optional[ChannelPayload] = None
    
    @property
    def success(self) -> bool:
        return self.direct.success or self.proxy.success
    
    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "direct": self.direct.to_dict(),
            "proxy": self.proxy.to_dict(),
            "channel": self.payload.channel.name if self.payload else None,
        }


async def probe_connection(
    client: ResilientChannelClient,
    channel_id: str,
    api_key: str,
    on_progress: Optional[ProgressCallback] = None,
) -> ConnectionReport:
    """
    Check connectivity by fetching a single entry over each path.
    
    The direct probe bypasses the cache but otherwise uses the full fetch
    sequence; a proxy or stale-cache answer counts as a direct failure.
    The proxy probe runs only when a proxy is configured.
    
    Args:
        client: Client under test
        channel_id: Channel to read
        api_key: Read API key
        on_progress: Called with (message, percentage)
        
    Returns:
        ConnectionReport; never raises for network failures
    """
    report = ConnectionReport()
    
    def progress(message: str, percentage: int) -> None:
        logger.info(f"[diagnostics] {message}")
        if on_progress:
            on_progress(message, percentage)
    
    progress("Testing direct API connection...", 10)
    
    report.direct.attempted = True
    start = time.perf_counter()
    try:
        report.payload = await client.fetch_channel(
            channel_id, api_key, results=1, bypass_cache=True,
        )
        # a fallback answer means the direct path itself did not respond
        if report.payload.meta.via_proxy or report.payload.meta.cached:
            report.direct.error = "Direct API failed; fallback data returned"
            progress(f"Direct API failed: {report.direct.error}", 40)
        else:
            report.direct.success = True
            progress("Direct API connection successful", 70)
    except ChannelClientError as e:
        report.direct.error = e.message
        progress(f"Direct API failed: {e.message}", 40)
    finally:
        report.direct.elapsed_ms = (time.perf_counter() - start) * 1000
    
    if client.config.proxy_url:
        progress("Testing proxy connection...", 60)
        
        report.proxy.attempted = True
        start = time.perf_counter()
        try:
            payload = await client.fetch_via_proxy(
                ChannelRequest(channel_id=channel_id, api_key=api_key, results=1),
            )
            report.proxy.success = True
            if report.payload is None:
                report.payload = payload
            progress("Proxy connection successful", 90)
        except ChannelClientError as e:
            report.proxy.error = e.message
            progress(f"Proxy failed: {e.message}", 80)
        finally:
            report.proxy.elapsed_ms = (time.perf_counter() - start) * 1000
    
    progress("Test completed", 100)
    return report
