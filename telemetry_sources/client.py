"""
Resilient Channel Client - Caching, retrying ThingSpeak feed fetcher.

Each fetch runs strictly in this order:
1. Validate input (no network on failure)
2. Fresh cache lookup
3. Direct GET, up to retry_count attempts with linear backoff
4. One POST through the proxy, if configured
5. The cached entry for the same key regardless of age
6. ExhaustedRetriesError

Steps 4 and 5 are successful returns carrying provenance metadata.

Cache and status are shared by every caller of one client instance. They
are read and written without an await in between, so concurrent fetches
on one event loop need no lock.
"""

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from telemetry_sources.base import BaseChannelSource
from telemetry_sources.cache import ResponseCache
from telemetry_sources.config import ClientConfig
from telemetry_sources.exceptions import (
    ChannelClientError,
    ConfigurationError,
    ExhaustedRetriesError,
    FetchCancelledError,
    InvalidResponseError,
    NetworkError,
)
from telemetry_sources.logging_utils import mask_params
from telemetry_sources.models import (
    ChannelPayload,
    ChannelRequest,
    ClientStatus,
    DateInput,
    FeedRequest,
    HistoricalRequest,
)
from telemetry_sources.transport import AiohttpTransport, ChannelTransport


logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResilientChannelClient(BaseChannelSource):
    """
    ThingSpeak channel client with retries, caching and fallbacks.
    
    Construct one per configuration in the application's composition root
    and hand it to callers; there is no module-level instance.
    
    Usage:
        async with ResilientChannelClient(ClientConfig(proxy_url=...)) as client:
            payload = await client.fetch_channel("12397", api_key, results=50)
            if payload.meta.is_degraded:
                show_staleness_banner(payload.meta)
    """
    
    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[ChannelTransport] = None,
        clock: Callable[[], float] = time.time,
        name: str = "thingspeak",
    ) -> None:
        self._config = config or ClientConfig()
        self._transport = transport or AiohttpTransport()
        self._owns_transport = transport is None
        self._clock = clock
        self._name = name
        
        self._cache: ResponseCache[ChannelPayload] = ResponseCache(
            ttl_seconds=self._config.cache_duration_seconds,
            clock=clock,
        )
        self._status = ClientStatus()
        self._progress_level = logging.INFO if self._config.debug else logging.DEBUG
        
        logger.log(self._progress_level, f"[{self._name}] Channel client initialized")
    
    @property
    def name(self) -> str:
        return self._name
    
    @property
    def config(self) -> ClientConfig:
        return self._config
    
    async def fetch_channel(
        self,
        channel_id: str,
        api_key: str,
        results: int = 100,
        bypass_cache: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChannelPayload:
        """
        Fetch the latest feed entries of a channel.
        
        Args:
            channel_id: ThingSpeak channel ID
            api_key: Read API key
            results: Number of entries to fetch
            bypass_cache: Skip the fresh-cache lookup
            cancel_event: Set it to abandon the fetch at the next suspension point
            
        Returns:
            ChannelPayload, possibly flagged via_proxy or cached/expired
            
        Raises:
            ValidationError: Missing channel ID or API key
            ExhaustedRetriesError: Every path failed and nothing was cached
            FetchCancelledError: cancel_event was set
        """
        request = ChannelRequest(channel_id=channel_id, api_key=api_key, results=results)
        return await self.fetch(request, bypass_cache=bypass_cache, cancel_event=cancel_event)
    
    async def fetch_historical_data(
        self,
        channel_id: str,
        api_key: str,
        start: DateInput,
        end: Optional[DateInput] = None,
        bypass_cache: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChannelPayload:
        """
        Fetch feed entries in a date range.
        
        String bounds are sent verbatim; datetime bounds are converted to
        UTC "YYYY-MM-DD HH:MM:SS". Same fallbacks as fetch_channel().
        """
        request = HistoricalRequest(channel_id=channel_id, api_key=api_key, start=start, end=end)
        return await self.fetch(request, bypass_cache=bypass_cache, cancel_event=cancel_event)
    
    async def fetch(
        self,
        request: FeedRequest,
        bypass_cache: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChannelPayload:
        """Run the full cache / retry / proxy / stale-cache sequence."""
        request.validate()
        channel_id = str(request.channel_id).strip()
        cache_key = request.cache_key
        kind = "historical data" if request.historical else "data"
        
        if self._config.cache_enabled and not bypass_cache:
            cached = self._cache.get(cache_key)
            if cached is not None:
                logger.log(
                    self._progress_level,
                    f"[{self._name}] Using cached {kind} for channel {channel_id}",
                )
                return cached
        
        self._status.request_count += 1
        
        url = self.build_url(request.path)
        params = request.query_params()
        retry_count = self._config.retry_count
        last_error: Optional[ChannelClientError] = None
        
        for attempt in range(1, retry_count + 1):
            self._check_cancelled(cancel_event, channel_id)
            logger.log(
                self._progress_level,
                f"[{self._name}] Fetching {kind} for channel {channel_id} "
                f"(attempt {attempt}/{retry_count}) params={mask_params(params)}",
            )
            
            try:
                payload = await self._until_cancelled(
                    self._get_payload(url, params, channel_id),
                    cancel_event,
                    channel_id,
                )
            except FetchCancelledError:
                raise
            except (NetworkError, InvalidResponseError) as e:
                last_error = e
            except Exception as e:
                last_error = NetworkError(
                    f"Unexpected error: {e}", channel_id, original_error=e,
                )
            else:
                self._on_success()
                if self._config.cache_enabled:
                    self._cache.set(cache_key, payload)
                return payload
            
            self._status.failed_attempts += 1
            logger.warning(f"[{self._name}] Attempt {attempt} failed: {last_error.message}")
            
            if attempt < retry_count:
                await self._delay(self._config.retry_delay_seconds * attempt, cancel_event)
        
        self._on_exhausted()
        
        if self._config.proxy_url:
            self._check_cancelled(cancel_event, channel_id)
            try:
                logger.warning(f"[{self._name}] Trying proxy as a fallback for {kind}")
                return await self._until_cancelled(
                    self.fetch_via_proxy(request),
                    cancel_event,
                    channel_id,
                )
            except FetchCancelledError:
                raise
            except ChannelClientError as e:
                logger.error(f"[{self._name}] Proxy fallback also failed: {e.message}")
        
        entry = self._cache.get_entry(cache_key)
        if entry is not None:
            expired = not self._cache.is_fresh(entry)
            logger.warning(
                f"[{self._name}] Using {'expired ' if expired else ''}cached {kind} "
                f"for channel {channel_id} as a fallback"
            )
            return entry.payload.with_meta(
                cached=True,
                expired=expired,
                historical=request.historical,
                last_updated=entry.stored_at_datetime,
            )
        
        if last_error is None:
            message = "Failed to fetch ThingSpeak data after multiple attempts"
        else:
            message = f"Failed to fetch ThingSpeak {kind} after {retry_count} attempts: {last_error.message}"
        logger.error(f"[{self._name}] {message}")
        raise ExhaustedRetriesError(
            message,
            channel_id,
            attempts=retry_count,
            last_error=last_error,
        )
    
    async def fetch_via_proxy(
        self,
        request: FeedRequest,
    ) -> ChannelPayload:
        """
        Fetch through the proxy: POST {url, params} to proxy_url.
        
        The result is flagged via_proxy (and historical for date ranges).
        It is not cached and does not change the status counters.
        
        Raises:
            ConfigurationError: No proxy configured
            NetworkError: Proxy unreachable or returned an error status
            InvalidResponseError: Proxy returned an invalid payload
        """
        if not self._config.proxy_url:
            raise ConfigurationError("Proxy URL not configured", config_key="proxy_url")
        
        request.validate()
        channel_id = str(request.channel_id).strip()
        body = {
            "url": self.build_url(request.path),
            "params": request.query_params(),
        }
        
        data = await self._with_timeout(
            self._transport.post_json(
                self._config.proxy_url,
                body,
                self._config.timeout_seconds,
                channel_id,
            ),
            channel_id,
            self._config.proxy_url,
        )
        payload = ChannelPayload.from_dict(data, channel_id)
        return payload.with_meta(via_proxy=True, historical=request.historical)
    
    def build_url(self, path: str) -> str:
        return f"{self._config.base_url}{path}"
    
    def get_status(self) -> ClientStatus:
        """Copy of the counters, with the current cache size."""
        return replace(self._status, cache_size=len(self._cache))
    
    def config_summary(self) -> dict[str, Any]:
        """Configuration with the proxy location redacted."""
        return self._config.to_dict()
    
    def clear_cache(self, key: Optional[str] = None) -> None:
        self._cache.clear(key)
    
    async def close(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport:
            await self._transport.close()
    
    async def _get_payload(
        self,
        url: str,
        params: dict[str, Any],
        channel_id: str,
    ) -> ChannelPayload:
        data = await self._with_timeout(
            self._transport.get_json(url, params, self._config.timeout_seconds, channel_id),
            channel_id,
            url,
        )
        return ChannelPayload.from_dict(data, channel_id)
    
    async def _with_timeout(
        self,
        awaitable: Awaitable[T],
        channel_id: str,
        url: str,
    ) -> T:
        # wait_for cancels the call on timeout; a late response cannot touch shared state
        try:
            return await asyncio.wait_for(awaitable, timeout=self._config.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Request timed out after {self._config.timeout_seconds}s",
                channel_id,
                request_url=url,
                original_error=e,
            ) from e
    
    async def _until_cancelled(
        self,
        awaitable: Awaitable[T],
        cancel_event: Optional[asyncio.Event],
        channel_id: Optional[str] = None,
    ) -> T:
        """Await awaitable, abandoning it if cancel_event fires first."""
        if cancel_event is None:
            return await awaitable
        
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        
        if task in done:
            return task.result()
        raise FetchCancelledError("Fetch cancelled by caller", channel_id)
    
    async def _delay(
        self,
        seconds: float,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> None:
        if seconds <= 0:
            return
        await self._until_cancelled(asyncio.sleep(seconds), cancel_event)
    
    def _check_cancelled(
        self,
        cancel_event: Optional[asyncio.Event],
        channel_id: str,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"[{self._name}] Fetch for channel {channel_id} cancelled")
            raise FetchCancelledError("Fetch cancelled by caller", channel_id)
    
    def _on_success(self) -> None:
        self._status.last_success = self._now()
        self._status.response_count += 1
        self._status.error_count = 0
    
    def _on_exhausted(self) -> None:
        self._status.last_error = self._now()
        self._status.error_count += 1
    
    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)
