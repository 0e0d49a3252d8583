"""
Failover Channel Source - Two channel sources behind one interface.

Routes every fetch through a CircuitedOperation: the primary source is
tried first, the secondary only after the primary failed, timed out or
was demoted.

Caller-side errors (bad input, cancellation) are raised as-is and never
count against a source. Executor errors are translated so callers only
ever see ChannelClientError subclasses.
"""

import asyncio
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from source_failover import (
    BothProvidersUnavailableError,
    CircuitedOperation,
    FailoverConfig,
    FailoverError,
    FailoverStatus,
    OperationTimeoutError,
)
from telemetry_sources.base import BaseChannelSource
from telemetry_sources.exceptions import (
    ChannelClientError,
    FetchCancelledError,
    NetworkError,
    SourcesUnavailableError,
    ValidationError,
)
from telemetry_sources.models import (
    ChannelPayload,
    ChannelRequest,
    ClientStatus,
    DateInput,
    HistoricalRequest,
)


CALLER_ERRORS = (ValidationError, FetchCancelledError)


class FailoverChannelSource(BaseChannelSource):
    """
    Primary/secondary composition of channel sources.
    
    Typical wiring pairs a direct client with one pointed at a mirror
    origin. The executor's timeout bounds the whole fetch of a source,
    including that source's own retries.
    """
    
    def __init__(
        self,
        primary: BaseChannelSource,
        secondary: BaseChannelSource,
        executor: Optional[CircuitedOperation] = None,
        force_secondary: bool = False,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self._executor = executor or CircuitedOperation(FailoverConfig())
        self._force_secondary = force_secondary
    
    @property
    def name(self) -> str:
        return f"{self._primary.name}|{self._secondary.name}"
    
    @property
    def executor(self) -> CircuitedOperation:
        return self._executor
    
    async def fetch_channel(
        self,
        channel_id: str,
        api_key: str,
        results: int = 100,
        bypass_cache: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
        force_secondary: Optional[bool] = None,
    ) -> ChannelPayload:
        ChannelRequest(channel_id=channel_id, api_key=api_key, results=results).validate()
        return await self._execute(
            lambda: self._primary.fetch_channel(
                channel_id, api_key, results, bypass_cache, cancel_event,
            ),
            lambda: self._secondary.fetch_channel(
                channel_id, api_key, results, bypass_cache, cancel_event,
            ),
            force_secondary,
        )
    
    async def fetch_historical_data(
        self,
        channel_id: str,
        api_key: str,
        start: DateInput,
        end: Optional[DateInput] = None,
        bypass_cache: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
        force_secondary: Optional[bool] = None,
    ) -> ChannelPayload:
        HistoricalRequest(channel_id=channel_id, api_key=api_key, start=start, end=end).validate()
        return await self._execute(
            lambda: self._primary.fetch_historical_data(
                channel_id, api_key, start, end, bypass_cache, cancel_event,
            ),
            lambda: self._secondary.fetch_historical_data(
                channel_id, api_key, start, end, bypass_cache, cancel_event,
            ),
            force_secondary,
        )
    
    def get_status(self) -> ClientStatus:
        """Counters of both sources added together."""
        primary = self._primary.get_status()
        secondary = self._secondary.get_status()
        return replace(
            primary,
            request_count=primary.request_count + secondary.request_count,
            response_count=primary.response_count + secondary.response_count,
            error_count=primary.error_count + secondary.error_count,
            failed_attempts=primary.failed_attempts + secondary.failed_attempts,
            last_success=_latest(primary.last_success, secondary.last_success),
            last_error=_latest(primary.last_error, secondary.last_error),
            cache_size=primary.cache_size + secondary.cache_size,
        )
    
    def provider_status(self) -> FailoverStatus:
        return self._executor.status()
    
    def reset_provider(self, name: str = "all") -> None:
        self._executor.reset_provider(name)
    
    def clear_cache(self, key: Optional[str] = None) -> None:
        self._primary.clear_cache(key)
        self._secondary.clear_cache(key)
    
    async def close(self) -> None:
        await self._primary.close()
        await self._secondary.close()
    
    async def _execute(
        self,
        primary_op: Callable[[], Awaitable[ChannelPayload]],
        secondary_op: Callable[[], Awaitable[ChannelPayload]],
        force_secondary: Optional[bool],
    ) -> ChannelPayload:
        try:
            return await self._executor.execute(
                primary_op,
                secondary_op,
                force_secondary=self._resolve_force(force_secondary),
                passthrough=CALLER_ERRORS,
            )
        except FailoverError as e:
            raise _as_client_error(e) from None
    
    def _resolve_force(self, force_secondary: Optional[bool]) -> bool:
        if force_secondary is None:
            return self._force_secondary
        return force_secondary


def _as_client_error(error: FailoverError) -> ChannelClientError:
    """Map an executor error onto the channel error taxonomy."""
    original = error.original_error
    if isinstance(original, ChannelClientError):
        return original
    if isinstance(error, BothProvidersUnavailableError):
        return SourcesUnavailableError(error.message, original_error=error)
    if isinstance(original, OperationTimeoutError):
        return NetworkError(original.message, original_error=original)
    return NetworkError(error.message, original_error=error)


def _latest(first, second):
    if first is None:
        return second
    if second is None:
        return first
    return max(first, second)
