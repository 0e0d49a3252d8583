"""
Base Channel Source - The interface UI callers depend on.

Callers receive one BaseChannelSource chosen by the composition root.
ResilientChannelClient is the canonical implementation;
FailoverChannelSource composes two of them.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from telemetry_sources.models import ChannelPayload, ClientStatus, DateInput


class BaseChannelSource(ABC):
    """
    Abstract source of channel feed data.
    
    Implementations must:
    1. Raise only typed ChannelClientError subclasses
    2. Return degraded results with provenance metadata instead of raising
    3. Never mutate a payload after returning it
    """
    
    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in log lines."""
        pass
    
    @abstractmethod
    async def fetch_channel(
        self,
        channel_id: str,
        api_key: str,
        results: int = 100,
        bypass_cache: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChannelPayload:
        """Fetch the latest `results` feed entries of a channel."""
        pass
    
    @abstractmethod
    async def fetch_historical_data(
        self,
        channel_id: str,
        api_key: str,
        start: DateInput,
        end: Optional[DateInput] = None,
        bypass_cache: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChannelPayload:
        """Fetch feed entries between start and end (default: now)."""
        pass
    
    @abstractmethod
    def get_status(self) -> ClientStatus:
        """Snapshot of request/response counters."""
        pass
    
    @abstractmethod
    def clear_cache(self, key: Optional[str] = None) -> None:
        """Drop one cached response, or all of them."""
        pass
    
    async def close(self) -> None:
        """Close resources."""
        pass
    
    async def __aenter__(self) -> "BaseChannelSource":
        return self
    
    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
    
    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name})>"
