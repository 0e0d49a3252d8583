"""
Response Cache - In-memory TTL cache keyed by request shape.

Entries are never evicted on expiry. An expired entry stays readable as
the fallback of last resort until it is overwritten or cleared.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Generic, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached payload and the wall-clock time it was stored."""
    key: str
    payload: T
    stored_at: float
    
    def age(self, now: float) -> float:
        return now - self.stored_at
    
    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return self.age(now) <= ttl_seconds
    
    @property
    def stored_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.stored_at, tz=timezone.utc)


class ResponseCache(Generic[T]):
    """
    Process-local cache shared by every caller of one client.
    
    Reads and writes never await, so no lock is needed on the event loop.
    """
    
    def __init__(
        self,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
    
    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds
    
    def get(self, key: str) -> Optional[T]:
        """Fresh payload for key, or None."""
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock(), self._ttl_seconds):
            return None
        return entry.payload
    
    def get_entry(self, key: str) -> Optional[CacheEntry[T]]:
        """Entry for key regardless of freshness."""
        return self._entries.get(key)
    
    def is_fresh(self, entry: CacheEntry[T]) -> bool:
        return entry.is_fresh(self._clock(), self._ttl_seconds)
    
    def set(self, key: str, payload: T) -> CacheEntry[T]:
        """Store payload, replacing any previous entry for key."""
        entry = CacheEntry(key=key, payload=payload, stored_at=self._clock())
        self._entries[key] = entry
        return entry
    
    def clear(self, key: Optional[str] = None) -> None:
        """Remove one key, or everything when key is None."""
        if key is None:
            self._entries.clear()
            logger.debug("[cache] Cleared all entries")
        else:
            self._entries.pop(key, None)
            logger.debug(f"[cache] Cleared entry {key}")
    
    def keys(self) -> list[str]:
        return list(self._entries)
    
    def __contains__(self, key: str) -> bool:
        return key in self._entries
    
    def __len__(self) -> int:
        return len(self._entries)
