"""
Telemetry Sources Models - Channel payloads, requests and client status.

Payloads are immutable once parsed. Degraded results are produced by
wrapping a payload with new provenance metadata, never by mutating it.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Optional, Union

from telemetry_sources.exceptions import InvalidResponseError, ValidationError


FEED_FIELDS = tuple(f"field{i}" for i in range(1, 9))

WIRE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_RESULTS = 8000

DateInput = Union[str, datetime, date]


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a ThingSpeak ISO-8601 timestamp ("2024-01-01T12:00:00Z")."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def format_wire_datetime(value: DateInput) -> str:
    """
    Format a date bound for the start/end query parameters.
    
    Strings pass through verbatim. Datetimes are normalized to UTC; naive
    datetimes are taken to already be UTC. Dates mean midnight UTC.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(WIRE_DATETIME_FORMAT)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).strftime(WIRE_DATETIME_FORMAT)
    raise ValidationError(f"Unsupported date value: {value!r}", field_name="date")


def _as_utc(value: DateInput) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return None


@dataclass(frozen=True)
class Channel:
    """Channel descriptor: name plus the labels of its fields."""
    id: Optional[int]
    name: str
    field_labels: dict[str, str]
    description: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    
    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Channel":
        """Create from the `channel` object of a feeds response."""
        labels = {
            name: str(data[name])
            for name in FEED_FIELDS
            if data.get(name)
        }
        return cls(
            id=data.get("id"),
            name=str(data.get("name") or ""),
            field_labels=labels,
            description=data.get("description"),
            raw=dict(data),
        )
    
    def label(self, field_name: str) -> Optional[str]:
        return self.field_labels.get(field_name)


@dataclass(frozen=True)
class FeedEntry:
    """One timestamped reading across a channel's fields."""
    created_at: Optional[datetime]
    entry_id: Optional[int]
    fields: dict[str, Optional[str]]
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)
    
    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeedEntry":
        return cls(
            created_at=parse_timestamp(data.get("created_at")),
            entry_id=data.get("entry_id"),
            fields={
                name: (None if data.get(name) is None else str(data[name]))
                for name in FEED_FIELDS
                if name in data
            },
            raw=dict(data),
        )
    
    def value(self, field_name: str) -> Optional[float]:
        """Numeric value of a field, or None when absent or unparsable."""
        raw_value = self.fields.get(field_name)
        if raw_value is None:
            return None
        try:
            return float(raw_value)
        except ValueError:
            return None


@dataclass(frozen=True)
class PayloadMeta:
    """Provenance flags describing how a payload was obtained."""
    cached: bool = False
    expired: bool = False
    via_proxy: bool = False
    historical: bool = False
    last_updated: Optional[datetime] = None
    
    @property
    def is_degraded(self) -> bool:
        """True when the caller should show a staleness indicator."""
        return self.expired or self.via_proxy
    
    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.cached:
            data["cached"] = True
            data["expired"] = self.expired
        if self.via_proxy:
            data["viaProxy"] = True
        if self.historical:
            data["historical"] = True
        if self.last_updated:
            data["lastUpdated"] = self.last_updated.isoformat()
        return data


@dataclass(frozen=True)
class ChannelPayload:
    """
    A channel descriptor and its ordered feed entries.
    
    Never mutated after it is returned; with_meta() produces a wrapped copy
    that shares the channel and feed objects.
    """
    channel: Channel
    feeds: tuple[FeedEntry, ...]
    meta: PayloadMeta = PayloadMeta()
    
    @classmethod
    def from_dict(
        cls,
        data: Any,
        channel_id: Optional[str] = None,
    ) -> "ChannelPayload":
        """
        Parse a feeds.json response body.
        
        Raises:
            InvalidResponseError: If the channel object is missing or the
                feeds list is malformed
        """
        if not isinstance(data, dict) or not isinstance(data.get("channel"), dict):
            raise InvalidResponseError(
                "Invalid response format from ThingSpeak API",
                channel_id=channel_id,
                raw_data=data,
            )
        
        feeds = data.get("feeds") or []
        if not isinstance(feeds, list) or not all(isinstance(f, dict) for f in feeds):
            raise InvalidResponseError(
                "Malformed feeds list in ThingSpeak response",
                channel_id=channel_id,
                raw_data=feeds,
            )
        
        return cls(
            channel=Channel.from_dict(data["channel"]),
            feeds=tuple(FeedEntry.from_dict(f) for f in feeds),
        )
    
    def with_meta(self, **changes: Any) -> "ChannelPayload":
        """Return a copy carrying updated provenance flags."""
        return replace(self, meta=replace(self.meta, **changes))
    
    def latest(self) -> Optional[FeedEntry]:
        return self.feeds[-1] if self.feeds else None
    
    def series(self, field_name: str) -> list[tuple[datetime, float]]:
        """(created_at, value) pairs for a field, skipping unusable entries."""
        points = []
        for entry in self.feeds:
            value = entry.value(field_name)
            if entry.created_at is not None and value is not None:
                points.append((entry.created_at, value))
        return points
    
    def field_for_label(self, keyword: str) -> Optional[str]:
        """First field whose label contains keyword, case-insensitive."""
        needle = keyword.lower()
        for name in FEED_FIELDS:
            label = self.channel.label(name)
            if label and needle in label.lower():
                return name
        return None
    
    def to_dict(self) -> dict[str, Any]:
        """Wire shape plus a meta block when any provenance flag is set."""
        data: dict[str, Any] = {
            "channel": dict(self.channel.raw),
            "feeds": [dict(entry.raw) for entry in self.feeds],
        }
        meta = self.meta.to_dict()
        if meta:
            data["meta"] = meta
        return data


@dataclass
class ChannelRequest:
    """Parameters of a live fetch."""
    channel_id: str
    api_key: str
    results: int = 100
    
    def validate(self) -> None:
        """
        Raises:
            ValidationError: On missing credentials or bad result count
        """
        if not str(self.channel_id or "").strip():
            raise ValidationError("Channel ID is required", field_name="channel_id")
        if not str(self.api_key or "").strip():
            raise ValidationError(
                "API Key is required", field_name="api_key", channel_id=str(self.channel_id),
            )
        if isinstance(self.results, bool) or not isinstance(self.results, int):
            raise ValidationError("results must be an integer", field_name="results")
        if not 1 <= self.results <= MAX_RESULTS:
            raise ValidationError(
                f"results must be between 1 and {MAX_RESULTS}", field_name="results",
            )
    
    @property
    def path(self) -> str:
        return f"/channels/{str(self.channel_id).strip()}/feeds.json"
    
    @property
    def cache_key(self) -> str:
        return f"channel_{str(self.channel_id).strip()}_{self.results}"
    
    @property
    def historical(self) -> bool:
        return False
    
    def query_params(self) -> dict[str, Any]:
        return {"api_key": self.api_key, "results": self.results}


@dataclass
class HistoricalRequest:
    """
    Parameters of a date-range fetch. end defaults to now (UTC).
    
    An open-ended range is keyed as "open" rather than by the moving
    end time, so repeated calls share one cache entry.
    """
    channel_id: str
    api_key: str
    start: Optional[DateInput] = None
    end: Optional[DateInput] = None
    open_ended: bool = field(init=False, default=False)
    
    def __post_init__(self) -> None:
        if self.end is None:
            self.end = datetime.now(timezone.utc)
            self.open_ended = True
    
    def validate(self) -> None:
        """
        Raises:
            ValidationError: On missing credentials, missing start or a
                reversed date range
        """
        if not str(self.channel_id or "").strip():
            raise ValidationError("Channel ID is required", field_name="channel_id")
        if not str(self.api_key or "").strip():
            raise ValidationError(
                "API Key is required", field_name="api_key", channel_id=str(self.channel_id),
            )
        if not self.start:
            raise ValidationError(
                "Start date is required for historical data",
                field_name="start",
                channel_id=str(self.channel_id),
            )
        
        for bound in (self.start, self.end):
            if not isinstance(bound, (str, datetime, date)):
                raise ValidationError(f"Unsupported date value: {bound!r}", field_name="start")
        
        start, end = _as_utc(self.start), _as_utc(self.end)
        if start and end and start > end:
            raise ValidationError("start must not be after end", field_name="start")
    
    @property
    def start_param(self) -> str:
        return format_wire_datetime(self.start)
    
    @property
    def end_param(self) -> str:
        return format_wire_datetime(self.end)
    
    @property
    def path(self) -> str:
        return f"/channels/{str(self.channel_id).strip()}/feeds.json"
    
    @property
    def cache_key(self) -> str:
        end = "open" if self.open_ended else self.end_param
        return f"historical_{str(self.channel_id).strip()}_{self.start_param}_{end}"
    
    @property
    def historical(self) -> bool:
        return True
    
    def query_params(self) -> dict[str, Any]:
        return {"api_key": self.api_key, "start": self.start_param, "end": self.end_param}


FeedRequest = Union[ChannelRequest, HistoricalRequest]


@dataclass
class ClientStatus:
    """
    Aggregate client counters.
    
    request_count counts fetches that reached the network, not attempts.
    error_count is the streak of fully failed fetches and resets on success.
    """
    request_count: int = 0
    response_count: int = 0
    error_count: int = 0
    failed_attempts: int = 0
    last_success: Optional[datetime] = None
    last_error: Optional[datetime] = None
    cache_size: int = 0
    
    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "request_count": self.request_count,
            "response_count": self.response_count,
            "error_count": self.error_count,
            "failed_attempts": self.failed_attempts,
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "last_error": self.last_error.isoformat() if self.last_error else None,
            "cache_size": self.cache_size,
        }
