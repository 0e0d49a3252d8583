"""
Shared fixtures: an in-memory transport and a controllable clock.
"""

import copy
from typing import Any, Optional

import pytest

from telemetry_sources.transport import ChannelTransport


CHANNEL_RESPONSE = {
    "channel": {
        "id": 12397,
        "name": "Office Energy Monitor",
        "description": "Smart meter readings",
        "field1": "Energy Usage (kWh)",
        "field2": "Voltage",
        "field3": "Current",
        "created_at": "2020-01-01T00:00:00Z",
        "last_entry_id": 3,
    },
    "feeds": [
        {"created_at": "2024-05-01T10:00:00Z", "entry_id": 1, "field1": "1.50", "field2": "229.8", "field3": "0.007"},
        {"created_at": "2024-05-01T10:15:00Z", "entry_id": 2, "field1": "1.75", "field2": None, "field3": "0.008"},
        {"created_at": "2024-05-01T10:30:00Z", "entry_id": 3, "field1": "nan-ish", "field2": "231.0", "field3": "0.009"},
    ],
}


class FakeTransport(ChannelTransport):
    """
    Scripted transport.
    
    Each call consumes the next scripted response; the last one repeats.
    A response that is an exception instance is raised instead of returned.
    """
    
    def __init__(
        self,
        get_responses: Optional[list[Any]] = None,
        post_responses: Optional[list[Any]] = None,
    ) -> None:
        self.get_responses = list(get_responses or [])
        self.post_responses = list(post_responses or [])
        self.get_calls: list[tuple[str, dict[str, Any]]] = []
        self.post_calls: list[tuple[str, dict[str, Any]]] = []
        self.closed = False
    
    @staticmethod
    def _next(responses: list[Any]) -> Any:
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, BaseException):
            raise response
        return copy.deepcopy(response)
    
    async def get_json(self, url, params, timeout_seconds, channel_id=None):
        self.get_calls.append((url, dict(params)))
        return self._next(self.get_responses)
    
    async def post_json(self, url, body, timeout_seconds, channel_id=None):
        self.post_calls.append((url, copy.deepcopy(body)))
        return self._next(self.post_responses)
    
    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Wall clock that only moves when told to."""
    
    def __init__(self, start: float = 1_714_557_600.0) -> None:
        self.now = start
    
    def __call__(self) -> float:
        return self.now
    
    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def channel_response() -> dict[str, Any]:
    return copy.deepcopy(CHANNEL_RESPONSE)


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
