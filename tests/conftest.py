from __future__ import annotations

import asyncio
from typing import Callable, Dict, Mapping, Union

import pytest

from placelore.models import GeoPoint, Query, RawResponse, ReverseGeocodeResult
from placelore.search.client import TransportError

Reply = Union[str, Exception, Callable[[Query], str]]


class StubSearchBackend:
    """Answers queries by matching a substring of the prompt."""

    def __init__(self, replies: Mapping[str, Reply] | None = None, *, default: Reply = "") -> None:
        self.replies: Dict[str, Reply] = dict(replies or {})
        self.default = default
        self.queries: list[Query] = []
        self.gates: Dict[str, asyncio.Event] = {}

    def gate(self, needle: str) -> asyncio.Event:
        """Hold queries matching ``needle`` until the returned event is set."""

        event = asyncio.Event()
        self.gates[needle] = event
        return event

    async def search(self, query: Query) -> RawResponse:
        self.queries.append(query)
        text = query.prompt or " ".join(message.content for message in query.messages)
        for needle, event in list(self.gates.items()):
            if needle in text:
                await event.wait()
        reply = self.default
        for needle, candidate in self.replies.items():
            if needle in text:
                reply = candidate
                break
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(query)
        await asyncio.sleep(0)
        return RawResponse(text=reply, usage={"total_tokens": 1})


class StubGeocoder:
    def __init__(
        self,
        points: Mapping[str, GeoPoint] | None = None,
        *,
        display_name: str = "Paris, Île-de-France, France",
        failing: tuple[str, ...] = (),
    ) -> None:
        self.points = {name.lower(): point for name, point in (points or {}).items()}
        self.display_name = display_name
        self.failing = failing
        self.searches: list[str] = []
        self.reverse_calls: list[tuple[float, float]] = []

    async def reverse(self, lat: float, lon: float) -> ReverseGeocodeResult:
        self.reverse_calls.append((lat, lon))
        await asyncio.sleep(0)
        return ReverseGeocodeResult(
            point=GeoPoint(lat=lat, lon=lon),
            display_name=self.display_name,
            address={"city": "Paris", "country": "France"},
        )

    async def search(self, name: str) -> GeoPoint | None:
        self.searches.append(name)
        await asyncio.sleep(0)
        if name in self.failing:
            raise TransportError(f"geocoder down for {name}")
        return self.points.get(name.lower())


@pytest.fixture
def backend() -> StubSearchBackend:
    return StubSearchBackend()


@pytest.fixture
def geocoder() -> StubGeocoder:
    return StubGeocoder()
