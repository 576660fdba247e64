"""Shared domain models used across the PlaceLore pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Sequence

if TYPE_CHECKING:
    from placelore.pipeline.cancellation import CancellationToken

UNKNOWN_DATE = date(1900, 1, 1)
DEFAULT_EVENT_ICON = "\U0001f4c5"
DEFAULT_EVENT_COLOR = "#3498db"


class SearchMode(str, Enum):
    """Result-shape hint passed to the AI search backend."""

    FAST = "fast"
    PRO = "pro"
    AUTO = "auto"


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str


@dataclass(frozen=True)
class Query:
    """A single request to the AI search backend."""

    prompt: str
    mode: SearchMode = SearchMode.PRO
    messages: Sequence[ChatMessage] = ()
    token: CancellationToken | None = field(default=None, compare=False, repr=False)
    model: str | None = None
    temperature: float | None = None
    search_context_size: str | None = None


@dataclass(frozen=True)
class SearchResult:
    """Web result the search backend consulted while answering."""

    title: str
    url: str
    date: str | None = None
    last_updated: str | None = None
    snippet: str | None = None
    source: str | None = None


@dataclass(frozen=True)
class RawResponse:
    """Free-form model text plus optional usage/citation metadata."""

    text: str
    usage: Mapping[str, Any] | None = None
    search_results: Sequence[SearchResult] = ()


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float


@dataclass(frozen=True)
class ReverseGeocodeResult:
    """Display name and address fields for a coordinate."""

    point: GeoPoint
    display_name: str | None
    address: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CityResolution:
    """City-level English name chosen for a map selection."""

    city: str
    detailed_name: str


@dataclass(frozen=True)
class TimelineEvent:
    id: str
    date: date
    title: str
    description: str
    icon: str = DEFAULT_EVENT_ICON
    color: str = DEFAULT_EVENT_COLOR


@dataclass(frozen=True)
class Keyword:
    word: str
    weight: float


@dataclass(frozen=True)
class LifeHop:
    """One city in a person's life path, in the order the model listed it."""

    city: str
    order: int
    start_date: str | None = None
    end_date: str | None = None
    description: str | None = None
    sources: Sequence[str] = ()
    point: GeoPoint | None = None


@dataclass(frozen=True)
class RelatedCity:
    name: str
    category: str = "facts"
    reason: str | None = None
    point: GeoPoint | None = None


@dataclass(frozen=True)
class CityOverview:
    city: str
    text: str
