"""Best-effort extraction of typed records from free-form model text.

Model answers are asked to be "JSON only" but routinely arrive wrapped in
prose or markdown fences. Every function here degrades to an empty result
instead of raising, and every record field has an explicit default.
"""

from __future__ import annotations

import json
import math
import re
from datetime import date, datetime
from typing import Any, Callable, Hashable, Iterable, List, Literal, Mapping, Sequence, TypeVar

from placelore.models import (
    DEFAULT_EVENT_COLOR,
    DEFAULT_EVENT_ICON,
    UNKNOWN_DATE,
    CityResolution,
    Keyword,
    LifeHop,
    RelatedCity,
    TimelineEvent,
)

T = TypeVar("T")

_BRACKETS = {"array": ("[", "]"), "object": ("{", "}")}
_DATE_PATTERN = re.compile(r"^\s*(\d{1,4})(?:-(\d{1,2})(?:-(\d{1,2}))?)?(?:[T ][0-9:.+\-Z]*)?\s*$")
_PROSE_DATE_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%d %B %Y", "%d %b %Y", "%B %Y", "%b %Y")
_KNOWN_CATEGORIES = ("historical", "cultural", "facts")


def extract_json(text: str, kind: Literal["array", "object"]) -> Any:
    """Return the JSON array/object embedded in ``text`` or ``None``."""

    if not isinstance(text, str):
        return None
    expected = list if kind == "array" else dict
    try:
        parsed = json.loads(text)
        if isinstance(parsed, expected):
            return parsed
    except (json.JSONDecodeError, RecursionError):
        pass
    opening, closing = _BRACKETS[kind]
    first = text.find(opening)
    last = text.rfind(closing)
    if first == -1 or last == -1 or last <= first:
        return None
    try:
        parsed = json.loads(text[first : last + 1])
    except (json.JSONDecodeError, RecursionError):
        return None
    return parsed if isinstance(parsed, expected) else None


def extract_json_array(text: str) -> list[Any] | None:
    """``None`` means nothing parseable was found; ``[]`` means the model said "no data"."""

    return extract_json(text, "array")


def extract_json_object(text: str) -> dict[str, Any] | None:
    return extract_json(text, "object")


def collapse_consecutive_duplicates(items: Iterable[T], key: Callable[[T], Hashable]) -> list[T]:
    collapsed: list[T] = []
    previous: Hashable = object()
    for item in items:
        current = key(item)
        if collapsed and current == previous:
            continue
        collapsed.append(item)
        previous = current
    return collapsed


def parse_event_date(value: object) -> date:
    """Parse ISO-style dates (``YYYY``, ``YYYY-MM``, ``YYYY-MM-DD``, timestamps) or
    English prose dates such as ``July 14, 1789``; anything else is the sentinel date.
    """

    if not isinstance(value, str) or not value.strip():
        return UNKNOWN_DATE
    match = _DATE_PATTERN.match(value)
    if match is None:
        return _parse_prose_date(value)
    year, month, day = match.groups()
    try:
        return date(int(year), int(month or 1), int(day or 1))
    except ValueError:
        return UNKNOWN_DATE


def coerce_timeline_events(items: Sequence[object]) -> list[TimelineEvent]:
    events: list[TimelineEvent] = []
    for index, raw in enumerate(items):
        item = _as_mapping(raw)
        events.append(
            TimelineEvent(
                id=_identifier(item.get("id")) or str(index + 1),
                date=parse_event_date(item.get("date")),
                title=_text(item.get("title")) or "Untitled",
                description=_raw_text(item.get("description")),
                icon=_text(item.get("icon")) or DEFAULT_EVENT_ICON,
                color=_text(item.get("color")) or DEFAULT_EVENT_COLOR,
            ),
        )
    return events


def normalize_keywords(items: Sequence[object], max_words: int = 60) -> list[Keyword]:
    seen: set[str] = set()
    keywords: list[Keyword] = []
    for raw in items:
        item = _as_mapping(raw)
        word = _text(item.get("word"))
        if not word:
            continue
        key = word.lower()
        if key in seen:
            continue
        seen.add(key)
        keywords.append(Keyword(word=word, weight=clamp_weight(item.get("weight"))))
        if len(keywords) >= max_words:
            break
    return keywords


def clamp_weight(value: object, low: float = 1.0, high: float = 100.0) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return low
    return float(max(low, min(high, value)))


def coerce_life_hops(items: Sequence[object]) -> list[LifeHop]:
    """Hops without a city are dropped, then consecutive repeats of a city collapse."""

    candidates: list[Mapping[str, Any]] = []
    for raw in items:
        item = _as_mapping(raw)
        if _text(item.get("city")):
            candidates.append(item)
    collapsed = collapse_consecutive_duplicates(candidates, key=lambda item: _text(item.get("city")).lower())
    return [
        LifeHop(
            city=_text(item.get("city")),
            order=order,
            start_date=_text(_first_present(item, "startDate", "start_date")) or None,
            end_date=_text(_first_present(item, "endDate", "end_date")) or None,
            description=_text(item.get("description")) or None,
            sources=_sources(item.get("sources")),
        )
        for order, item in enumerate(collapsed)
    ]


def coerce_related_cities(items: Sequence[object]) -> list[RelatedCity]:
    cities: list[RelatedCity] = []
    for raw in items:
        item = _as_mapping(raw)
        name = _text(item.get("name"))
        if not name:
            continue
        category = _text(item.get("category")).lower()
        cities.append(
            RelatedCity(
                name=name,
                category=category if category in _KNOWN_CATEGORIES else "facts",
                reason=_text(item.get("reason")) or None,
            ),
        )
    return cities


def parse_city_resolution(text: str) -> CityResolution | None:
    parsed = extract_json_object(text)
    if parsed is None:
        return None
    city = parsed.get("city")
    detailed = parsed.get("detailedName")
    if not isinstance(city, str) or not isinstance(detailed, str):
        return None
    if not city.strip() or not detailed.strip():
        return None
    return CityResolution(city=city.strip(), detailed_name=detailed.strip())


def parse_city_name(text: str) -> str | None:
    parsed = extract_json_object(text)
    if parsed is None:
        return None
    return _text(parsed.get("name")) or None


def _as_mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _first_present(item: Mapping[str, Any], *keys: str) -> object:
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def _text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _raw_text(value: object) -> str:
    return value if isinstance(value, str) else ""


def _identifier(value: object) -> str:
    if isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value)
    return _text(value)


def _sources(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    sources: List[str] = []
    for entry in value:
        if isinstance(entry, Mapping):
            entry = entry.get("url")
        text = _text(entry)
        if text:
            sources.append(text)
    return tuple(sources)


def _parse_prose_date(value: str) -> date:
    text = " ".join(value.split())
    for fmt in _PROSE_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return UNKNOWN_DATE
