from __future__ import annotations

import json
from datetime import date

from placelore.models import DEFAULT_EVENT_COLOR, DEFAULT_EVENT_ICON, UNKNOWN_DATE, CityResolution
from placelore.parsing import (
    clamp_weight,
    coerce_life_hops,
    coerce_related_cities,
    coerce_timeline_events,
    collapse_consecutive_duplicates,
    extract_json_array,
    extract_json_object,
    normalize_keywords,
    parse_city_name,
    parse_city_resolution,
    parse_event_date,
)


def test_array_embedded_in_prose_matches_isolated_parse() -> None:
    payload = '[{"id": "1", "date": "1889-03-31", "title": "Eiffel Tower opens"}]'
    text = f"Sure! Here is the timeline you asked for:\n```json\n{payload}\n```\nLet me know if you need more."
    assert extract_json_array(text) == json.loads(payload)


def test_whole_text_is_parsed_directly() -> None:
    assert extract_json_array('[1, 2, 3]') == [1, 2, 3]
    assert extract_json_object('{"city": "Paris"}') == {"city": "Paris"}


def test_text_without_json_yields_none() -> None:
    assert extract_json_array("no data available") is None
    assert extract_json_array("") is None
    assert extract_json_array("] backwards [") is None
    assert extract_json_object("just words") is None


def test_deeply_nested_brackets_yield_none() -> None:
    assert extract_json_array("[" * 100000) is None
    assert extract_json_array("here: " + "[" * 100000 + "]") is None
    assert extract_json_object("{\"a\": " * 100000 + "}") is None


def test_broken_json_between_brackets_yields_none() -> None:
    assert extract_json_array("here: [{'id': 1,}] thanks") is None


def test_wrong_container_kind_is_rejected() -> None:
    assert extract_json_array('{"a": [1]}') == [1]
    assert extract_json_array('{"a": 1}') is None
    assert extract_json_object("[1, 2]") is None


def test_empty_array_is_distinct_from_no_json() -> None:
    assert extract_json_array("Nothing found: []") == []


def test_collapse_consecutive_duplicates_keeps_non_adjacent_repeats() -> None:
    assert collapse_consecutive_duplicates(["A", "A", "B", "A"], key=lambda item: item) == ["A", "B", "A"]
    assert collapse_consecutive_duplicates([], key=lambda item: item) == []


def test_parse_event_date_formats() -> None:
    assert parse_event_date("1889-03-31") == date(1889, 3, 31)
    assert parse_event_date("1889-03") == date(1889, 3, 1)
    assert parse_event_date("1889") == date(1889, 1, 1)
    assert parse_event_date("1889-03-31T10:00:00Z") == date(1889, 3, 31)
    assert parse_event_date("July 14, 1789") == date(1789, 7, 14)
    assert parse_event_date("Jul 14, 1789") == date(1789, 7, 14)
    assert parse_event_date("14 July 1789") == date(1789, 7, 14)
    assert parse_event_date(" March  1889 ") == date(1889, 3, 1)


def test_parse_event_date_falls_back_to_sentinel() -> None:
    assert parse_event_date(None) == UNKNOWN_DATE
    assert parse_event_date("") == UNKNOWN_DATE
    assert parse_event_date("early 12th century") == UNKNOWN_DATE
    assert parse_event_date("1889-13-40") == UNKNOWN_DATE
    assert parse_event_date(1889) == UNKNOWN_DATE


def test_coerce_timeline_events_applies_defaults() -> None:
    events = coerce_timeline_events(
        [
            {"id": 7, "date": "1900-05-01", "title": " Expo ", "description": "World fair", "icon": "🎡", "color": "#fff"},
            {"title": ""},
            "not an object",
        ],
    )
    assert [event.id for event in events] == ["7", "2", "3"]
    assert events[0].title == "Expo"
    assert events[0].icon == "🎡"
    assert events[1].title == "Untitled"
    assert events[1].date == UNKNOWN_DATE
    assert events[1].description == ""
    assert events[2].icon == DEFAULT_EVENT_ICON
    assert events[2].color == DEFAULT_EVENT_COLOR


def test_normalize_keywords_trims_dedupes_and_caps() -> None:
    items = [
        {"word": " Baguette ", "weight": 80},
        {"word": "baguette", "weight": 10},
        {"word": "", "weight": 50},
        {"word": "Seine", "weight": 500},
        {"word": "Louvre"},
        {"weight": 3},
    ]
    keywords = normalize_keywords(items, max_words=60)
    assert [(k.word, k.weight) for k in keywords] == [("Baguette", 80.0), ("Seine", 100.0), ("Louvre", 1.0)]
    assert len(normalize_keywords(items, max_words=2)) == 2


def test_clamp_weight_rejects_non_numbers() -> None:
    assert clamp_weight("50") == 1.0
    assert clamp_weight(True) == 1.0
    assert clamp_weight(float("nan")) == 1.0
    assert clamp_weight(-5) == 1.0
    assert clamp_weight(42.5) == 42.5


def test_coerce_life_hops_drops_empty_and_collapses_repeats() -> None:
    hops = coerce_life_hops(
        [
            {"city": "Ulm, Germany", "startDate": "1879", "endDate": "1880"},
            {"city": "  "},
            {"city": "Munich, Germany", "sources": ["https://example.org/a", {"url": "https://example.org/b"}, 3]},
            {"city": "munich, germany"},
            {"city": "Zurich, Switzerland", "start_date": "1896"},
            {"city": "Munich, Germany"},
        ],
    )
    assert [hop.city for hop in hops] == ["Ulm, Germany", "Munich, Germany", "Zurich, Switzerland", "Munich, Germany"]
    assert [hop.order for hop in hops] == [0, 1, 2, 3]
    assert hops[0].start_date == "1879"
    assert hops[1].sources == ("https://example.org/a", "https://example.org/b")
    assert hops[2].start_date == "1896"


def test_coerce_related_cities_normalizes_category() -> None:
    cities = coerce_related_cities(
        [
            {"name": "Lyon, France", "reason": "Silk trade", "category": "Historical"},
            {"name": "", "reason": "ignored"},
            {"name": "Montreal, Canada", "category": "gastronomy"},
        ],
    )
    assert [(c.name, c.category) for c in cities] == [("Lyon, France", "historical"), ("Montreal, Canada", "facts")]
    assert cities[1].reason is None


def test_parse_city_resolution_requires_both_names() -> None:
    text = 'Result: {"city": " Paris ", "detailedName": "Paris, Île-de-France, France"}'
    assert parse_city_resolution(text) == CityResolution(city="Paris", detailed_name="Paris, Île-de-France, France")
    assert parse_city_resolution('{"city": "Paris", "detailedName": "  "}') is None
    assert parse_city_resolution('{"city": "Paris"}') is None
    assert parse_city_resolution("Paris") is None


def test_parse_city_name() -> None:
    assert parse_city_name('{"name": "Kyoto, Japan"}') == "Kyoto, Japan"
    assert parse_city_name('{"name": ""}') is None
    assert parse_city_name("Kyoto") is None
