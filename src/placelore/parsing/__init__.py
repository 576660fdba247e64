"""Parsing of loosely structured model output."""

from .parser import (
    clamp_weight,
    coerce_life_hops,
    coerce_related_cities,
    coerce_timeline_events,
    collapse_consecutive_duplicates,
    extract_json,
    extract_json_array,
    extract_json_object,
    normalize_keywords,
    parse_city_name,
    parse_city_resolution,
    parse_event_date,
)

__all__ = [
    "clamp_weight",
    "coerce_life_hops",
    "coerce_related_cities",
    "coerce_timeline_events",
    "collapse_consecutive_duplicates",
    "extract_json",
    "extract_json_array",
    "extract_json_object",
    "normalize_keywords",
    "parse_city_name",
    "parse_city_resolution",
    "parse_event_date",
]
