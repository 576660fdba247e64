"""Prompt construction for each feature query."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class PromptBuilderConfig:
    """Target sizes requested from the model."""

    timeline_events: int = 8
    related_cities: int = 5
    min_keywords: int = 40
    max_keywords: int = 60


class PromptBuilder:
    """Builds prompts for the AI search backend."""

    def __init__(self, config: PromptBuilderConfig | None = None) -> None:
        self._config = config or PromptBuilderConfig()

    def timeline(self, city: str, detailed_name: str) -> str:
        return "\n".join(
            [
                f"You are a concise historian. List ~{self._config.timeline_events} chronological key historical "
                "events that are directly tied to the City Name.",
                "Use the City Detailed Name only to restrict the geographic region to make a concise search.",
                "Return JSON array only. Fields must be: id (string), date (YYYY-MM-DD or best-known date), "
                "title, description, icon (emoji), color (hex).",
                f"City Name: {city}",
                f"City Detailed Name: {detailed_name}",
            ],
        )

    def overview(self, city: str) -> str:
        return " ".join(
            [
                f"Briefly describe the city of {city}.",
                "Focus on history, geography, and notable facts in 2-3 sentences.",
            ],
        )

    def keywords(self, city: str) -> str:
        return "\n".join(
            [
                "Return JSON array only. No prose.",
                'Each item: { "word": string, "weight": number (1-100) }.',
                "Focus on historical, cultural, economic facts and distinctive local specialities of the city.",
                f"Provide {self._config.min_keywords}-{self._config.max_keywords} salient, non-duplicative items.",
                f"City: {city}",
            ],
        )

    def related_cities(self, city: str) -> str:
        return "\n".join(
            [
                f"List {self._config.related_cities} cities related to {city} via history, culture, or notable facts.",
                "Return a STRICT JSON array only. Each item must be: "
                f'{{"name": "City, Region, Country", "reason": "Brief 1-2 sentence connection to {city}", '
                '"category": "historical"|"cultural"|"facts"}',
            ],
        )

    def life_path(self, person: str) -> str:
        return "\n".join(
            [
                f"Trace the life of {person} as a chronological sequence of the cities they lived in "
                "or spent a significant period of time in.",
                "Return a STRICT JSON array only, ordered from birth to death (or the present). Each item must be: "
                '{"city": "City, Country", "startDate": "YYYY or YYYY-MM-DD", "endDate": "YYYY or YYYY-MM-DD", '
                '"description": "One sentence on what they did there", "sources": ["url", ...]}',
                "Use English city names. Omit fields you cannot source.",
            ],
        )

    def city_resolution(
        self,
        *,
        display_name: str | None,
        address: Mapping[str, str] | None,
        name: str | None = None,
    ) -> str:
        return "\n".join(
            [
                "Task: Extract the best city-level name for the given location input and output it in English (en).",
                "Rules:",
                "- Prefer city/town/municipality/district-level entities over states or countries.",
                "- If input is already English, keep it; otherwise translate to English.",
                "- Avoid street-level details; keep names concise (<= 2 comma-separated parts).",
                'Return STRICT JSON only in the form: {"city": string, "detailedName": string}.',
                '- "city": the concise city-level name in English.',
                '- "detailedName": an English, human-readable display name derived from display_name/address.',
                f"input_name: {name or ''}",
                f"input_display_name: {display_name or ''}",
                f"input_address_json: {json.dumps(dict(address or {}), ensure_ascii=False)}",
            ],
        )

    def random_city(self) -> str:
        return "\n".join(
            [
                'Choose one random, globally-recognized city. Return STRICT JSON only: {"name": string}.',
                "Name must be English, concise (City[, Region][, Country]). No commentary.",
            ],
        )
