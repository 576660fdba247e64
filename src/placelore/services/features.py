"""Concrete feature slots: overview, timeline, word cloud, connections, person path."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Sequence

from placelore.geocoding.service import Geocoder
from placelore.models import CityOverview, CityResolution, Keyword, LifeHop, RelatedCity, SearchMode, TimelineEvent
from placelore.parsing.parser import (
    coerce_life_hops,
    coerce_related_cities,
    coerce_timeline_events,
    extract_json_array,
    normalize_keywords,
)
from placelore.pipeline.cancellation import CancellationToken, FetchCancelController, SlotHandle
from placelore.pipeline.emitter import EmitterConfig, ProgressiveEmitter
from placelore.pipeline.store import (
    KeyedAppendStore,
    keyword_store,
    life_hop_store,
    related_city_store,
    timeline_store,
)
from placelore.search.client import SearchBackend, TransportError
from placelore.services.orchestrator import FeatureOrchestrator, FeatureResult
from placelore.services.prompts import PromptBuilder

NOT_FAMOUS_MESSAGE = "The person is not very famous, try another one!"
MIN_PARSED_HOPS = 3
MIN_GEOCODED_HOPS = 2


class CityFeatureOrchestrator(FeatureOrchestrator[CityResolution, object]):
    """Base for slots keyed on the currently selected city."""

    def __init__(
        self,
        backend: SearchBackend,
        store: KeyedAppendStore,
        *,
        prompts: PromptBuilder | None = None,
        emitter: ProgressiveEmitter | None = None,
        controller: FetchCancelController | None = None,
    ) -> None:
        super().__init__(backend, store, emitter=emitter, controller=controller)
        self._prompts = prompts or PromptBuilder()

    def describe_subject(self, subject: CityResolution) -> str:
        return subject.city

    def _array(self, text: str) -> list:
        items = extract_json_array(text)
        if items is None:
            self._logger.info("parse.no_json", feature=self.feature, chars=len(text))
            return []
        return items


class OverviewOrchestrator(CityFeatureOrchestrator):
    """Two or three sentence briefing about the city."""

    feature = "overview"
    empty_message = "No overview is available right now"
    error_message = "Failed to fetch description"

    def __init__(self, backend: SearchBackend, **kwargs) -> None:
        store: KeyedAppendStore[str, CityOverview] = KeyedAppendStore(lambda overview: overview.city)
        super().__init__(backend, store, **kwargs)

    async def fetch(self, subject: CityResolution, token: CancellationToken) -> FeatureResult[CityOverview]:
        raw = await self.search(self._prompts.overview(subject.city), SearchMode.FAST, token)
        text = raw.text.strip()
        return FeatureResult([CityOverview(city=subject.city, text=text)] if text else [])


class TimelineOrchestrator(CityFeatureOrchestrator):
    """Chronological key events, streamed in one at a time."""

    feature = "timeline"
    empty_message = "No events parsed from model response"
    error_message = "Failed to generate timeline"

    def __init__(self, backend: SearchBackend, *, delay_seconds: float = 0.25, **kwargs) -> None:
        kwargs.setdefault("emitter", ProgressiveEmitter(EmitterConfig(delay_seconds=delay_seconds, batch_size=1)))
        super().__init__(backend, timeline_store(), **kwargs)

    async def fetch(self, subject: CityResolution, token: CancellationToken) -> FeatureResult[TimelineEvent]:
        prompt = self._prompts.timeline(subject.city, subject.detailed_name)
        raw = await self.search(prompt, SearchMode.PRO, token)
        return FeatureResult(coerce_timeline_events(self._array(raw.text)))


class WordCloudOrchestrator(CityFeatureOrchestrator):
    """Weighted keywords, streamed in small batches and capped."""

    feature = "wordcloud"
    empty_message = "No keywords parsed from model response"
    error_message = "Failed to fetch keywords"

    def __init__(
        self,
        backend: SearchBackend,
        *,
        max_words: int = 60,
        batch_size: int = 8,
        delay_seconds: float = 0.18,
        **kwargs,
    ) -> None:
        kwargs.setdefault(
            "emitter",
            ProgressiveEmitter(EmitterConfig(delay_seconds=delay_seconds, batch_size=batch_size)),
        )
        super().__init__(backend, keyword_store(max_words), **kwargs)
        self._max_words = max_words

    async def fetch(self, subject: CityResolution, token: CancellationToken) -> FeatureResult[Keyword]:
        raw = await self.search(self._prompts.keywords(subject.city), SearchMode.PRO, token)
        return FeatureResult(normalize_keywords(self._array(raw.text), self._max_words))


class ConnectionsOrchestrator(CityFeatureOrchestrator):
    """Cities related to the selection, geocoded so the map can draw arcs."""

    feature = "connections"
    empty_message = "No related cities found"
    error_message = "Failed to fetch related cities"

    def __init__(
        self,
        backend: SearchBackend,
        geocoder: Geocoder,
        *,
        max_cities: int = 10,
        concurrency: int = 4,
        **kwargs,
    ) -> None:
        # single batch, no pacing
        kwargs.setdefault("emitter", ProgressiveEmitter(EmitterConfig(delay_seconds=0, batch_size=max_cities)))
        super().__init__(backend, related_city_store(max_cities), **kwargs)
        self._geocoder = geocoder
        self._max_cities = max_cities
        self._concurrency = max(1, concurrency)

    async def fetch(self, subject: CityResolution, token: CancellationToken) -> FeatureResult[RelatedCity]:
        raw = await self.search(self._prompts.related_cities(subject.city), SearchMode.FAST, token)
        candidates = coerce_related_cities(self._array(raw.text))[: self._max_cities]
        if not candidates:
            return FeatureResult([])
        return FeatureResult(await self._geocode_all(candidates, token))

    async def _geocode_all(self, candidates: Sequence[RelatedCity], token: CancellationToken) -> list[RelatedCity]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def locate(city: RelatedCity) -> RelatedCity | None:
            async with semaphore:
                token.raise_if_cancelled()
                point = await self._geocoder.search(city.name)
            return replace(city, point=point) if point is not None else None

        outcomes = await asyncio.gather(*(locate(city) for city in candidates), return_exceptions=True)
        token.raise_if_cancelled()
        located: list[RelatedCity] = []
        failures: list[BaseException] = []
        for city, outcome in zip(candidates, outcomes):
            if isinstance(outcome, BaseException):
                self._logger.warning("geocode.failed", name=city.name, detail=str(outcome))
                failures.append(outcome)
            elif outcome is not None:
                located.append(outcome)
        if not located and failures:
            first = failures[0]
            raise first if isinstance(first, TransportError) else TransportError(str(first))
        return located


class PersonPathOrchestrator(FeatureOrchestrator[str, LifeHop]):
    """City-to-city life path of a famous person."""

    feature = "person_path"
    empty_message = NOT_FAMOUS_MESSAGE
    error_message = "Failed to trace the life path"

    def __init__(
        self,
        backend: SearchBackend,
        geocoder: Geocoder,
        *,
        prompts: PromptBuilder | None = None,
        delay_seconds: float = 0.2,
        emitter: ProgressiveEmitter | None = None,
        controller: FetchCancelController | None = None,
    ) -> None:
        super().__init__(
            backend,
            life_hop_store(),
            emitter=emitter or ProgressiveEmitter(EmitterConfig(delay_seconds=delay_seconds, batch_size=1)),
            controller=controller,
        )
        self._geocoder = geocoder
        self._prompts = prompts or PromptBuilder()

    def trigger(self, subject: str) -> SlotHandle:
        return super().trigger(subject.strip())

    async def fetch(self, subject: str, token: CancellationToken) -> FeatureResult[LifeHop]:
        raw = await self.search(self._prompts.life_path(subject), SearchMode.PRO, token)
        hops = coerce_life_hops(extract_json_array(raw.text) or [])
        if len(hops) < MIN_PARSED_HOPS:
            return FeatureResult([])
        located: list[LifeHop] = []
        for hop in hops:
            token.raise_if_cancelled()
            point = await self._geocoder.search(hop.city)
            if point is None:
                self._logger.info("geocode.miss", city=hop.city)
                continue
            located.append(replace(hop, point=point, order=len(located)))
        token.raise_if_cancelled()
        if len(located) < MIN_GEOCODED_HOPS:
            return FeatureResult([])
        return FeatureResult(located)
