"""Map selection slot: resolve a clicked location, then drive the feature slots."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Mapping

from placelore.geocoding.service import Geocoder
from placelore.metrics.observability import PipelineMetrics, get_logger
from placelore.models import CityResolution, GeoPoint, Query, SearchMode
from placelore.parsing.parser import parse_city_name, parse_city_resolution
from placelore.pipeline.cancellation import CancellationNotice, CancellationToken, FetchCancelController, SlotHandle
from placelore.search.client import PlaceLoreError, SearchBackend
from placelore.services.features import (
    ConnectionsOrchestrator,
    OverviewOrchestrator,
    PersonPathOrchestrator,
    TimelineOrchestrator,
    WordCloudOrchestrator,
)
from placelore.services.orchestrator import FeatureOrchestrator, SlotSnapshot, SlotState
from placelore.services.prompts import PromptBuilder

SELECTION_SLOT = "selection"
UNRESOLVED_MESSAGE = "No city found at this location"
NOT_LOCATED_MESSAGE = "Unable to locate that city"
NO_SUGGESTION_MESSAGE = "No city suggested"
UNEXPECTED_ERROR_MESSAGE = "Failed to resolve the selected location"

EXPLORE_FEATURES = ("overview", "timeline", "wordcloud")
CONNECTION_FEATURES = ("connections",)


class SelectionMode(str, Enum):
    EXPLORE = "explore"
    CONNECTIONS = "connections"


@dataclass(frozen=True)
class SelectionSnapshot:
    """Selection state plus every feature slot."""

    state: SlotState
    mode: SelectionMode | None = None
    point: GeoPoint | None = None
    city: str | None = None
    detailed_name: str | None = None
    display_name: str | None = None
    error: str | None = None
    message: str | None = None
    features: Mapping[str, SlotSnapshot] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolvedLocation:
    display_name: str | None
    resolution: CityResolution | None


class CityResolver:
    """Turns coordinates or names into English city-level names via the search backend."""

    def __init__(self, backend: SearchBackend, geocoder: Geocoder, prompts: PromptBuilder | None = None) -> None:
        self._backend = backend
        self._geocoder = geocoder
        self._prompts = prompts or PromptBuilder()

    async def resolve(self, lat: float, lon: float, token: CancellationToken | None = None) -> ResolvedLocation:
        reverse = await self._geocoder.reverse(lat, lon)
        if token is not None:
            token.raise_if_cancelled()
        resolution = await self.find_city(
            display_name=reverse.display_name,
            address=reverse.address,
            token=token,
        )
        return ResolvedLocation(display_name=reverse.display_name, resolution=resolution)

    async def find_city(
        self,
        *,
        display_name: str | None = None,
        address: Mapping[str, str] | None = None,
        name: str | None = None,
        token: CancellationToken | None = None,
    ) -> CityResolution | None:
        prompt = self._prompts.city_resolution(display_name=display_name, address=address, name=name)
        raw = await self._backend.search(Query(prompt=prompt, mode=SearchMode.FAST, token=token))
        return parse_city_resolution(raw.text)

    async def suggest_random_city(self, token: CancellationToken | None = None) -> str | None:
        raw = await self._backend.search(Query(prompt=self._prompts.random_city(), mode=SearchMode.FAST, token=token))
        return parse_city_name(raw.text)


class MapSession:
    """One user's map: a selection slot, the city feature slots and the person path.

    Selecting a new location supersedes the previous resolution and releases
    every city feature before the new city's features are triggered.
    """

    def __init__(
        self,
        resolver: CityResolver,
        geocoder: Geocoder,
        features: Mapping[str, FeatureOrchestrator],
        person_path: PersonPathOrchestrator,
        *,
        controller: FetchCancelController | None = None,
    ) -> None:
        self._resolver = resolver
        self._geocoder = geocoder
        self._features: Dict[str, FeatureOrchestrator] = dict(features)
        self._person_path = person_path
        self._controller = controller or FetchCancelController()
        self._logger = get_logger("session")
        self._handle: SlotHandle | None = None
        self._state = SlotState.IDLE
        self._mode: SelectionMode | None = None
        self._point: GeoPoint | None = None
        self._resolution: CityResolution | None = None
        self._display_name: str | None = None
        self._error: str | None = None
        self._message: str | None = None
        self._updated_at: datetime | None = None

    @property
    def features(self) -> Mapping[str, FeatureOrchestrator]:
        return self._features

    @property
    def person_path(self) -> PersonPathOrchestrator:
        return self._person_path

    @property
    def state(self) -> SlotState:
        return self._state

    def feature(self, name: str) -> FeatureOrchestrator:
        try:
            return self._features[name]
        except KeyError as exc:
            raise KeyError(f"Unknown feature: {name}") from exc

    def select(self, lat: float, lon: float, mode: SelectionMode = SelectionMode.EXPLORE) -> SlotHandle:
        """Start resolving the location at ``(lat, lon)``. Must run inside the event loop."""

        mode = SelectionMode(mode)
        self._begin(mode, GeoPoint(lat=lat, lon=lon))
        self._logger.info("selection.start", lat=lat, lon=lon, mode=mode.value)
        self._handle = self._controller.run(SELECTION_SLOT, lambda token: self._resolve_point(lat, lon, mode, token))
        return self._handle

    def locate(self, name: str, mode: SelectionMode = SelectionMode.EXPLORE) -> SlotHandle:
        """Forward geocode a typed place name, then select it."""

        mode = SelectionMode(mode)
        self._begin(mode, None)
        self._logger.info("selection.locate", name=name)
        self._handle = self._controller.run(SELECTION_SLOT, lambda token: self._locate(name, mode, token))
        return self._handle

    def shuffle(self, mode: SelectionMode = SelectionMode.EXPLORE) -> SlotHandle:
        """Ask the backend for a random well-known city, then locate it."""

        mode = SelectionMode(mode)
        self._begin(mode, None)
        self._logger.info("selection.shuffle")
        self._handle = self._controller.run(SELECTION_SLOT, lambda token: self._shuffle(mode, token))
        return self._handle

    def clear(self) -> None:
        """Exit to idle: abort the resolution and every feature, clear all stores."""

        self._controller.cancel(SELECTION_SLOT, reason="released")
        self._handle = None
        for orchestrator in self._features.values():
            orchestrator.release()
        self._mode = None
        self._point = None
        self._resolution = None
        self._display_name = None
        self._error = None
        self._message = None
        self._transition(SlotState.IDLE)

    def retry(self) -> SlotHandle | None:
        if self._point is None or self._mode is None:
            return None
        return self.select(self._point.lat, self._point.lon, self._mode)

    async def settle(self) -> None:
        """Wait until the selection and every triggered feature reach a resting state."""

        if self._handle is not None:
            await self._handle.wait()
        await asyncio.gather(*(orchestrator.wait() for orchestrator in self._features.values()))

    async def close(self) -> None:
        self.clear()
        self._person_path.release()

    def snapshot(self) -> SelectionSnapshot:
        resolution = self._resolution
        return SelectionSnapshot(
            state=self._state,
            mode=self._mode,
            point=self._point,
            city=resolution.city if resolution else None,
            detailed_name=resolution.detailed_name if resolution else None,
            display_name=self._display_name,
            error=self._error,
            message=self._message,
            features={name: orchestrator.snapshot() for name, orchestrator in self._features.items()},
        )

    def _begin(self, mode: SelectionMode, point: GeoPoint | None) -> None:
        self._controller.cancel(SELECTION_SLOT, reason="superseded")
        for orchestrator in self._features.values():
            orchestrator.release()
        self._mode = mode
        self._point = point
        self._resolution = None
        self._display_name = None
        self._error = None
        self._message = None
        self._transition(SlotState.LOADING)

    async def _resolve_point(
        self,
        lat: float,
        lon: float,
        mode: SelectionMode,
        token: CancellationToken,
    ) -> SlotState | None:
        try:
            resolved = await self._resolver.resolve(lat, lon, token)
            token.raise_if_cancelled()
        except CancellationNotice:
            return None
        except PlaceLoreError as exc:
            return self._fail(token, str(exc))
        except Exception as exc:  # noqa: BLE001
            return self._unexpected(token, exc)
        self._display_name = resolved.display_name
        if resolved.resolution is None:
            return self._settle_empty(token, UNRESOLVED_MESSAGE)
        return self._activate(token, mode, resolved.resolution)

    async def _locate(self, name: str, mode: SelectionMode, token: CancellationToken) -> SlotState | None:
        try:
            point = await self._geocoder.search(name)
            token.raise_if_cancelled()
        except CancellationNotice:
            return None
        except PlaceLoreError as exc:
            return self._fail(token, str(exc))
        except Exception as exc:  # noqa: BLE001
            return self._unexpected(token, exc)
        if point is None:
            return self._fail(token, NOT_LOCATED_MESSAGE)
        self._point = point
        return await self._resolve_point(point.lat, point.lon, mode, token)

    async def _shuffle(self, mode: SelectionMode, token: CancellationToken) -> SlotState | None:
        try:
            name = await self._resolver.suggest_random_city(token)
            token.raise_if_cancelled()
        except CancellationNotice:
            return None
        except PlaceLoreError as exc:
            return self._fail(token, str(exc))
        except Exception as exc:  # noqa: BLE001
            return self._unexpected(token, exc)
        if not name:
            return self._fail(token, NO_SUGGESTION_MESSAGE)
        self._logger.info("selection.suggested", name=name)
        return await self._locate(name, mode, token)

    def _activate(self, token: CancellationToken, mode: SelectionMode, resolution: CityResolution) -> SlotState | None:
        if token.cancelled:
            return None
        self._resolution = resolution
        self._transition(SlotState.READY)
        self._logger.info("selection.resolved", city=resolution.city, mode=mode.value)
        names = EXPLORE_FEATURES if mode is SelectionMode.EXPLORE else CONNECTION_FEATURES
        for name in names:
            orchestrator = self._features.get(name)
            if orchestrator is not None:
                orchestrator.trigger(resolution)
        return SlotState.READY

    def _settle_empty(self, token: CancellationToken, message: str) -> SlotState | None:
        if token.cancelled:
            return None
        self._message = message
        self._transition(SlotState.EMPTY)
        return SlotState.EMPTY

    def _unexpected(self, token: CancellationToken, exc: Exception) -> SlotState | None:
        self._logger.error("selection.unexpected_error", detail=str(exc), error_type=type(exc).__name__)
        return self._fail(token, str(exc) or UNEXPECTED_ERROR_MESSAGE)

    def _fail(self, token: CancellationToken, error: str) -> SlotState | None:
        if token.cancelled:
            return None
        self._logger.warning("selection.error", detail=error)
        self._error = error
        self._transition(SlotState.ERROR)
        return SlotState.ERROR

    def _transition(self, state: SlotState) -> None:
        self._state = state
        self._updated_at = datetime.now(timezone.utc)
        PipelineMetrics.observe_transition(SELECTION_SLOT, state.value)


def build_session(
    backend: SearchBackend,
    geocoder: Geocoder,
    *,
    prompts: PromptBuilder | None = None,
    timeline_delay: float = 0.25,
    keyword_delay: float = 0.18,
    keyword_batch_size: int = 8,
    keyword_max_words: int = 60,
    connection_max_geocoded: int = 10,
    geocode_concurrency: int = 4,
    person_path_delay: float = 0.2,
) -> MapSession:
    """Wire a session with one orchestrator per feature sharing a controller."""

    prompts = prompts or PromptBuilder()
    controller = FetchCancelController()
    features: Dict[str, FeatureOrchestrator] = {
        "overview": OverviewOrchestrator(backend, prompts=prompts, controller=controller),
        "timeline": TimelineOrchestrator(backend, delay_seconds=timeline_delay, prompts=prompts, controller=controller),
        "wordcloud": WordCloudOrchestrator(
            backend,
            max_words=keyword_max_words,
            batch_size=keyword_batch_size,
            delay_seconds=keyword_delay,
            prompts=prompts,
            controller=controller,
        ),
        "connections": ConnectionsOrchestrator(
            backend,
            geocoder,
            max_cities=connection_max_geocoded,
            concurrency=geocode_concurrency,
            prompts=prompts,
            controller=controller,
        ),
    }
    person_path = PersonPathOrchestrator(
        backend,
        geocoder,
        prompts=prompts,
        delay_seconds=person_path_delay,
        controller=controller,
    )
    return MapSession(
        CityResolver(backend, geocoder, prompts),
        geocoder,
        features,
        person_path,
        controller=controller,
    )
