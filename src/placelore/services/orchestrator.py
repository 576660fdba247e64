"""Per-feature orchestration: query, parse, emit, with supersession."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Generic, Sequence, TypeVar

from placelore.metrics.observability import PipelineMetrics, TimedSection, get_logger
from placelore.models import Query, RawResponse, SearchMode
from placelore.pipeline.cancellation import CancellationNotice, CancellationToken, FetchCancelController, SlotHandle
from placelore.pipeline.emitter import ProgressiveEmitter
from placelore.pipeline.store import KeyedAppendStore
from placelore.search.client import PlaceLoreError, SearchBackend

S = TypeVar("S")
R = TypeVar("R")


class SlotState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True)
class SlotSnapshot(Generic[R]):
    """Point-in-time view of a feature slot for the UI."""

    feature: str
    state: SlotState
    subject: str | None
    records: Sequence[R]
    error: str | None = None
    message: str | None = None
    updated_at: datetime | None = None

    @property
    def retryable(self) -> bool:
        return self.state in (SlotState.ERROR, SlotState.EMPTY)


@dataclass(frozen=True)
class FeatureResult(Generic[R]):
    """Records produced by one query, ready for emission."""

    records: Sequence[R]
    empty_message: str | None = None


class FeatureOrchestrator(ABC, Generic[S, R]):
    """Owns one feature slot: at most one in-flight query and one store.

    ``trigger`` moves the slot to ``LOADING`` (superseding any previous
    query), and the query resolves to ``READY``, ``EMPTY`` or ``ERROR``.
    A superseded query never reaches a terminal state; every write to the
    slot is guarded by the query's token.
    """

    feature: ClassVar[str]
    empty_message: ClassVar[str] = "No data parsed from model response"
    error_message: ClassVar[str] = "Failed to fetch results"

    def __init__(
        self,
        backend: SearchBackend,
        store: KeyedAppendStore,
        *,
        emitter: ProgressiveEmitter | None = None,
        controller: FetchCancelController | None = None,
    ) -> None:
        self._backend = backend
        self._store = store
        self._emitter = emitter or ProgressiveEmitter()
        self._controller = controller or FetchCancelController()
        self._logger = get_logger(f"orchestrator.{self.feature}")
        self._state = SlotState.IDLE
        self._subject: S | None = None
        self._error: str | None = None
        self._message: str | None = None
        self._updated_at: datetime | None = None
        self._handle: SlotHandle | None = None

    @property
    def state(self) -> SlotState:
        return self._state

    @property
    def store(self) -> KeyedAppendStore:
        return self._store

    @property
    def subject(self) -> S | None:
        return self._subject

    @property
    def slot_key(self) -> str:
        return self.feature

    def trigger(self, subject: S) -> SlotHandle:
        """Start (or restart) the slot for ``subject``. Must run inside the event loop."""

        self._controller.cancel(self.slot_key, reason="superseded")
        self._subject = subject
        self._store.clear()
        self._error = None
        self._message = None
        self._transition(SlotState.LOADING)
        self._logger.info("slot.trigger", subject=self.describe_subject(subject))
        self._handle = self._controller.run(self.slot_key, lambda token: self._execute(subject, token))
        return self._handle

    def retry(self) -> SlotHandle | None:
        if self._subject is None:
            return None
        return self.trigger(self._subject)

    def release(self) -> None:
        """Abort any in-flight query and return the slot to ``IDLE``."""

        self._controller.cancel(self.slot_key, reason="released")
        self._handle = None
        self._subject = None
        self._store.clear()
        self._error = None
        self._message = None
        if self._state is not SlotState.IDLE:
            self._transition(SlotState.IDLE)

    async def wait(self) -> None:
        if self._handle is not None:
            await self._handle.wait()

    def snapshot(self) -> SlotSnapshot[R]:
        return SlotSnapshot(
            feature=self.feature,
            state=self._state,
            subject=self.describe_subject(self._subject) if self._subject is not None else None,
            records=tuple(self._store.all()),
            error=self._error,
            message=self._message,
            updated_at=self._updated_at,
        )

    def describe_subject(self, subject: S) -> str:
        return str(subject)

    @abstractmethod
    async def fetch(self, subject: S, token: CancellationToken) -> FeatureResult[R]:
        """Query the backend and parse the response into records."""

    async def search(self, prompt: str, mode: SearchMode, token: CancellationToken) -> RawResponse:
        query = Query(prompt=prompt, mode=mode, token=token)
        raw = await self._backend.search(query)
        token.raise_if_cancelled()
        return raw

    async def _execute(self, subject: S, token: CancellationToken) -> SlotState | None:
        try:
            with TimedSection() as timer:
                result = await self.fetch(subject, token)
            token.raise_if_cancelled()
            PipelineMetrics.observe_search(self.feature, timer.duration, len(result.records))
            if not result.records:
                return self._finish(token, SlotState.EMPTY, message=result.empty_message or self.empty_message)
            emitted = await self._emitter.emit(result.records, self._store, token)
            token.raise_if_cancelled()
            PipelineMetrics.observe_emitted(self.feature, emitted)
            return self._finish(token, SlotState.READY)
        except CancellationNotice:
            self._logger.debug("slot.superseded", subject=self.describe_subject(subject))
            return None
        except PlaceLoreError as exc:
            return self._finish(token, SlotState.ERROR, error=str(exc) or self.error_message)
        except Exception as exc:  # noqa: BLE001
            self._logger.error("slot.unexpected_error", detail=str(exc), error_type=type(exc).__name__)
            return self._finish(token, SlotState.ERROR, error=str(exc) or self.error_message)

    def _finish(
        self,
        token: CancellationToken,
        state: SlotState,
        *,
        error: str | None = None,
        message: str | None = None,
    ) -> SlotState | None:
        if token.cancelled:
            return None
        if state is SlotState.ERROR:
            self._store.clear()
            self._logger.warning("slot.error", detail=error)
        self._error = error
        self._message = message
        self._transition(state)
        return state

    def _transition(self, state: SlotState) -> None:
        self._state = state
        self._updated_at = datetime.now(timezone.utc)
        PipelineMetrics.observe_transition(self.feature, state.value)
