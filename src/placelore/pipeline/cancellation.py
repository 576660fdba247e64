"""Per-slot cancellation of in-flight asynchronous work."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Generic, TypeVar

from placelore.metrics.observability import PipelineMetrics, get_logger

T = TypeVar("T")


class CancellationNotice(Exception):
    """Raised inside work that notices its token was superseded.

    Never surfaced to users; orchestrators treat it as a silent abort.
    """


class CancellationToken:
    """One-shot abort signal shared by a unit of work and its owner."""

    __slots__ = ("_cancelled", "_reason")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "superseded") -> None:
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancellationNotice(self._reason or "cancelled")


@dataclass
class SlotHandle(Generic[T]):
    """Handle to the work currently occupying a slot."""

    key: str
    token: CancellationToken
    task: "asyncio.Task[T]"

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def done(self) -> bool:
        return self.task.done()

    def cancel(self, reason: str = "cancelled") -> None:
        self.token.cancel(reason)
        self.task.cancel()

    async def wait(self) -> T | None:
        """Wait for the work to finish; superseded work yields ``None``."""

        await asyncio.wait({self.task})
        if self.task.cancelled() or self.token.cancelled:
            return None
        return self.task.result()


@dataclass
class FetchCancelController:
    """Keeps at most one live token per slot key.

    ``run`` cancels whatever occupies the key before scheduling new work, so
    a newer request always supersedes an older one for the same slot.
    """

    _handles: Dict[str, SlotHandle] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._logger = get_logger("cancellation")

    def run(self, key: str, work: Callable[[CancellationToken], Awaitable[T]]) -> SlotHandle[T]:
        self.cancel(key, reason="superseded")
        token = CancellationToken()
        task = asyncio.get_running_loop().create_task(work(token), name=f"slot:{key}")
        handle: SlotHandle[T] = SlotHandle(key=key, token=token, task=task)
        self._handles[key] = handle
        task.add_done_callback(lambda _task, _handle=handle: self._forget(_handle))
        return handle

    def cancel(self, key: str, *, reason: str = "cancelled") -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        if not handle.done():
            PipelineMetrics.observe_cancelled(key)
            self._logger.info("slot.cancelled", slot=key, reason=reason)
        handle.cancel(reason)
        return True

    def cancel_all(self, *, reason: str = "released") -> None:
        for key in list(self._handles):
            self.cancel(key, reason=reason)

    def current(self, key: str) -> SlotHandle | None:
        return self._handles.get(key)

    def is_current(self, key: str, token: CancellationToken) -> bool:
        handle = self._handles.get(key)
        return handle is not None and handle.token is token and not token.cancelled

    def active(self) -> list[SlotHandle]:
        return [handle for handle in self._handles.values() if not handle.done()]

    def _forget(self, handle: SlotHandle) -> None:
        if self._handles.get(handle.key) is handle:
            del self._handles[handle.key]
