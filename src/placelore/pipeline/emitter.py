"""Progressive emission of parsed records into a store."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, TypeVar

from placelore.pipeline.cancellation import CancellationToken
from placelore.pipeline.store import RecordSink

R = TypeVar("R")


@dataclass(frozen=True)
class EmitterConfig:
    """Pacing for progressive emission."""

    delay_seconds: float = 0.25
    batch_size: int = 1


class ProgressiveEmitter:
    """Appends records to a sink in small batches, pausing between batches.

    Emission is a finite sequence of store mutations, not a generator: the
    caller awaits ``emit`` and the store fills up while it runs. The token is
    checked before every mutation and after every pause, so a superseded
    emission stops without touching the store again.
    """

    def __init__(
        self,
        config: EmitterConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._config = config or EmitterConfig()
        self._sleep = sleep

    @property
    def config(self) -> EmitterConfig:
        return self._config

    async def emit(self, records: Sequence[R], sink: RecordSink[R], token: CancellationToken) -> int:
        batch_size = max(1, self._config.batch_size)
        emitted = 0
        for start in range(0, len(records), batch_size):
            if start and self._config.delay_seconds > 0:
                await self._sleep(self._config.delay_seconds)
            elif start:
                # zero delay still yields so readers can observe partial state
                await asyncio.sleep(0)
            for record in records[start : start + batch_size]:
                if token.cancelled:
                    return emitted
                if sink.upsert(record):
                    emitted += 1
        return emitted
