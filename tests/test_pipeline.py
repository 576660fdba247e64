"""Tests for cancellation and progressive emission."""

from __future__ import annotations

import asyncio

from placelore.pipeline.cancellation import CancellationNotice, CancellationToken, FetchCancelController
from placelore.pipeline.emitter import EmitterConfig, ProgressiveEmitter
from placelore.pipeline.store import KeyedAppendStore


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


def _store() -> KeyedAppendStore[int, int]:
    return KeyedAppendStore(lambda value: value)


def test_token_raises_after_cancel() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel("superseded")
    token.cancel("released")
    assert token.cancelled
    assert token.reason == "superseded"
    try:
        token.raise_if_cancelled()
    except CancellationNotice as exc:
        assert "superseded" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("expected CancellationNotice")


def test_run_supersedes_previous_work_for_same_key() -> None:
    async def scenario() -> tuple[object, object, bool]:
        controller = FetchCancelController()
        release = asyncio.Event()

        async def slow(token: CancellationToken) -> str:
            await release.wait()
            return "slow"

        async def fast(token: CancellationToken) -> str:
            return "fast"

        first = controller.run("timeline", slow)
        second = controller.run("timeline", fast)
        release.set()
        return await first.wait(), await second.wait(), first.cancelled

    first_result, second_result, first_cancelled = asyncio.run(scenario())
    assert first_result is None
    assert second_result == "fast"
    assert first_cancelled


def test_keys_are_independent() -> None:
    async def scenario() -> list[str]:
        controller = FetchCancelController()

        async def work(token: CancellationToken) -> str:
            await asyncio.sleep(0)
            return "done"

        a = controller.run("timeline", work)
        b = controller.run("wordcloud", work)
        assert len(controller.active()) == 2
        return [await a.wait(), await b.wait()]

    assert asyncio.run(scenario()) == ["done", "done"]


def test_cancel_and_forget() -> None:
    async def scenario() -> tuple[bool, bool, object]:
        controller = FetchCancelController()
        handle = controller.run("selection", lambda token: asyncio.sleep(10))
        cancelled = controller.cancel("selection")
        missing = controller.cancel("selection")
        return cancelled, missing, await handle.wait()

    cancelled, missing, result = asyncio.run(scenario())
    assert cancelled
    assert not missing
    assert result is None


def test_is_current_tracks_latest_token() -> None:
    async def scenario() -> tuple[bool, bool]:
        controller = FetchCancelController()
        first = controller.run("overview", lambda token: asyncio.sleep(10))
        second = controller.run("overview", lambda token: asyncio.sleep(10))
        outcome = controller.is_current("overview", first.token), controller.is_current("overview", second.token)
        controller.cancel_all()
        return outcome

    assert asyncio.run(scenario()) == (False, True)


def test_emitter_paces_batches() -> None:
    sleep = RecordingSleep()
    emitter = ProgressiveEmitter(EmitterConfig(delay_seconds=0.18, batch_size=8), sleep=sleep)
    store = _store()

    emitted = asyncio.run(emitter.emit(list(range(20)), store, CancellationToken()))

    assert emitted == 20
    assert store.all() == list(range(20))
    # 20 records in batches of 8: pauses only between batches
    assert sleep.calls == [0.18, 0.18]


def test_emitter_counts_only_new_records() -> None:
    emitter = ProgressiveEmitter(EmitterConfig(delay_seconds=0, batch_size=1))
    store = _store()
    store.upsert(2)
    assert asyncio.run(emitter.emit([1, 2, 3], store, CancellationToken())) == 2


def test_emitter_stops_when_token_cancelled_mid_emission() -> None:
    token = CancellationToken()
    store = _store()

    async def cancelling_sleep(seconds: float) -> None:
        token.cancel()

    emitter = ProgressiveEmitter(EmitterConfig(delay_seconds=0.25, batch_size=1), sleep=cancelling_sleep)
    emitted = asyncio.run(emitter.emit([1, 2, 3], store, token))

    assert emitted == 1
    assert store.all() == [1]


def test_emitter_with_cancelled_token_touches_nothing() -> None:
    token = CancellationToken()
    token.cancel()
    store = _store()
    assert asyncio.run(ProgressiveEmitter().emit([1, 2], store, token)) == 0
    assert len(store) == 0
