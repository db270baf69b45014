"""Tests for modelvault.events and modelvault.scheduler."""

from __future__ import annotations

import asyncio

from modelvault.events import (
    IMPORT_PROGRESS,
    MODELS_CHANGED,
    EventBus,
    ImportProgressEvent,
)
from modelvault.scheduler import DebouncedScheduler


# ---------------------------------------------------------------------------
# EventBus
# ---------------------------------------------------------------------------


class TestEventBus:
    def test_subscribers_run_in_order(self):
        bus = EventBus()
        calls = []
        bus.subscribe(MODELS_CHANGED, lambda _: calls.append("first"))
        bus.subscribe(MODELS_CHANGED, lambda _: calls.append("second"))

        bus.emit(MODELS_CHANGED)

        assert calls == ["first", "second"]

    def test_payload_is_delivered(self):
        bus = EventBus()
        seen = []
        bus.subscribe(IMPORT_PROGRESS, seen.append)
        event = ImportProgressEvent(model_name="a.gguf", status="completed")

        bus.emit(IMPORT_PROGRESS, event)

        assert seen == [event]

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(MODELS_CHANGED, seen.append)
        unsubscribe()
        unsubscribe()

        bus.emit(MODELS_CHANGED)

        assert seen == []
        assert bus.subscriber_count(MODELS_CHANGED) == 0

    def test_raising_subscriber_does_not_block_others(self):
        bus = EventBus()
        seen = []

        def broken(_):
            raise RuntimeError("boom")

        bus.subscribe(MODELS_CHANGED, broken)
        bus.subscribe(MODELS_CHANGED, seen.append)

        bus.emit(MODELS_CHANGED, "payload")

        assert seen == ["payload"]

    def test_events_are_isolated(self):
        bus = EventBus()
        seen = []
        bus.subscribe(IMPORT_PROGRESS, seen.append)

        bus.emit(MODELS_CHANGED)

        assert seen == []


# ---------------------------------------------------------------------------
# DebouncedScheduler
# ---------------------------------------------------------------------------


class TestDebouncedScheduler:
    def test_burst_collapses_into_one_run(self):
        calls = []

        async def callback():
            calls.append(1)

        async def _run():
            scheduler = DebouncedScheduler(callback)
            for _ in range(5):
                scheduler.schedule(0.01)
            await asyncio.sleep(0.2)
            return scheduler.runs

        assert asyncio.run(_run()) == 1
        assert calls == [1]

    def test_flush_now_runs_immediately(self):
        calls = []

        async def callback():
            calls.append(1)

        async def _run():
            scheduler = DebouncedScheduler(callback)
            scheduler.schedule(60)
            assert scheduler.pending
            flushed = await scheduler.flush_now()
            return flushed, scheduler.pending

        flushed, pending = asyncio.run(_run())
        assert flushed is True
        assert pending is False
        assert calls == [1]

    def test_flush_without_pending_is_noop(self):
        async def callback():
            raise AssertionError("should not run")

        async def _run():
            return await DebouncedScheduler(callback).flush_now()

        assert asyncio.run(_run()) is False

    def test_cancel(self):
        calls = []

        async def callback():
            calls.append(1)

        async def _run():
            scheduler = DebouncedScheduler(callback)
            scheduler.schedule(0.01)
            cancelled = scheduler.cancel()
            await asyncio.sleep(0.05)
            return cancelled, scheduler.cancel()

        assert asyncio.run(_run()) == (True, False)
        assert calls == []

    def test_failing_callback_is_logged_not_raised(self):
        async def callback():
            raise RuntimeError("boom")

        async def _run():
            scheduler = DebouncedScheduler(callback)
            scheduler.schedule(60)
            await scheduler.flush_now()
            return scheduler.runs

        assert asyncio.run(_run()) == 1
