import asyncio

import pytest

from streamwindow.commit.scheduler import (
    AsyncioFrameScheduler,
    AsyncioTimer,
    FrameScheduler,
    ManualFrameScheduler,
    ManualTimer,
    Timer,
)
from streamwindow.commit.store import StreamCommitStore
from streamwindow.domain.models import Commit


def test_implementations_satisfy_protocols():
    assert isinstance(ManualFrameScheduler(), FrameScheduler)
    assert isinstance(AsyncioFrameScheduler(), FrameScheduler)
    assert isinstance(ManualTimer(), Timer)
    assert isinstance(AsyncioTimer(), Timer)


def test_manual_frame_scheduler_runs_each_callback_once():
    frames = ManualFrameScheduler()
    calls = []
    frames.schedule(lambda: calls.append("a"))
    handle = frames.schedule(lambda: calls.append("b"))
    frames.cancel(handle)
    frames.cancel(handle)
    frames.cancel("unknown")

    assert frames.run_frame() == 1
    assert frames.run_frame() == 0
    assert calls == ["a"]


def test_manual_frame_scheduler_defers_callbacks_scheduled_during_frame():
    frames = ManualFrameScheduler()
    calls = []

    def reschedule():
        calls.append("first")
        frames.schedule(lambda: calls.append("second"))

    frames.schedule(reschedule)
    frames.run_frame()
    assert calls == ["first"]
    frames.run_frame()
    assert calls == ["first", "second"]


def test_manual_timer_fires_in_deadline_order():
    timer = ManualTimer()
    calls = []
    timer.call_later(300, lambda: calls.append("late"))
    timer.call_later(100, lambda: calls.append("early"))
    cancelled = timer.call_later(200, lambda: calls.append("cancelled"))
    timer.cancel(cancelled)

    assert timer.advance(150) == 1
    assert calls == ["early"]
    assert timer.advance(150) == 1
    assert calls == ["early", "late"]
    assert timer.now_ms == 300
    assert timer.pending == 0


@pytest.mark.asyncio
async def test_asyncio_frame_scheduler_drives_commit_store():
    store = StreamCommitStore(scheduler=AsyncioFrameScheduler(frame_interval_ms=1))
    rows = ({"id": "a"},)
    store.enqueue_commit(Commit(primary_rows=rows))
    assert store.primary_rows == ()

    await asyncio.sleep(0.02)
    assert store.primary_rows is rows
    assert store.selected_id == "a"


@pytest.mark.asyncio
async def test_asyncio_frame_cancel_is_idempotent():
    scheduler = AsyncioFrameScheduler(frame_interval_ms=1)
    calls = []
    handle = scheduler.schedule(lambda: calls.append(1))
    scheduler.cancel(handle)
    scheduler.cancel(handle)
    scheduler.cancel(None)
    await asyncio.sleep(0.02)
    assert calls == []


@pytest.mark.asyncio
async def test_asyncio_timer_fires_after_delay():
    timer = AsyncioTimer()
    fired = asyncio.Event()
    timer.call_later(5, fired.set)
    await asyncio.wait_for(fired.wait(), timeout=1)
    assert fired.is_set()
