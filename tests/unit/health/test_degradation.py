import logging
import math

import pytest

from streamwindow.commit.scheduler import AsyncioTimer
from streamwindow.health.degradation import (
    BYTES_PER_MB,
    STABLE_FRAME_COUNT_TO_EXIT,
    AdaptiveDegradationController,
)


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)


class TestSamplingMode:
    def test_single_slow_frame_enters_sampling(self):
        changes = Recorder()
        controller = AdaptiveDegradationController(
            lag_threshold_ms=30, on_sampling_mode_change=changes
        )
        assert controller.record_frame_delta(35) is True
        assert controller.is_sampling_mode()
        assert changes.calls == [(True,)]

    def test_threshold_itself_is_within_budget(self):
        controller = AdaptiveDegradationController(lag_threshold_ms=30)
        assert controller.record_frame_delta(30) is False

    def test_exactly_five_stable_frames_exit(self):
        changes = Recorder()
        controller = AdaptiveDegradationController(on_sampling_mode_change=changes)
        controller.record_frame_delta(35)
        for _ in range(STABLE_FRAME_COUNT_TO_EXIT - 1):
            assert controller.record_frame_delta(16) is True
        assert controller.record_frame_delta(30) is False
        assert changes.calls == [(True,), (False,)]

    def test_slow_frame_resets_the_streak(self):
        controller = AdaptiveDegradationController()
        controller.record_frame_delta(35)
        for _ in range(4):
            controller.record_frame_delta(10)
        assert controller.state.stable_frame_count == 4

        controller.record_frame_delta(31)
        assert controller.state.stable_frame_count == 0
        for _ in range(4):
            assert controller.record_frame_delta(10) is True
        assert controller.record_frame_delta(10) is False

    def test_repeated_slow_frames_notify_once(self):
        changes = Recorder()
        controller = AdaptiveDegradationController(on_sampling_mode_change=changes)
        controller.record_frame_delta(50)
        controller.record_frame_delta(50)
        assert changes.calls == [(True,)]

    def test_non_finite_delta_is_ignored(self):
        controller = AdaptiveDegradationController()
        assert controller.record_frame_delta(math.nan) is False
        controller.record_frame_delta(99)
        assert controller.record_frame_delta(None) is True
        assert controller.state.stable_frame_count == 0


class TestBatchGating:
    def test_normal_mode_renders_every_batch(self):
        controller = AdaptiveDegradationController()
        assert all(controller.should_render_batch(i) for i in range(1, 12))

    def test_sampling_mode_renders_every_stride(self):
        controller = AdaptiveDegradationController(stride=5)
        controller.record_frame_delta(100)
        rendered = [i for i in range(1, 16) if controller.should_render_batch(i)]
        assert rendered == [5, 10, 15]

    def test_batch_index_is_coerced(self):
        controller = AdaptiveDegradationController(stride=1)
        controller.record_frame_delta(100)
        assert controller.should_render_batch(math.nan) is True
        controller = AdaptiveDegradationController(stride=2)
        controller.record_frame_delta(100)
        assert controller.should_render_batch(-8) is False
        assert controller.should_render_batch(4.7) is True


class TestTrailingFlush:
    def test_flush_fires_once_after_idle(self, timer):
        flushes = Recorder()
        controller = AdaptiveDegradationController(flush_idle_ms=500, timer=timer)
        controller.record_frame_delta(100)

        assert controller.schedule_trailing_flush(flushes) is True
        assert controller.state.trailing_flush_scheduled is True
        timer.advance(499)
        assert flushes.calls == []
        timer.advance(1)
        assert flushes.calls == [()]
        assert controller.state.trailing_flush_scheduled is False
        timer.advance(5_000)
        assert flushes.calls == [()]

    def test_rearming_debounces(self, timer):
        flushes = Recorder()
        controller = AdaptiveDegradationController(flush_idle_ms=500, timer=timer)
        controller.record_frame_delta(100)

        controller.schedule_trailing_flush(flushes)
        timer.advance(400)
        controller.schedule_trailing_flush(flushes)
        timer.advance(400)
        assert flushes.calls == []
        timer.advance(100)
        assert flushes.calls == [()]
        assert timer.pending == 0

    def test_not_armed_in_normal_mode(self, timer):
        controller = AdaptiveDegradationController(timer=timer)
        assert controller.schedule_trailing_flush(Recorder()) is False
        assert timer.pending == 0

    def test_not_armed_without_timer(self):
        controller = AdaptiveDegradationController()
        controller.record_frame_delta(100)
        assert controller.schedule_trailing_flush(Recorder()) is False

    def test_uncallable_timer_disables_flush(self, caplog):
        caplog.set_level(logging.WARNING)
        controller = AdaptiveDegradationController(timer=object())
        controller.record_frame_delta(100)
        assert controller.schedule_trailing_flush(Recorder()) is False
        assert any("not callable" in r.getMessage() for r in caplog.records)

    def test_exit_cancels_pending_flush(self, timer):
        flushes = Recorder()
        controller = AdaptiveDegradationController(timer=timer)
        controller.record_frame_delta(100)
        controller.schedule_trailing_flush(flushes)
        for _ in range(STABLE_FRAME_COUNT_TO_EXIT):
            controller.record_frame_delta(1)
        assert timer.pending == 0
        timer.advance(10_000)
        assert flushes.calls == []

    def test_clear_is_idempotent(self, timer):
        controller = AdaptiveDegradationController(timer=timer)
        controller.clear_trailing_flush()
        controller.record_frame_delta(100)
        controller.schedule_trailing_flush(Recorder())
        controller.clear_trailing_flush()
        controller.clear_trailing_flush()
        assert timer.pending == 0


class TestHeapPressure:
    def test_breach_fires_every_time(self):
        purges = Recorder()
        controller = AdaptiveDegradationController(
            heap_emergency_purge_mb=400, on_emergency_purge=purges
        )
        over = 401 * BYTES_PER_MB
        assert controller.record_heap_bytes(over) is True
        assert controller.record_heap_bytes(over) is True
        assert purges.calls == [(over,), (over,)]

    def test_at_threshold_is_not_a_breach(self):
        purges = Recorder()
        controller = AdaptiveDegradationController(on_emergency_purge=purges)
        assert controller.record_heap_bytes(400 * BYTES_PER_MB) is False
        assert controller.record_heap_bytes(math.inf) is False
        assert controller.record_heap_bytes("garbage") is False
        assert purges.calls == []

    def test_breach_without_callback_still_reports(self):
        controller = AdaptiveDegradationController()
        assert controller.record_heap_bytes(2_000 * BYTES_PER_MB) is True


@pytest.mark.parametrize(
    "kwargs, attr, expected",
    [
        ({"lag_threshold_ms": 5}, "lag_threshold_ms", 16),
        ({"lag_threshold_ms": 500}, "lag_threshold_ms", 120),
        ({"lag_threshold_ms": math.nan}, "lag_threshold_ms", 30),
        ({"stride": 0}, "stride", 1),
        ({"stride": 99}, "stride", 20),
        ({"flush_idle_ms": 10}, "flush_idle_ms", 100),
        ({"flush_idle_ms": "x"}, "flush_idle_ms", 500),
        ({"heap_emergency_purge_mb": 4096}, "heap_emergency_purge_mb", 1024),
        ({"heap_emergency_purge_mb": 1}, "heap_emergency_purge_mb", 128),
    ],
)
def test_configuration_is_clamped(kwargs, attr, expected):
    controller = AdaptiveDegradationController(**kwargs)
    assert getattr(controller, attr) == expected


def test_reset_returns_to_normal(timer, metrics, registry):
    controller = AdaptiveDegradationController(timer=timer, metrics=metrics)
    controller.record_frame_delta(100)
    controller.schedule_trailing_flush(Recorder())
    assert registry.get_sample_value("streamwindow_sampling_mode") == 1

    controller.reset()
    assert controller.state.sampling_mode is False
    assert timer.pending == 0
    assert registry.get_sample_value("streamwindow_sampling_mode") == 0
    assert registry.get_sample_value("streamwindow_sampling_entries_total") == 1


def test_emergency_purge_metric(metrics, registry):
    controller = AdaptiveDegradationController(metrics=metrics)
    controller.record_heap_bytes(1_000 * BYTES_PER_MB)
    assert registry.get_sample_value("streamwindow_emergency_purges_total") == 1


class FailingTimer:
    def call_later(self, delay_ms, callback):
        raise RuntimeError("no running event loop")

    def cancel(self, handle):
        raise AssertionError("nothing was armed")


class TestTimerFailures:
    def test_raising_timer_reports_not_armed(self, caplog):
        caplog.set_level(logging.WARNING)
        controller = AdaptiveDegradationController(timer=FailingTimer())
        controller.record_frame_delta(100)

        assert controller.schedule_trailing_flush(Recorder()) is False
        assert controller.state.trailing_flush_scheduled is False
        assert any("could not be armed" in r.getMessage() for r in caplog.records)

        controller.clear_trailing_flush()
        for _ in range(STABLE_FRAME_COUNT_TO_EXIT):
            controller.record_frame_delta(1)
        assert controller.is_sampling_mode() is False

    def test_asyncio_timer_outside_loop_is_not_armed(self):
        controller = AdaptiveDegradationController(timer=AsyncioTimer())
        controller.record_frame_delta(100)
        assert controller.schedule_trailing_flush(Recorder()) is False

    def test_failing_cancel_does_not_block_exit(self, timer, caplog, monkeypatch):
        caplog.set_level(logging.WARNING)
        flushes = Recorder()
        controller = AdaptiveDegradationController(timer=timer)
        controller.record_frame_delta(100)
        controller.schedule_trailing_flush(flushes)

        def broken_cancel(handle):
            raise RuntimeError("handle already released")

        monkeypatch.setattr(timer, "cancel", broken_cancel)
        for _ in range(STABLE_FRAME_COUNT_TO_EXIT):
            controller.record_frame_delta(1)

        assert controller.is_sampling_mode() is False
        assert controller.state.trailing_flush_scheduled is False
        assert any("cancel failed" in r.getMessage() for r in caplog.records)
