"""Telemetry reductions consumed by the degradation loop.

All reductions are pure functions over bounded sample lists; PerfMonitor
holds those lists in RingBuffers so memory stays flat under any frame rate.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Any, Callable, Iterable

from streamwindow.buffers.ring_buffer import RingBuffer
from streamwindow.domain.models import (
    DroppedFrameSummary,
    FpsSnapshot,
    FrameSummary,
    HeapSummary,
    LongTaskSummary,
    PerfSnapshot,
)
from streamwindow.utils.numbers import finite_or_none, normalize_float, normalize_int

DEFAULT_LONG_TASK_THRESHOLD_MS = 50.0
DEFAULT_SAMPLE_LIMIT = 240
DEFAULT_FRAME_BUDGET_MS = 16.67
DEFAULT_FPS_WINDOW_MS = 1000


def _finite_samples(samples: Iterable[Any] | None) -> list[float]:
    values = []
    for sample in samples or ():
        value = finite_or_none(sample)
        if value is not None:
            values.append(value)
    return values


def aggregate_long_tasks(
    durations_ms: Iterable[Any] | None,
    threshold_ms: Any = DEFAULT_LONG_TASK_THRESHOLD_MS,
) -> LongTaskSummary:
    threshold = normalize_float(threshold_ms, DEFAULT_LONG_TASK_THRESHOLD_MS)
    long_tasks = [d for d in _finite_samples(durations_ms) if d >= threshold]
    return LongTaskSummary(
        count=len(long_tasks),
        total_ms=round(sum(long_tasks)),
        max_ms=round(max(long_tasks, default=0)),
        threshold_ms=threshold,
    )


def reduce_heap_samples(samples_bytes: Iterable[Any] | None) -> HeapSummary:
    values = _finite_samples(samples_bytes)
    if not values:
        return HeapSummary()
    return HeapSummary(
        sample_count=len(values),
        latest_bytes=round(values[-1]),
        peak_bytes=round(max(values)),
        average_bytes=round(sum(values) / len(values)),
        delta_bytes=round(values[-1] - values[0]),
    )


def calculate_dropped_frame_ratio(
    frame_durations_ms: Iterable[Any] | None,
    frame_budget_ms: Any = DEFAULT_FRAME_BUDGET_MS,
) -> DroppedFrameSummary:
    budget = normalize_float(frame_budget_ms, DEFAULT_FRAME_BUDGET_MS)
    durations = _finite_samples(frame_durations_ms)
    dropped = sum(1 for d in durations if d > budget)
    return DroppedFrameSummary(
        total_frames=len(durations),
        dropped_frames=dropped,
        ratio=dropped / len(durations) if durations else 0.0,
        frame_budget_ms=budget,
    )


class RollingFpsCalculator:
    def __init__(self, sample_window_ms: Any = DEFAULT_FPS_WINDOW_MS):
        self.sample_window_ms = normalize_int(
            sample_window_ms, DEFAULT_FPS_WINDOW_MS, minimum=16
        )
        self._frame_times: deque[float] = deque()

    def add_frame_time(self, timestamp_ms: Any) -> FpsSnapshot:
        timestamp = finite_or_none(timestamp_ms)
        if timestamp is not None:
            self._frame_times.append(timestamp)
            cutoff = timestamp - self.sample_window_ms
            while self._frame_times and self._frame_times[0] < cutoff:
                self._frame_times.popleft()
        return self.snapshot()

    def snapshot(self) -> FpsSnapshot:
        count = len(self._frame_times)
        if count < 2:
            return FpsSnapshot(fps=0.0, frame_count=count, window_ms=self.sample_window_ms)
        duration_ms = self._frame_times[-1] - self._frame_times[0]
        fps = (count - 1) * 1000 / duration_ms if duration_ms > 0 else 0.0
        return FpsSnapshot(fps=fps, frame_count=count, window_ms=self.sample_window_ms)

    def reset(self) -> None:
        self._frame_times.clear()


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class PerfMonitor:
    """Bounded sample store for frame, commit and heap telemetry."""

    def __init__(
        self,
        sample_limit: Any = DEFAULT_SAMPLE_LIMIT,
        long_task_threshold_ms: Any = DEFAULT_LONG_TASK_THRESHOLD_MS,
        frame_budget_ms: Any = DEFAULT_FRAME_BUDGET_MS,
        clock: Callable[[], float] | None = None,
    ):
        self.sample_limit = normalize_int(sample_limit, DEFAULT_SAMPLE_LIMIT, minimum=16)
        self.long_task_threshold_ms = normalize_float(
            long_task_threshold_ms, DEFAULT_LONG_TASK_THRESHOLD_MS
        )
        self.frame_budget_ms = normalize_float(frame_budget_ms, DEFAULT_FRAME_BUDGET_MS)
        self._clock = clock or _wall_clock_ms

        self._snapshot_apply_ms: RingBuffer[float] = RingBuffer(self.sample_limit)
        self._commit_ms: RingBuffer[float] = RingBuffer(self.sample_limit)
        self._frame_ms: RingBuffer[float] = RingBuffer(self.sample_limit)
        self._heap_bytes: RingBuffer[float] = RingBuffer(self.sample_limit)
        self._fps = RollingFpsCalculator()
        self.updated_at_unix_ms = int(self._clock())

    def _push(self, buffer: RingBuffer[float], value: Any) -> None:
        sample = finite_or_none(value)
        if sample is not None:
            buffer.push(sample)
        self.updated_at_unix_ms = int(self._clock())

    def record_snapshot_apply(self, duration_ms: Any) -> None:
        self._push(self._snapshot_apply_ms, duration_ms)

    def record_transaction_commit(self, duration_ms: Any) -> None:
        self._push(self._commit_ms, duration_ms)

    def record_frame_duration(self, duration_ms: Any, timestamp_ms: Any = None) -> None:
        self._push(self._frame_ms, duration_ms)
        self._fps.add_frame_time(
            self._clock() if timestamp_ms is None else timestamp_ms
        )

    def record_heap_sample(self, heap_bytes: Any) -> None:
        self._push(self._heap_bytes, heap_bytes)

    def snapshot(self) -> PerfSnapshot:
        dropped = calculate_dropped_frame_ratio(
            self._frame_ms.to_list(), self.frame_budget_ms
        )
        return PerfSnapshot(
            updated_at_unix_ms=self.updated_at_unix_ms,
            snapshot_apply=aggregate_long_tasks(
                self._snapshot_apply_ms.to_list(), self.long_task_threshold_ms
            ),
            transaction_commit=aggregate_long_tasks(
                self._commit_ms.to_list(), self.long_task_threshold_ms
            ),
            frame=FrameSummary(
                **dropped.model_dump(), rolling_fps=self._fps.snapshot().fps
            ),
            heap=reduce_heap_samples(self._heap_bytes.to_list()),
        )

    def reset(self) -> None:
        for buffer in (
            self._snapshot_apply_ms,
            self._commit_ms,
            self._frame_ms,
            self._heap_bytes,
        ):
            buffer.clear()
        self._fps.reset()
        self.updated_at_unix_ms = int(self._clock())
