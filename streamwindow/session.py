"""Dashboard session: the single owner of every bounded structure.

Wires raw record batches through the live window into the commit store,
lets the degradation controller gate which batches render, and purges
everything on heap pressure. Nothing here is process-global; two sessions
never share state.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Iterable

from prometheus_client import CollectorRegistry

from streamwindow.commit.scheduler import FrameScheduler, Timer
from streamwindow.commit.store import StreamCommitStore
from streamwindow.core.config import Settings
from streamwindow.core.config import settings as default_settings
from streamwindow.core.logger import get_logger
from streamwindow.domain.models import EMPTY_COMMIT, Commit, PerfSnapshot, Slot
from streamwindow.health.degradation import BYTES_PER_MB, AdaptiveDegradationController
from streamwindow.health.perf_metrics import PerfMonitor
from streamwindow.metrics import StreamMetrics
from streamwindow.render.slot_model import project, resolve_selection_index
from streamwindow.utils.numbers import finite_or_none, is_finite_number
from streamwindow.window.live_store import (
    LiveWindowStore,
    SnapshotResult,
    field_value,
    rows_reference_equal,
)

logger = get_logger("streamwindow.session")


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class DashboardSession:
    def __init__(
        self,
        settings: Settings | None = None,
        scheduler: FrameScheduler | None = None,
        timer: Timer | None = None,
        clock: Callable[[], float] | None = None,
        registry: CollectorRegistry | None = None,
    ):
        self.settings = settings or default_settings
        self._clock = clock or _wall_clock_ms
        self.metrics = StreamMetrics(
            registry if registry is not None else CollectorRegistry()
        )

        s = self.settings
        self.window = LiveWindowStore(clock=self._clock, metrics=self.metrics)
        self.store = StreamCommitStore(
            scheduler=scheduler,
            sync_fallback=s.commit_sync_fallback,
            detail_cache_limit=s.detail_cache_limit,
            metrics=self.metrics,
        )
        self.controller = AdaptiveDegradationController(
            lag_threshold_ms=s.sampling_lag_threshold_ms,
            stride=s.sampling_stride,
            flush_idle_ms=s.sampling_flush_idle_ms,
            heap_emergency_purge_mb=s.heap_emergency_purge_mb,
            timer=timer,
            on_emergency_purge=self.emergency_purge,
            metrics=self.metrics,
        )
        self.perf = PerfMonitor(
            sample_limit=s.perf_sample_limit,
            long_task_threshold_ms=s.long_task_threshold_ms,
            frame_budget_ms=s.frame_budget_ms,
            clock=self._clock,
        )

        self._sampled_commit: Commit | None = None
        self._batch_index = 0
        self._secondary_rows: tuple[Any, ...] = ()
        self._slots: tuple[Slot, ...] | None = None

    @property
    def batch_index(self) -> int:
        return self._batch_index

    @property
    def sampled_commit(self) -> Commit | None:
        return self._sampled_commit

    def _observed_at(self, record: Any) -> float:
        value = field_value(record, self.window.timestamp_field)
        return value if is_finite_number(value) else 0

    def ingest(self, records: Iterable[Any] | None) -> SnapshotResult:
        """Merge one upstream batch into the window and queue its commit."""
        started = time.perf_counter()
        ordered = sorted(records or (), key=self._observed_at, reverse=True)
        result = self.window.snapshot(
            ordered,
            max_items=self.settings.window_max_items,
            max_age_ms=self.settings.window_max_age_ms,
            now_unix_ms=self._clock(),
        )

        secondary = result.rows[: self.settings.snapshot_row_limit]
        if rows_reference_equal(self._secondary_rows, secondary):
            secondary = self._secondary_rows
        self._secondary_rows = secondary

        self.perf.record_snapshot_apply((time.perf_counter() - started) * 1000)
        self.queue_commit(Commit(primary_rows=result.rows, secondary_rows=secondary))
        return result

    def queue_commit(self, commit: Commit) -> None:
        self._sampled_commit = commit
        self._batch_index += 1
        if self.controller.should_render_batch(self._batch_index):
            self.controller.clear_trailing_flush()
            self._flush_sampled_commit()
            return
        self.controller.schedule_trailing_flush(self.flush)

    def _flush_sampled_commit(self) -> bool:
        commit = self._sampled_commit
        if commit is None:
            return False
        self._sampled_commit = None
        self.store.enqueue_commit(commit)
        return True

    def flush(self) -> None:
        """Release a throttled commit, or force the pending frame to apply now."""
        if self._flush_sampled_commit():
            return
        started = time.perf_counter()
        self.store.flush()
        self.perf.record_transaction_commit((time.perf_counter() - started) * 1000)

    def record_frame(self, delta_ms: Any, timestamp_ms: Any = None) -> bool:
        delta = finite_or_none(delta_ms)
        if delta is None or delta < 0:
            return self.controller.is_sampling_mode()
        self.perf.record_frame_duration(delta, timestamp_ms)
        return self.controller.record_frame_delta(delta)

    def record_heap(self, used_bytes: Any) -> bool:
        self.perf.record_heap_sample(used_bytes)
        return self.controller.record_heap_bytes(used_bytes)

    def emergency_purge(self, used_bytes: float = 0) -> None:
        self._sampled_commit = None
        self._batch_index = 0
        self.store.cancel()
        self.window.reset()
        self.store.details.clear()
        self._secondary_rows = ()
        self._slots = None
        self.store.apply_commit(EMPTY_COMMIT)
        logger.warning(
            "Memory pressure detected, live buffers purged",
            extra={"heap_used_mb": round(used_bytes / BYTES_PER_MB)},
        )

    def slots(self, slot_count: Any = None) -> tuple[Slot, ...]:
        count = self.settings.slot_count if slot_count is None else slot_count
        self._slots = project(self.store.primary_rows, count, self._slots)
        return self._slots

    def selection_index(self, visible_offset: Any = 0) -> int:
        return resolve_selection_index(
            self.store.primary_rows, self.store.selected_id, visible_offset
        )

    def perf_snapshot(self) -> PerfSnapshot:
        return self.perf.snapshot()

    def reset(self) -> None:
        self._sampled_commit = None
        self._batch_index = 0
        self._secondary_rows = ()
        self._slots = None
        self.controller.reset()
        self.store.reset()
        self.window.reset()
        self.perf.reset()

    def close(self) -> None:
        self.reset()
        logger.info("Dashboard closed")

    def __enter__(self) -> "DashboardSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
