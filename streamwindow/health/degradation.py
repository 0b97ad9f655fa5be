"""Adaptive degradation: sampling-mode backpressure and emergency purge signal.

A single slow frame switches rendering into sampling mode, where only every
``stride``-th batch is rendered and a debounced trailing flush guarantees a
final consistent render. ``STABLE_FRAME_COUNT_TO_EXIT`` consecutive frames
within budget switch back. Heap readings above the purge threshold notify
the owner, which decides what to drop.
"""

from __future__ import annotations

from typing import Any, Callable

from streamwindow.commit.scheduler import Timer
from streamwindow.core.logger import get_logger
from streamwindow.domain.models import DegradationState
from streamwindow.metrics import StreamMetrics
from streamwindow.utils.numbers import finite_or_none, normalize_int

logger = get_logger("streamwindow.health")

STABLE_FRAME_COUNT_TO_EXIT = 5
BYTES_PER_MB = 1024 * 1024

DEFAULT_LAG_THRESHOLD_MS = 30
DEFAULT_STRIDE = 5
DEFAULT_FLUSH_IDLE_MS = 500
DEFAULT_HEAP_EMERGENCY_PURGE_MB = 400


class AdaptiveDegradationController:
    def __init__(
        self,
        lag_threshold_ms: Any = DEFAULT_LAG_THRESHOLD_MS,
        stride: Any = DEFAULT_STRIDE,
        flush_idle_ms: Any = DEFAULT_FLUSH_IDLE_MS,
        heap_emergency_purge_mb: Any = DEFAULT_HEAP_EMERGENCY_PURGE_MB,
        timer: Timer | None = None,
        on_sampling_mode_change: Callable[[bool], None] | None = None,
        on_emergency_purge: Callable[[float], None] | None = None,
        metrics: StreamMetrics | None = None,
    ):
        self.lag_threshold_ms = normalize_int(
            lag_threshold_ms, DEFAULT_LAG_THRESHOLD_MS, 16, 120
        )
        self.stride = normalize_int(stride, DEFAULT_STRIDE, 1, 20)
        self.flush_idle_ms = normalize_int(flush_idle_ms, DEFAULT_FLUSH_IDLE_MS, 100, 2000)
        self.heap_emergency_purge_mb = normalize_int(
            heap_emergency_purge_mb, DEFAULT_HEAP_EMERGENCY_PURGE_MB, 128, 1024
        )
        self.emergency_purge_threshold_bytes = self.heap_emergency_purge_mb * BYTES_PER_MB

        if timer is not None and not callable(getattr(timer, "call_later", None)):
            logger.warning(
                "Trailing flush timer is not callable, flushes disabled",
                extra={"timer_type": type(timer).__name__},
            )
            timer = None
        self._timer = timer
        self._on_sampling_mode_change = on_sampling_mode_change
        self._on_emergency_purge = on_emergency_purge
        self._metrics = metrics

        self._sampling_mode = False
        self._stable_frame_count = 0
        self._trailing_flush_handle: Any = None

    @property
    def state(self) -> DegradationState:
        return DegradationState(
            sampling_mode=self._sampling_mode,
            stable_frame_count=self._stable_frame_count,
            trailing_flush_scheduled=self._trailing_flush_handle is not None,
        )

    def is_sampling_mode(self) -> bool:
        return self._sampling_mode

    def _enter_sampling_mode(self, delta_ms: float) -> None:
        self._sampling_mode = True
        self._stable_frame_count = 0
        logger.info(
            "Entering sampling mode",
            extra={"frame_delta_ms": delta_ms, "lag_threshold_ms": self.lag_threshold_ms},
        )
        if self._metrics is not None:
            self._metrics.sampling_mode.set(1)
            self._metrics.sampling_entries.inc()
        if self._on_sampling_mode_change is not None:
            self._on_sampling_mode_change(True)

    def _exit_sampling_mode(self) -> None:
        self._sampling_mode = False
        self._stable_frame_count = 0
        self.clear_trailing_flush()
        logger.info("Leaving sampling mode")
        if self._metrics is not None:
            self._metrics.sampling_mode.set(0)
        if self._on_sampling_mode_change is not None:
            self._on_sampling_mode_change(False)

    def record_frame_delta(self, delta_ms: Any) -> bool:
        """Feed one frame interval; returns whether sampling mode is active."""
        delta = finite_or_none(delta_ms)
        if delta is None:
            return self._sampling_mode
        if delta > self.lag_threshold_ms:
            if self._sampling_mode:
                self._stable_frame_count = 0
            else:
                self._enter_sampling_mode(delta)
            return True
        if not self._sampling_mode:
            return False
        self._stable_frame_count += 1
        if self._stable_frame_count >= STABLE_FRAME_COUNT_TO_EXIT:
            self._exit_sampling_mode()
        return self._sampling_mode

    def should_render_batch(self, batch_index: Any) -> bool:
        if not self._sampling_mode:
            return True
        index = normalize_int(batch_index, 1, minimum=1)
        return index % self.stride == 0

    def schedule_trailing_flush(self, flush: Callable[[], None]) -> bool:
        """Arm (or re-arm) the idle flush; returns False when nothing was armed."""
        if not self._sampling_mode or self._timer is None:
            return False
        self.clear_trailing_flush()

        def fire() -> None:
            self._trailing_flush_handle = None
            if flush is not None:
                flush()

        try:
            handle = self._timer.call_later(self.flush_idle_ms, fire)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Trailing flush could not be armed",
                extra={"timer_type": type(self._timer).__name__, "error": str(exc)},
            )
            return False
        self._trailing_flush_handle = handle
        return True

    def clear_trailing_flush(self) -> None:
        handle = self._trailing_flush_handle
        self._trailing_flush_handle = None
        if handle is None or self._timer is None:
            return
        cancel = getattr(self._timer, "cancel", None)
        if not callable(cancel):
            return
        try:
            cancel(handle)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Trailing flush cancel failed", extra={"error": str(exc)})

    def record_heap_bytes(self, used_bytes: Any) -> bool:
        used = finite_or_none(used_bytes)
        if used is None or used <= self.emergency_purge_threshold_bytes:
            return False
        logger.warning(
            "Heap above emergency purge threshold",
            extra={
                "heap_used_mb": round(used / BYTES_PER_MB),
                "heap_threshold_mb": self.heap_emergency_purge_mb,
            },
        )
        if self._metrics is not None:
            self._metrics.emergency_purges.inc()
        if self._on_emergency_purge is not None:
            self._on_emergency_purge(used)
        return True

    def reset(self) -> None:
        self.clear_trailing_flush()
        self._sampling_mode = False
        self._stable_frame_count = 0
        if self._metrics is not None:
            self._metrics.sampling_mode.set(0)
