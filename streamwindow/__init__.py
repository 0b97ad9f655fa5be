"""Bounded real-time stream aggregation with adaptive backpressure."""

from .buffers.ring_buffer import RingBuffer
from .commit.detail_cache import DetailCache
from .commit.scheduler import (
    AsyncioFrameScheduler,
    AsyncioTimer,
    FrameScheduler,
    ManualFrameScheduler,
    ManualTimer,
    Timer,
)
from .commit.store import StreamCommitStore
from .core.config import Settings
from .domain.models import Commit, DegradationState, Slot, TransactionRecord
from .health.degradation import STABLE_FRAME_COUNT_TO_EXIT, AdaptiveDegradationController
from .health.perf_metrics import PerfMonitor
from .render.slot_model import extract_rows, project, resolve_selection_index
from .session import DashboardSession
from .window.live_store import LiveWindowStore, SnapshotResult

__all__ = [
    "AdaptiveDegradationController",
    "AsyncioFrameScheduler",
    "AsyncioTimer",
    "Commit",
    "DashboardSession",
    "DegradationState",
    "DetailCache",
    "FrameScheduler",
    "LiveWindowStore",
    "ManualFrameScheduler",
    "ManualTimer",
    "PerfMonitor",
    "RingBuffer",
    "STABLE_FRAME_COUNT_TO_EXIT",
    "Settings",
    "Slot",
    "SnapshotResult",
    "StreamCommitStore",
    "Timer",
    "TransactionRecord",
    "extract_rows",
    "project",
    "resolve_selection_index",
]
