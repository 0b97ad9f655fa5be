from dataclasses import dataclass
from typing import Any, Hashable, Sequence

from pydantic import BaseModel, ConfigDict, Field


class TransactionRecord(BaseModel):
    """Summary of one observed transaction as it enters the live window."""

    id: str = Field(..., description="Unique record identifier (tx hash)")
    sender: str | None = None
    nonce: int | None = None
    tx_type: int | None = None
    observed_at_ms: int | None = Field(
        None, description="Epoch-ms when the record was first seen"
    )
    source_id: str | None = None
    chain_id: int | None = None

    model_config = ConfigDict(frozen=True, extra="allow")


@dataclass(frozen=True)
class Commit:
    """One upstream update destined for frame-batched application.

    Row sequences are kept as given; the store compares them by identity.
    """

    primary_rows: Sequence[Any] = ()
    secondary_rows: Sequence[Any] = ()


EMPTY_COMMIT = Commit()


@dataclass(frozen=True)
class Slot:
    key: str
    id: Hashable | None
    row: Any
    index: int


@dataclass(frozen=True)
class DegradationState:
    sampling_mode: bool = False
    stable_frame_count: int = 0
    trailing_flush_scheduled: bool = False


class LongTaskSummary(BaseModel):
    count: int = 0
    total_ms: int = 0
    max_ms: int = 0
    threshold_ms: float


class FpsSnapshot(BaseModel):
    fps: float = 0.0
    frame_count: int = 0
    window_ms: int


class HeapSummary(BaseModel):
    sample_count: int = 0
    latest_bytes: int = 0
    peak_bytes: int = 0
    average_bytes: int = 0
    delta_bytes: int = 0


class DroppedFrameSummary(BaseModel):
    total_frames: int = 0
    dropped_frames: int = 0
    ratio: float = 0.0
    frame_budget_ms: float


class FrameSummary(DroppedFrameSummary):
    rolling_fps: float = 0.0


class PerfSnapshot(BaseModel):
    """Aggregated telemetry view handed to the telemetry sink."""

    updated_at_unix_ms: int
    snapshot_apply: LongTaskSummary
    transaction_commit: LongTaskSummary
    frame: FrameSummary
    heap: HeapSummary
