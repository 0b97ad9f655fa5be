from typing import Any

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings

from streamwindow.utils.numbers import normalize_float, normalize_int

# field name -> (minimum, maximum)
BOUNDED_INT_LIMITS: dict[str, tuple[int, int]] = {
    "window_max_items": (50, 5_000),
    "window_max_age_ms": (30_000, 3_600_000),
    "snapshot_row_limit": (1, 500),
    "detail_cache_limit": (16, 1_024),
    "sampling_lag_threshold_ms": (16, 120),
    "sampling_stride": (1, 20),
    "sampling_flush_idle_ms": (100, 2_000),
    "heap_emergency_purge_mb": (128, 1_024),
    "slot_count": (1, 50),
    "perf_sample_limit": (16, 10_000),
}


class Settings(BaseSettings):
    # Live window
    window_max_items: int = 500
    window_max_age_ms: int = 5 * 60 * 1000
    snapshot_row_limit: int = 120  # secondary (recent) rows per commit

    # Commit store
    detail_cache_limit: int = 96
    commit_sync_fallback: bool = True
    frame_interval_ms: float = 16.67

    # Degradation / sampling
    sampling_lag_threshold_ms: int = 30
    sampling_stride: int = 5
    sampling_flush_idle_ms: int = 500
    heap_emergency_purge_mb: int = 400

    # Rendering
    slot_count: int = 50

    # Telemetry
    perf_sample_limit: int = 240
    long_task_threshold_ms: float = 50.0
    frame_budget_ms: float = 16.67

    # Logging
    app_log_level: str = "INFO"
    app_log_redaction_patterns: list[str] = [
        "password",
        "token",
        "secret",
        "key",
        "authorization",
        "cookie",
        "session",
    ]

    app_environment: str = "production"
    otel_service_name: str = "streamwindow"

    @field_validator(*BOUNDED_INT_LIMITS, mode="before")
    @classmethod
    def _clamp_bounded_int(cls, value: Any, info: ValidationInfo) -> int:
        minimum, maximum = BOUNDED_INT_LIMITS[info.field_name]
        fallback = cls.model_fields[info.field_name].default
        return normalize_int(value, fallback, minimum, maximum)

    @field_validator(
        "frame_interval_ms", "long_task_threshold_ms", "frame_budget_ms", mode="before"
    )
    @classmethod
    def _finite_float(cls, value: Any, info: ValidationInfo) -> float:
        fallback = cls.model_fields[info.field_name].default
        return normalize_float(value, fallback, minimum=0.0)


settings = Settings()
