"""Unified metrics helpers.

Provides thin wrappers around prometheus_client primitives with service name
prefixing and basic naming validation. Every helper takes an explicit
registry so a session can own its collectors; ``None`` falls back to the
prometheus default registry.
"""

from __future__ import annotations

import re

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")

SERVICE = "streamwindow"

# Commit application runs on the display frame, so buckets sit in the ms range.
COMMIT_LATENCY_BUCKETS = [0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1]


def _validate(name: str) -> str:
    if not _NAME_RE.match(name):
        raise ValueError(
            f"Invalid metric name '{name}'. Use snake_case alphanumerics/underscores."
        )
    return name


def _prefix(name: str, service: str | None) -> str:
    if service and not name.startswith(service + "_"):
        return f"{service}_{name}"
    return name


def _registry_kwargs(registry: CollectorRegistry | None) -> dict:
    return {} if registry is None else {"registry": registry}


def get_counter(
    name: str,
    documentation: str,
    service: str | None = None,
    registry: CollectorRegistry | None = None,
) -> Counter:
    return Counter(
        _validate(_prefix(name, service)), documentation, **_registry_kwargs(registry)
    )


def get_histogram(
    name: str,
    documentation: str,
    service: str | None = None,
    buckets: list[float] | None = None,
    registry: CollectorRegistry | None = None,
) -> Histogram:
    full_name = _validate(_prefix(name, service))
    kwargs = _registry_kwargs(registry)
    if buckets is None:
        return Histogram(full_name, documentation, **kwargs)
    return Histogram(full_name, documentation, buckets=buckets, **kwargs)


def get_gauge(
    name: str,
    documentation: str,
    service: str | None = None,
    registry: CollectorRegistry | None = None,
) -> Gauge:
    return Gauge(
        _validate(_prefix(name, service)), documentation, **_registry_kwargs(registry)
    )


class StreamMetrics:
    """Collectors for one dashboard session.

    Pass a dedicated CollectorRegistry when more than one session lives in the
    process; registering the same names twice on one registry raises.
    """

    def __init__(
        self, registry: CollectorRegistry | None = None, service: str = SERVICE
    ):
        self.registry = registry

        # Live window
        self.window_rows = get_gauge(
            "window_rows", "Rows currently retained by the live window.", service, registry
        )
        self.window_snapshots_changed = get_counter(
            "window_snapshots_changed_total",
            "Window snapshots that produced a new row tuple.",
            service,
            registry,
        )

        # Commit store
        self.commits_enqueued = get_counter(
            "commits_enqueued_total", "Commits handed to the commit store.", service, registry
        )
        self.commits_coalesced = get_counter(
            "commits_coalesced_total",
            "Commits that replaced an already pending commit before its frame.",
            service,
            registry,
        )
        self.commits_applied = get_counter(
            "commits_applied_total", "Commits applied to the store state.", service, registry
        )
        self.commit_apply_seconds = get_histogram(
            "commit_apply_seconds",
            "Latency of a single commit application.",
            service,
            COMMIT_LATENCY_BUCKETS,
            registry,
        )
        self.detail_cache_size = get_gauge(
            "detail_cache_size", "Entries held by the detail cache.", service, registry
        )
        self.detail_cache_evictions = get_counter(
            "detail_cache_evictions_total",
            "Detail entries evicted by the size limit.",
            service,
            registry,
        )

        # Degradation controller
        self.sampling_mode = get_gauge(
            "sampling_mode", "1 while rendering runs in sampling mode.", service, registry
        )
        self.sampling_entries = get_counter(
            "sampling_entries_total", "Transitions into sampling mode.", service, registry
        )
        self.emergency_purges = get_counter(
            "emergency_purges_total",
            "Heap readings that breached the emergency purge threshold.",
            service,
            registry,
        )


__all__ = [
    "get_counter",
    "get_histogram",
    "get_gauge",
    "StreamMetrics",
]
