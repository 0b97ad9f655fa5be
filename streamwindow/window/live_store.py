"""Deduplicating, age-windowed live record store.

The store keeps the most relevant records of a high-frequency stream inside a
bounded window. Each ``snapshot`` merges an incoming batch against the
previous window in two phases:

1. incoming records, in the order given, deduplicated by id and filtered by
   age, until the cap is reached;
2. carried-over records from the previous window, in their previous order,
   filling whatever capacity is left.

Unchanged records keep their previous object so a renderer can compare rows
by identity, and an unchanged window returns the previous row tuple itself.
"""

from __future__ import annotations

import math
import time
from typing import Any, Callable, Hashable, Iterable, Mapping, NamedTuple, Sequence

from streamwindow.core.logger import get_logger
from streamwindow.metrics import StreamMetrics
from streamwindow.utils.numbers import finite_or_none, is_finite_number, normalize_int

logger = get_logger("streamwindow.window")

DEFAULT_COMPARE_FIELDS: tuple[str, ...] = (
    "id",
    "sender",
    "nonce",
    "tx_type",
    "observed_at_ms",
    "source_id",
    "chain_id",
)


class SnapshotResult(NamedTuple):
    rows: tuple[Any, ...]
    changed: bool


def field_value(record: Any, name: str) -> Any:
    """Read ``name`` from a mapping or attribute-style record."""
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def records_equivalent(
    left: Any, right: Any, fields: Iterable[str] = DEFAULT_COMPARE_FIELDS
) -> bool:
    return all(field_value(left, f) == field_value(right, f) for f in fields)


def rows_reference_equal(left: Sequence[Any], right: Sequence[Any]) -> bool:
    """Position-by-position identity comparison of two row sequences."""
    if len(left) != len(right):
        return False
    return all(a is b for a, b in zip(left, right))


def resolve_cutoff_unix_ms(now_unix_ms: float, max_age_ms: Any) -> float:
    max_age = finite_or_none(max_age_ms)
    if max_age is None:
        return -math.inf
    return now_unix_ms - max(0, math.floor(max_age))


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class LiveWindowStore:
    def __init__(
        self,
        id_field: str = "id",
        timestamp_field: str = "observed_at_ms",
        compare_fields: Sequence[str] = DEFAULT_COMPARE_FIELDS,
        clock: Callable[[], float] | None = None,
        metrics: StreamMetrics | None = None,
    ):
        self.id_field = id_field
        self.timestamp_field = timestamp_field
        self.compare_fields = tuple(compare_fields)
        self._clock = clock or _wall_clock_ms
        self._metrics = metrics
        self._by_id: dict[Hashable, Any] = {}
        self._order: list[Hashable] = []
        self._rows: tuple[Any, ...] = ()

    def _record_id(self, record: Any) -> Hashable | None:
        record_id = field_value(record, self.id_field)
        if not record_id:
            return None
        try:
            hash(record_id)
        except TypeError:
            return None
        return record_id

    def _within_window(self, record: Any, cutoff_unix_ms: float) -> bool:
        if not math.isfinite(cutoff_unix_ms):
            return True
        seen = field_value(record, self.timestamp_field)
        if not is_finite_number(seen):
            return True
        return seen >= cutoff_unix_ms

    def snapshot(
        self,
        incoming: Iterable[Any] | None,
        max_items: Any,
        max_age_ms: Any = None,
        now_unix_ms: Any = None,
    ) -> SnapshotResult:
        cap = normalize_int(max_items, 0, minimum=0)
        if cap == 0:
            changed = len(self._rows) != 0
            self.reset()
            self._observe(changed)
            return SnapshotResult(self._rows, changed)

        now = finite_or_none(now_unix_ms)
        if now is None:
            now = self._clock()
        cutoff = resolve_cutoff_unix_ms(now, max_age_ms)

        accepted: set[Hashable] = set()
        next_order: list[Hashable] = []
        next_by_id: dict[Hashable, Any] = {}

        for record in incoming or ():
            record_id = self._record_id(record)
            if (
                record_id is None
                or record_id in accepted
                or not self._within_window(record, cutoff)
            ):
                continue
            accepted.add(record_id)
            previous = self._by_id.get(record_id)
            if previous is not None and records_equivalent(
                previous, record, self.compare_fields
            ):
                record = previous
            next_order.append(record_id)
            next_by_id[record_id] = record
            if len(next_order) >= cap:
                break

        if len(next_order) < cap:
            for record_id in self._order:
                if record_id in accepted:
                    continue
                existing = self._by_id.get(record_id)
                if existing is None or not self._within_window(existing, cutoff):
                    continue
                accepted.add(record_id)
                next_order.append(record_id)
                next_by_id[record_id] = existing
                if len(next_order) >= cap:
                    break

        next_rows = tuple(next_by_id[record_id] for record_id in next_order)
        changed = not rows_reference_equal(self._rows, next_rows)

        self._by_id = next_by_id
        self._order = next_order
        if changed:
            self._rows = next_rows
            logger.debug(
                "Live window changed",
                extra={"window_rows": len(next_rows), "window_cap": cap},
            )
        self._observe(changed)
        return SnapshotResult(self._rows, changed)

    def _observe(self, changed: bool) -> None:
        if self._metrics is None:
            return
        self._metrics.window_rows.set(len(self._rows))
        if changed:
            self._metrics.window_snapshots_changed.inc()

    def rows(self) -> tuple[Any, ...]:
        return self._rows

    def get(self, record_id: Hashable) -> Any:
        return self._by_id.get(record_id)

    def reset(self) -> None:
        self._by_id = {}
        self._order = []
        self._rows = ()

    def __len__(self) -> int:
        return len(self._rows)
