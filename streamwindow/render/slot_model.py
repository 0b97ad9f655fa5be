"""Fixed-size virtualized row model with stable slot identity.

Slots never move: slot ``i`` always carries key ``slot-i``. Projection reuses
the previous slot objects (and the previous tuple as a whole) when nothing
changed, so a renderer can skip unchanged cells by identity.
"""

from __future__ import annotations

from typing import Any, Hashable, Sequence

from streamwindow.domain.models import Slot
from streamwindow.utils.numbers import normalize_int
from streamwindow.window.live_store import field_value

MAX_SLOT_COUNT = 50


def _normalize_slot_count(slot_count: Any) -> int:
    return normalize_int(slot_count, MAX_SLOT_COUNT, 1, MAX_SLOT_COUNT)


def project(
    rows: Sequence[Any] | None,
    slot_count: Any = MAX_SLOT_COUNT,
    previous: Sequence[Slot] | None = None,
    id_field: str = "id",
) -> tuple[Slot, ...]:
    source = rows if isinstance(rows, (list, tuple)) else ()
    size = _normalize_slot_count(slot_count)
    reusable = previous if previous is not None and len(previous) == size else None

    slots: list[Slot] = []
    reused_all = reusable is not None
    for index in range(size):
        row = source[index] if index < len(source) else None
        row_id = field_value(row, id_field) if row is not None else None
        prior = reusable[index] if reusable is not None else None
        if prior is not None and prior.row is row and prior.id == row_id:
            slots.append(prior)
            continue
        reused_all = False
        slots.append(Slot(key=f"slot-{index}", id=row_id, row=row, index=index))

    if reused_all:
        return previous  # type: ignore[return-value]
    return tuple(slots)


def extract_rows(models: Sequence[Slot] | None) -> list[Any]:
    return [slot.row for slot in models or () if slot.row is not None]


def resolve_selection_index(
    rows: Sequence[Any] | None,
    selected_id: Hashable | None,
    visible_offset: Any = 0,
    id_field: str = "id",
) -> int:
    """Absolute position of ``selected_id`` once the list is scrolled, or -1."""
    if not isinstance(rows, (list, tuple)) or not selected_id:
        return -1
    offset = normalize_int(visible_offset, 0, minimum=0)
    for index, row in enumerate(rows):
        if row is not None and field_value(row, id_field) == selected_id:
            return offset + index
    return -1
