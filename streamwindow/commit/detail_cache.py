from __future__ import annotations

from collections import OrderedDict
from typing import Any, Callable, Container, Hashable

from streamwindow.metrics import StreamMetrics
from streamwindow.utils.numbers import normalize_int

DEFAULT_DETAIL_CACHE_LIMIT = 96


class DetailCache:
    """Bounded per-record detail payloads, evicted in insertion order.

    ``set`` re-inserts an existing id so an update counts as most recent.
    ``on_change`` fires after every successful ``set`` and after a ``clear``
    that removed entries; ``prune`` only reports whether it removed anything.
    """

    def __init__(
        self,
        limit: Any = DEFAULT_DETAIL_CACHE_LIMIT,
        on_change: Callable[[], None] | None = None,
        metrics: StreamMetrics | None = None,
    ):
        self.limit = normalize_int(limit, DEFAULT_DETAIL_CACHE_LIMIT, minimum=1)
        self._entries: OrderedDict[Hashable, Any] = OrderedDict()
        self._on_change = on_change
        self._metrics = metrics

    def get(self, record_id: Hashable | None) -> Any:
        if not record_id:
            return None
        return self._entries.get(record_id)

    def set(self, record_id: Hashable | None, payload: Any, limit: Any = None) -> bool:
        if not record_id:
            return False
        self._entries.pop(record_id, None)
        self._entries[record_id] = payload

        bound = self.limit if limit is None else normalize_int(
            limit, DEFAULT_DETAIL_CACHE_LIMIT, minimum=1
        )
        evicted = 0
        while len(self._entries) > bound:
            self._entries.popitem(last=False)
            evicted += 1

        self._observe(evicted)
        self._notify()
        return True

    def prune(self, live_ids: Container[Hashable]) -> bool:
        stale = [record_id for record_id in self._entries if record_id not in live_ids]
        for record_id in stale:
            del self._entries[record_id]
        if stale:
            self._observe()
        return bool(stale)

    def clear(self) -> bool:
        if not self._entries:
            return False
        self._entries.clear()
        self._observe()
        self._notify()
        return True

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _observe(self, evicted: int = 0) -> None:
        if self._metrics is None:
            return
        self._metrics.detail_cache_size.set(len(self._entries))
        if evicted:
            self._metrics.detail_cache_evictions.inc(evicted)

    def keys(self) -> list[Hashable]:
        return list(self._entries)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
