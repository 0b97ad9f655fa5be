"""Frame-synchronized commit store.

Upstream code produces commits far more often than a display can refresh.
``enqueue_commit`` keeps only the latest commit and requests a single frame;
when the frame fires the commit is applied, the selection is carried over,
and detail entries for rows that left the window are pruned.

At most one frame request is outstanding per store. Without a usable
scheduler, or when the scheduler raises, the store either applies immediately
(``sync_fallback=True``) or keeps the commit pending until ``flush``.
"""

from __future__ import annotations

import contextlib
from typing import Any, Callable, Hashable, Sequence

from streamwindow.core.logger import get_logger
from streamwindow.domain.models import Commit
from streamwindow.metrics import StreamMetrics
from streamwindow.window.live_store import field_value

from .detail_cache import DEFAULT_DETAIL_CACHE_LIMIT, DetailCache
from .scheduler import FrameScheduler

logger = get_logger("streamwindow.commit")

Listener = Callable[["StreamCommitStore"], None]


def normalize_rows(rows: Any) -> Sequence[Any]:
    return rows if isinstance(rows, (list, tuple)) else ()


class StreamCommitStore:
    def __init__(
        self,
        scheduler: FrameScheduler | None = None,
        sync_fallback: bool = True,
        detail_cache_limit: Any = DEFAULT_DETAIL_CACHE_LIMIT,
        id_field: str = "id",
        metrics: StreamMetrics | None = None,
    ):
        self.scheduler = self._resolve_scheduler(scheduler)
        self.sync_fallback = sync_fallback
        self.id_field = id_field
        self._metrics = metrics

        self._primary_rows: Sequence[Any] = ()
        self._secondary_rows: Sequence[Any] = ()
        self._selected_id: Hashable | None = None
        self._version = 0

        self._pending: Commit | None = None
        self._frame_requested = False
        self._frame_handle: Any = None
        self._frame_scheduler: FrameScheduler | None = None
        self._frame_generation = 0

        self._listeners: list[Listener] = []
        self.details = DetailCache(
            detail_cache_limit, on_change=self.bump_version, metrics=metrics
        )

    # -- read side -----------------------------------------------------

    @property
    def primary_rows(self) -> Sequence[Any]:
        return self._primary_rows

    @property
    def secondary_rows(self) -> Sequence[Any]:
        return self._secondary_rows

    @property
    def selected_id(self) -> Hashable | None:
        return self._selected_id

    @property
    def version(self) -> int:
        return self._version

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    @property
    def frame_requested(self) -> bool:
        return self._frame_requested

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # -- frame batching ------------------------------------------------

    def _resolve_scheduler(self, candidate: Any) -> FrameScheduler | None:
        if candidate is None:
            return None
        if not callable(getattr(candidate, "schedule", None)):
            logger.warning(
                "Frame scheduler is not callable, falling back",
                extra={"scheduler_type": type(candidate).__name__},
            )
            return None
        return candidate

    def enqueue_commit(
        self, commit: Commit | None, scheduler: FrameScheduler | None = None
    ) -> None:
        if commit is None:
            return
        if self._metrics is not None:
            self._metrics.commits_enqueued.inc()
            if self._pending is not None:
                self._metrics.commits_coalesced.inc()
        self._pending = commit
        if self._frame_requested:
            logger.debug("Commit coalesced into pending frame")
            return

        resolved = (
            self.scheduler if scheduler is None else self._resolve_scheduler(scheduler)
        )
        if resolved is None or not self._request_frame(resolved):
            if self.sync_fallback:
                self._apply_pending()

    def _request_frame(self, scheduler: FrameScheduler) -> bool:
        self._frame_requested = True
        self._frame_scheduler = scheduler
        generation = self._frame_generation
        try:
            handle = scheduler.schedule(lambda: self._on_frame(generation))
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Frame request failed, falling back",
                extra={"scheduler_type": type(scheduler).__name__, "error": str(exc)},
            )
            # a callback that still fires later belongs to a dead generation
            self._frame_generation += 1
            self._frame_requested = False
            self._frame_handle = None
            self._frame_scheduler = None
            return False
        # a scheduler that ran the callback inline has already cleared the request
        if self._frame_requested and self._frame_scheduler is scheduler:
            self._frame_handle = handle
        return True

    def _on_frame(self, generation: int) -> None:
        # frames cancelled or superseded after scheduling are ignored
        if generation != self._frame_generation or not self._frame_requested:
            return
        self._frame_generation += 1
        self._frame_requested = False
        self._frame_handle = None
        self._frame_scheduler = None
        self._apply_pending()

    def _cancel_frame(self) -> None:
        if self._frame_requested and self._frame_scheduler is not None:
            cancel = getattr(self._frame_scheduler, "cancel", None)
            if callable(cancel) and self._frame_handle is not None:
                try:
                    cancel(self._frame_handle)
                except Exception as exc:  # noqa: BLE001
                    logger.warning(
                        "Frame cancel failed, stale frame will be ignored",
                        extra={"error": str(exc)},
                    )
        if self._frame_requested:
            self._frame_generation += 1
        self._frame_requested = False
        self._frame_handle = None
        self._frame_scheduler = None

    def _apply_pending(self) -> None:
        commit = self._pending
        if commit is not None:
            self.apply_commit(commit)

    def flush(self) -> None:
        self._cancel_frame()
        self._apply_pending()

    def cancel(self) -> None:
        self._pending = None
        self._cancel_frame()

    # -- state writes --------------------------------------------------

    def _resolve_selected_id(self, rows: Sequence[Any]) -> Hashable | None:
        current = self._selected_id
        if current and any(
            field_value(row, self.id_field) == current for row in rows if row is not None
        ):
            return current
        if rows and rows[0] is not None:
            return field_value(rows[0], self.id_field)
        return None

    def apply_commit(self, commit: Commit | None) -> None:
        if commit is None:
            return
        self._pending = None
        self._cancel_frame()

        timer = (
            self._metrics.commit_apply_seconds.time()
            if self._metrics is not None
            else contextlib.nullcontext()
        )
        with timer:
            primary = normalize_rows(field_value(commit, "primary_rows"))
            secondary = normalize_rows(field_value(commit, "secondary_rows"))
            next_selected = self._resolve_selected_id(primary)

            if not (
                primary is self._primary_rows
                and secondary is self._secondary_rows
                and next_selected == self._selected_id
            ):
                self._primary_rows = primary
                self._secondary_rows = secondary
                self._selected_id = next_selected
                self._notify()

            live_ids = {
                field_value(row, self.id_field) for row in primary if row is not None
            }
            if self.details.prune(live_ids):
                self.bump_version()

        if self._metrics is not None:
            self._metrics.commits_applied.inc()
        logger.debug(
            "Commit applied",
            extra={"primary_rows": len(primary), "secondary_rows": len(secondary)},
        )

    def set_selection(self, record_id: Hashable | None) -> None:
        if record_id == self._selected_id:
            return
        self._selected_id = record_id
        self._notify()

    def bump_version(self) -> None:
        self._version += 1
        self._notify()

    def reset(self) -> None:
        self.cancel()
        self.details.clear()
        self._primary_rows = ()
        self._secondary_rows = ()
        self._selected_id = None
        self._version = 0
        self._notify()
