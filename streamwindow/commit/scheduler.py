"""Frame and timer capabilities injected into the commit store and controller.

Production code runs on an asyncio loop; tests drive the manual variants.
Cancelling an unknown or already-fired handle is always a no-op.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol, runtime_checkable

from streamwindow.utils.numbers import normalize_float

Callback = Callable[[], None]


@runtime_checkable
class FrameScheduler(Protocol):
    def schedule(self, callback: Callback) -> Any:
        """Run ``callback`` on the next display frame, never synchronously."""
        ...

    def cancel(self, handle: Any) -> None: ...


@runtime_checkable
class Timer(Protocol):
    def call_later(self, delay_ms: float, callback: Callback) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


class AsyncioFrameScheduler:
    """Approximates a display refresh with ``loop.call_later``.

    Best effort only: frames fire when the loop gets to them.
    """

    def __init__(
        self,
        frame_interval_ms: float = 16.67,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.frame_interval_ms = normalize_float(frame_interval_ms, 16.67, minimum=0.0)
        self._loop = loop

    def schedule(self, callback: Callback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(self.frame_interval_ms / 1000, callback)

    def cancel(self, handle: Any) -> None:
        if handle is not None:
            handle.cancel()


class AsyncioTimer:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def call_later(self, delay_ms: float, callback: Callback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay_ms) / 1000, callback)

    def cancel(self, handle: Any) -> None:
        if handle is not None:
            handle.cancel()


class ManualFrameScheduler:
    """Frame scheduler advanced explicitly with ``run_frame``."""

    def __init__(self):
        self._callbacks: dict[int, Callback] = {}
        self._next_handle = 1
        self.scheduled_count = 0

    def schedule(self, callback: Callback) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._callbacks[handle] = callback
        self.scheduled_count += 1
        return handle

    def cancel(self, handle: Any) -> None:
        self._callbacks.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._callbacks)

    def run_frame(self) -> int:
        """Fire every callback scheduled before this frame; returns how many ran."""
        due = list(self._callbacks.items())
        self._callbacks.clear()
        for _, callback in due:
            callback()
        return len(due)


class ManualTimer:
    """Virtual-clock timer; ``advance`` fires due callbacks in deadline order."""

    def __init__(self, now_ms: float = 0.0):
        self.now_ms = now_ms
        self._timers: dict[int, tuple[float, Callback]] = {}
        self._next_handle = 1

    def call_later(self, delay_ms: float, callback: Callback) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._timers[handle] = (self.now_ms + max(0.0, delay_ms), callback)
        return handle

    def cancel(self, handle: Any) -> None:
        self._timers.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._timers)

    def advance(self, delta_ms: float) -> int:
        target = self.now_ms + delta_ms
        fired = 0
        while True:
            due = [
                (deadline, handle)
                for handle, (deadline, _) in self._timers.items()
                if deadline <= target
            ]
            if not due:
                break
            deadline, handle = min(due)
            _, callback = self._timers.pop(handle)
            self.now_ms = deadline
            callback()
            fired += 1
        self.now_ms = target
        return fired
