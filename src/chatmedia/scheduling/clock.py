"""Scheduled-callback abstraction used by the dispatcher and promotion timer.

Every delay in the scheduler goes through a :class:`Clock` so that tests can
swap the Qt timer backend for :class:`VirtualClock` and advance time
deterministically.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from typing import Callable, Optional, Protocol

LOGGER = logging.getLogger(__name__)


class TimerHandle:
    """Cancellable reference to one pending callback."""

    __slots__ = ("due_ms", "_callback", "_cancelled", "_fired", "_on_cancel")

    def __init__(
        self,
        due_ms: float,
        callback: Callable[[], None],
        on_cancel: Optional[Callable[["TimerHandle"], None]] = None,
    ) -> None:
        self.due_ms = due_ms
        self._callback: Optional[Callable[[], None]] = callback
        self._cancelled = False
        self._fired = False
        self._on_cancel = on_cancel

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> bool:
        return not (self._cancelled or self._fired)

    def cancel(self) -> None:
        if not self.pending:
            return
        self._cancelled = True
        # Drop the callback so whatever it closes over can be collected.
        self._callback = None
        if self._on_cancel is not None:
            self._on_cancel(self)
            self._on_cancel = None

    def fire(self) -> None:
        if not self.pending:
            return
        self._fired = True
        callback, self._callback = self._callback, None
        self._on_cancel = None
        if callback is not None:
            callback()


class Clock(Protocol):
    def now_ms(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle: ...


class VirtualClock:
    """Deterministic clock whose time only moves when :meth:`advance` is called."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)
        self._heap: list[tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(self._now + max(0.0, float(delay_ms)), callback)
        heapq.heappush(self._heap, (handle.due_ms, next(self._seq), handle))
        return handle

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, handle in self._heap if handle.pending)

    def next_due(self) -> Optional[float]:
        self._discard_dead()
        return self._heap[0][0] if self._heap else None

    def advance(self, delta_ms: float) -> int:
        """Move time forward by *delta_ms*, firing due callbacks in order.

        Callbacks scheduled while advancing fire in the same call if they fall
        inside the window.  Returns the number of callbacks fired.
        """

        if delta_ms < 0:
            raise ValueError("VirtualClock cannot move backwards")
        target = self._now + delta_ms
        fired = 0
        while True:
            self._discard_dead()
            if not self._heap or self._heap[0][0] > target:
                break
            due, _, handle = heapq.heappop(self._heap)
            self._now = max(self._now, due)
            handle.fire()
            fired += 1
        self._now = target
        return fired

    def run_pending(self) -> int:
        """Fire everything already due without moving time."""
        return self.advance(0.0)

    def _discard_dead(self) -> None:
        while self._heap and not self._heap[0][2].pending:
            heapq.heappop(self._heap)
