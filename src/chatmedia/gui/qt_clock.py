"""Qt event-loop backed :class:`~chatmedia.scheduling.clock.Clock`."""

from __future__ import annotations

from typing import Callable, Dict, Optional

from PySide6.QtCore import QElapsedTimer, QObject, QTimer

from ..scheduling.clock import TimerHandle


class QtClock(QObject):
    """Schedule callbacks with single-shot :class:`QTimer` instances.

    Callbacks run on the thread owning the clock, which must run an event
    loop.  Timers are parented to the clock so shutting it down releases them.
    """

    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._elapsed = QElapsedTimer()
        self._elapsed.start()
        self._timers: Dict[TimerHandle, QTimer] = {}

    def now_ms(self) -> float:
        return float(self._elapsed.elapsed())

    @property
    def pending_count(self) -> int:
        return len(self._timers)

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        delay = max(0, int(delay_ms))
        handle = TimerHandle(self.now_ms() + delay, callback, on_cancel=self._on_cancel)
        timer = QTimer(self)
        timer.setSingleShot(True)
        timer.timeout.connect(lambda h=handle: self._on_timeout(h))
        self._timers[handle] = timer
        timer.start(delay)
        return handle

    def cancel_all(self) -> None:
        for handle in list(self._timers):
            handle.cancel()

    def _on_timeout(self, handle: TimerHandle) -> None:
        self._release(handle)
        handle.fire()

    def _on_cancel(self, handle: TimerHandle) -> None:
        self._release(handle)

    def _release(self, handle: TimerHandle) -> None:
        timer = self._timers.pop(handle, None)
        if timer is not None:
            timer.stop()
            timer.deleteLater()
