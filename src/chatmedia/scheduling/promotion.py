"""Deferred queueing of the full-resolution tier."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from ..domain.models import LoadTask, QueueName
from ..errors import ImageDestroyedError
from .clock import Clock, TimerHandle
from .queues import PriorityQueueSet
from .state_store import ResourceStateStore

LOGGER = logging.getLogger(__name__)


class PromotionTimer:
    """Arms one-shot timers that queue ``FULL`` once a thumbnail has settled.

    A promotion is only dropped when its image is destroyed; scrolling the
    image out of view leaves it armed.
    """

    def __init__(
        self,
        clock: Clock,
        queues: PriorityQueueSet,
        store: ResourceStateStore,
        *,
        delay_ms: int,
        on_fired: Optional[Callable[[str, bool], None]] = None,
    ) -> None:
        self._clock = clock
        self._queues = queues
        self._store = store
        self._delay_ms = delay_ms
        self._on_fired = on_fired
        self._armed: Dict[str, TimerHandle] = {}

    @property
    def delay_ms(self) -> int:
        return self._delay_ms

    def schedule(self, image_id: str) -> bool:
        """Arm a promotion for *image_id*; no-op while one is already armed."""

        handle = self._armed.get(image_id)
        if handle is not None and handle.pending:
            return False
        self._armed[image_id] = self._clock.call_later(
            self._delay_ms, lambda: self._fire(image_id)
        )
        LOGGER.debug("Promotion armed for %s in %d ms", image_id, self._delay_ms)
        return True

    def cancel(self, image_id: str) -> bool:
        handle = self._armed.pop(image_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def is_armed(self, image_id: str) -> bool:
        handle = self._armed.get(image_id)
        return handle is not None and handle.pending

    @property
    def armed_count(self) -> int:
        return sum(1 for handle in self._armed.values() if handle.pending)

    def cancel_all(self) -> None:
        for handle in self._armed.values():
            handle.cancel()
        self._armed.clear()

    def _fire(self, image_id: str) -> None:
        self._armed.pop(image_id, None)
        try:
            enqueued = self._promote(image_id)
        except ImageDestroyedError as exc:
            LOGGER.debug("Promotion dropped: %s", exc)
            return
        if self._on_fired is not None:
            self._on_fired(image_id, enqueued)

    def _promote(self, image_id: str) -> bool:
        state = self._store.get(image_id)
        if state is None:
            raise ImageDestroyedError(f"{image_id} was destroyed before promotion", image_id=image_id)
        if not state.thumbnail_loaded or state.full_loaded:
            return False
        task = LoadTask.full(
            image_id,
            QueueName.FULL_IMAGES,
            placeholder_ref=state.placeholder_ref,
            priority=self._clock.now_ms(),
        )
        enqueued = self._queues.enqueue(QueueName.FULL_IMAGES, task)
        if enqueued:
            LOGGER.debug("Promoted %s to the full-image queue", image_id)
        return enqueued
