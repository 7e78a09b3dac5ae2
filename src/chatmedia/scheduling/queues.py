"""Ordered pending-task queues with per-queue idempotent enqueue."""

from __future__ import annotations

import bisect
import itertools
import logging
from typing import Dict, Iterator, List, Optional, Tuple

from ..domain.models import DISPATCH_ORDER, LoadTask, QueueName

LOGGER = logging.getLogger(__name__)

_Entry = Tuple[float, int, LoadTask]


class PriorityQueueSet:
    """Four queues of :class:`LoadTask`, each sorted by ascending priority.

    A queue holds at most one task per image id.  Ties on the priority
    timestamp keep insertion order.
    """

    def __init__(self) -> None:
        self._entries: Dict[QueueName, List[_Entry]] = {name: [] for name in QueueName}
        self._index: Dict[QueueName, Dict[str, _Entry]] = {name: {} for name in QueueName}
        self._seq = itertools.count()

    def enqueue(self, queue: QueueName, task: LoadTask) -> bool:
        """Insert *task* unless its image is already pending in *queue*."""

        if task.queue is not queue:
            # Keep the task's own tag and the container in agreement.
            task = LoadTask(task.image_id, task.tier, queue, task.placeholder_ref, task.priority)
        index = self._index[queue]
        if task.image_id in index:
            LOGGER.debug("Skip duplicate %s for %s", queue.name, task.image_id)
            return False
        entry = (task.priority, next(self._seq), task)
        bisect.insort(self._entries[queue], entry)
        index[task.image_id] = entry
        return True

    def dequeue(self, queue: QueueName) -> Optional[LoadTask]:
        entries = self._entries[queue]
        if not entries:
            return None
        _, _, task = entries.pop(0)
        del self._index[queue][task.image_id]
        return task

    def remove(self, queue: QueueName, image_id: str) -> Optional[LoadTask]:
        entry = self._index[queue].pop(image_id, None)
        if entry is None:
            return None
        self._entries[queue].remove(entry)
        return entry[2]

    def remove_image(self, image_id: str) -> int:
        """Drop every pending task for *image_id*; return how many were removed."""
        return sum(1 for name in QueueName if self.remove(name, image_id) is not None)

    def peek(self, queue: QueueName) -> Optional[LoadTask]:
        entries = self._entries[queue]
        return entries[0][2] if entries else None

    def contains(self, queue: QueueName, image_id: str) -> bool:
        return image_id in self._index[queue]

    def tasks(self, queue: QueueName) -> Iterator[LoadTask]:
        return (task for _, _, task in list(self._entries[queue]))

    def length(self, queue: QueueName) -> int:
        return len(self._entries[queue])

    def lengths(self) -> Dict[QueueName, int]:
        return {name: len(self._entries[name]) for name in DISPATCH_ORDER}

    def first_non_empty(self) -> Optional[QueueName]:
        for name in DISPATCH_ORDER:
            if self._entries[name]:
                return name
        return None

    def clear(self) -> None:
        for name in QueueName:
            self._entries[name].clear()
            self._index[name].clear()

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
