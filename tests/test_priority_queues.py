"""Tests for PriorityQueueSet ordering and idempotence."""

from __future__ import annotations

from chatmedia.domain.models import LoadTask, QueueName
from chatmedia.scheduling.queues import PriorityQueueSet

VISIBLE = QueueName.VISIBLE_THUMBNAILS
HIDDEN = QueueName.HIDDEN_THUMBNAILS


def _thumb(image_id, queue=VISIBLE, priority=0.0):
    return LoadTask.thumbnail(image_id, queue, priority=priority)


def test_enqueue_is_idempotent_per_queue():
    queues = PriorityQueueSet()
    assert queues.enqueue(VISIBLE, _thumb("a"))
    assert not queues.enqueue(VISIBLE, _thumb("a", priority=5))
    assert queues.length(VISIBLE) == 1


def test_same_image_may_sit_in_different_queues():
    queues = PriorityQueueSet()
    queues.enqueue(VISIBLE, _thumb("a"))
    queues.enqueue(QueueName.FULL_IMAGES, LoadTask.full("a"))
    assert len(queues) == 2


def test_dequeue_by_ascending_priority_with_fifo_ties():
    queues = PriorityQueueSet()
    queues.enqueue(VISIBLE, _thumb("late", priority=20))
    queues.enqueue(VISIBLE, _thumb("first", priority=10))
    queues.enqueue(VISIBLE, _thumb("second", priority=10))
    order = [queues.dequeue(VISIBLE).image_id for _ in range(3)]
    assert order == ["first", "second", "late"]
    assert queues.dequeue(VISIBLE) is None


def test_enqueue_retags_task_to_target_queue():
    queues = PriorityQueueSet()
    queues.enqueue(HIDDEN, _thumb("a", queue=VISIBLE))
    assert queues.peek(HIDDEN).queue is HIDDEN


def test_remove_and_remove_image():
    queues = PriorityQueueSet()
    queues.enqueue(VISIBLE, _thumb("a"))
    queues.enqueue(QueueName.USER_REQUESTED, LoadTask.full("a", QueueName.USER_REQUESTED))
    queues.enqueue(VISIBLE, _thumb("b"))

    assert queues.remove(HIDDEN, "a") is None
    assert queues.remove_image("a") == 2
    assert not queues.contains(VISIBLE, "a")
    assert queues.lengths() == {
        QueueName.USER_REQUESTED: 0,
        VISIBLE: 1,
        HIDDEN: 0,
        QueueName.FULL_IMAGES: 0,
    }
    # Removed ids can be queued again.
    assert queues.enqueue(VISIBLE, _thumb("a"))


def test_first_non_empty_follows_dispatch_order():
    queues = PriorityQueueSet()
    assert queues.first_non_empty() is None
    queues.enqueue(QueueName.FULL_IMAGES, LoadTask.full("a"))
    queues.enqueue(HIDDEN, _thumb("b", queue=HIDDEN))
    assert queues.first_non_empty() is HIDDEN
    queues.clear()
    assert len(queues) == 0
