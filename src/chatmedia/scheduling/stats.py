"""Snapshot statistics and periodic stats logging."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Optional

from ..config import STATS_LOG_INTERVAL_MS
from ..domain.models import DISPATCH_ORDER, QueueName
from .clock import Clock, TimerHandle

if TYPE_CHECKING:  # pragma: no cover - only for type checking
    from .scheduler import MediaLoadScheduler

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadStats:
    """Immutable snapshot returned by ``MediaLoadScheduler.get_stats``."""

    queues: Dict[QueueName, int] = field(default_factory=dict)
    current_loading: int = 0
    max_concurrent: int = 0
    total_images: int = 0
    loaded_thumbnails: int = 0
    loaded_full_images: int = 0

    @property
    def total_queued(self) -> int:
        return sum(self.queues.values())

    @property
    def idle(self) -> bool:
        return self.total_queued == 0 and self.current_loading == 0

    @property
    def efficiency(self) -> float:
        """Share of all possible tiers (thumbnail + full per image) loaded, in [0, 1]."""
        if self.total_images == 0:
            return 0.0
        return (self.loaded_thumbnails + self.loaded_full_images) / (self.total_images * 2)

    def queue_length(self, queue: QueueName) -> int:
        return self.queues.get(queue, 0)

    def as_dict(self) -> dict:
        """Plain mapping using the camelCase keys of the debug overlay."""
        return {
            "queues": {name.stats_key: self.queues.get(name, 0) for name in DISPATCH_ORDER},
            "currentLoading": self.current_loading,
            "maxConcurrent": self.max_concurrent,
            "totalImages": self.total_images,
            "loadedThumbnails": self.loaded_thumbnails,
            "loadedFullImages": self.loaded_full_images,
        }

    def summary(self) -> str:
        return (
            f"queued={self.total_queued} loading={self.current_loading}/{self.max_concurrent} "
            f"thumbnails={self.loaded_thumbnails}/{self.total_images} "
            f"full={self.loaded_full_images}/{self.total_images}"
        )


class StatsMonitor:
    """Log scheduler stats on a fixed period while there is work to report."""

    def __init__(
        self,
        scheduler: "MediaLoadScheduler",
        clock: Clock,
        *,
        interval_ms: int = STATS_LOG_INTERVAL_MS,
        sink: Optional[Callable[[LoadStats], None]] = None,
    ) -> None:
        self._scheduler = scheduler
        self._clock = clock
        self._interval_ms = interval_ms
        self._sink = sink
        self._handle: Optional[TimerHandle] = None

    @property
    def running(self) -> bool:
        return self._handle is not None and self._handle.pending

    def start(self) -> None:
        if self.running:
            return
        self._handle = self._clock.call_later(self._interval_ms, self._on_timeout)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def sample(self) -> Optional[LoadStats]:
        stats = self._scheduler.get_stats()
        if stats.idle:
            return None
        LOGGER.info("Media loading: %s", stats.summary())
        if self._sink is not None:
            self._sink(stats)
        return stats

    def _on_timeout(self) -> None:
        self._handle = self._clock.call_later(self._interval_ms, self._on_timeout)
        self.sample()
