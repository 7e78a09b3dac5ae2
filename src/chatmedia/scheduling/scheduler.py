"""Scheduler facade: registration, visibility, user overrides and stats.

One :class:`MediaLoadScheduler` is built at application start and handed by
reference to the viewport tracker and the presentation layer.  All of its
methods must be called from the same cooperative context that delivers
fetch completions.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Set, Union

from ..config import SchedulerConfig
from ..domain.models import FidelityTier, LoadTask, LogicalImage, QueueName, ResourceState, TaskKind
from ..errors import UnknownImageError
from ..errors.handler import ErrorHandler
from ..events.bus import EventBus
from ..events.media_events import ImageDestroyedEvent, ImageRegisteredEvent, PromotionFiredEvent
from .clock import Clock, TimerHandle
from .dispatcher import Dispatcher
from .ports import ByteFetcher, ResourceLocatorPort
from .presentation import PresentationAdapter
from .promotion import PromotionTimer
from .queues import PriorityQueueSet
from .state_store import PlaceholderProbe, ResourceStateStore
from .stats import LoadStats

LOGGER = logging.getLogger(__name__)


class MediaLoadScheduler:
    """Decide when, and at which fidelity, every chat image is fetched."""

    def __init__(
        self,
        locator: ResourceLocatorPort,
        fetcher: ByteFetcher,
        presenter: PresentationAdapter,
        *,
        clock: Clock,
        config: Optional[SchedulerConfig] = None,
        error_handler: Optional[ErrorHandler] = None,
        event_bus: Optional[EventBus] = None,
        byte_cache: Any = None,
    ) -> None:
        self._config = config or SchedulerConfig()
        self._clock = clock
        self._events = event_bus
        self._byte_cache = byte_cache
        self._queues = PriorityQueueSet()
        self._store = ResourceStateStore()
        self._promotions = PromotionTimer(
            clock,
            self._queues,
            self._store,
            delay_ms=self._config.promotion_delay_ms,
            on_fired=self._on_promotion_fired,
        )
        self._dispatcher = Dispatcher(
            self._queues,
            self._store,
            locator,
            fetcher,
            presenter,
            max_concurrent=self._config.max_concurrent,
            promotions=self._promotions,
            error_handler=error_handler,
            event_bus=event_bus,
            byte_cache=byte_cache,
        )
        self._visible: Set[str] = set()
        self._tick_handle: Optional[TimerHandle] = None

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    @property
    def queues(self) -> PriorityQueueSet:
        return self._queues

    @property
    def store(self) -> ResourceStateStore:
        return self._store

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    @property
    def promotions(self) -> PromotionTimer:
        return self._promotions

    # ------------------------------------------------------------------
    # Dispatch loop
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._tick_handle is not None and self._tick_handle.pending

    def start(self) -> None:
        """Start the periodic dispatch tick."""
        if self.running:
            return
        LOGGER.info(
            "Media scheduler started (max_concurrent=%d, tick=%d ms)",
            self._config.max_concurrent,
            self._config.dispatch_tick_ms,
        )
        self._arm_tick()

    def stop(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
            LOGGER.info("Media scheduler stopped")

    def shutdown(self) -> None:
        """Stop ticking and drop queued work and armed promotions.

        In-flight loads are not cancelled; their completions still update state.
        """
        self.stop()
        self._promotions.cancel_all()
        self._queues.clear()

    def tick(self) -> int:
        return self._dispatcher.tick()

    def _arm_tick(self) -> None:
        self._tick_handle = self._clock.call_later(self._config.dispatch_tick_ms, self._on_tick)

    def _on_tick(self) -> None:
        self._arm_tick()
        self._dispatcher.tick()

    # ------------------------------------------------------------------
    # Image lifecycle
    # ------------------------------------------------------------------

    def register_image(
        self,
        image: Union[LogicalImage, str],
        placeholder_ref: Any = None,
        *,
        visible: bool = False,
    ) -> ResourceState:
        """Track a newly rendered attachment and queue its thumbnail.

        Registering an id twice only refreshes its placeholder reference.
        """

        if isinstance(image, str):
            image = LogicalImage(image)
        existing = self._store.get(image.id)
        state = self._store.register(image, placeholder_ref)
        if existing is not None:
            return state

        queue = QueueName.VISIBLE_THUMBNAILS if visible else QueueName.HIDDEN_THUMBNAILS
        if visible:
            self._visible.add(image.id)
        self._queues.enqueue(queue, self._thumbnail_task(state, queue))
        LOGGER.debug("Registered %s into %s", image.id, queue.name)
        if self._events is not None:
            self._events.publish(ImageRegisteredEvent(image_id=image.id, visible=visible, source="scheduler"))
        return state

    def destroy_image(self, image_id: str) -> bool:
        """Forget *image_id*: state, pending tasks and armed promotion."""

        existed = self._store.destroy(image_id)
        self._queues.remove_image(image_id)
        self._promotions.cancel(image_id)
        self._visible.discard(image_id)
        if self._byte_cache is not None:
            self._byte_cache.invalidate(image_id)
        if existed:
            LOGGER.debug("Destroyed %s", image_id)
            if self._events is not None:
                self._events.publish(ImageDestroyedEvent(image_id=image_id, source="scheduler"))
        return existed

    def cleanup(self, is_alive: Optional[PlaceholderProbe] = None) -> List[str]:
        """Destroy every image whose placeholder left the rendering tree."""

        dead = self._store.collect_detached(is_alive)
        for image_id in dead:
            self.destroy_image(image_id)
        if dead:
            LOGGER.info("Cleanup released %d detached images", len(dead))
        return dead

    def state(self, image_id: str) -> Optional[ResourceState]:
        return self._store.get(image_id)

    # ------------------------------------------------------------------
    # Viewport integration
    # ------------------------------------------------------------------

    def on_viewport_enter(self, image_id: str) -> bool:
        """Move a pending thumbnail to the visible queue.  Returns True if queued."""

        state = self._store.get(image_id)
        if state is None:
            LOGGER.debug("Viewport enter for unknown image %s ignored", image_id)
            return False
        self._visible.add(image_id)
        if not self._thumbnail_pending(state):
            return False
        self._queues.remove(QueueName.HIDDEN_THUMBNAILS, image_id)
        return self._queues.enqueue(
            QueueName.VISIBLE_THUMBNAILS, self._thumbnail_task(state, QueueName.VISIBLE_THUMBNAILS)
        )

    def on_viewport_leave(self, image_id: str) -> bool:
        """Demote a pending thumbnail to the hidden queue.  Returns True if queued."""

        state = self._store.get(image_id)
        if state is None:
            LOGGER.debug("Viewport leave for unknown image %s ignored", image_id)
            return False
        self._visible.discard(image_id)
        if not self._thumbnail_pending(state):
            return False
        self._queues.remove(QueueName.VISIBLE_THUMBNAILS, image_id)
        return self._queues.enqueue(
            QueueName.HIDDEN_THUMBNAILS, self._thumbnail_task(state, QueueName.HIDDEN_THUMBNAILS)
        )

    def is_visible(self, image_id: str) -> bool:
        return image_id in self._visible

    def _thumbnail_pending(self, state: ResourceState) -> bool:
        if state.thumbnail_loaded or state.failed:
            return False
        return not self._dispatcher.is_in_flight(state.image_id, TaskKind.THUMBNAIL)

    # ------------------------------------------------------------------
    # User overrides
    # ------------------------------------------------------------------

    def request_full(self, image_id: str) -> bool:
        """Queue a full-resolution load ahead of all ambient work.

        Allowed even when the full tier already loaded, so the UI can offer a
        retry.  Returns False if a user request is already pending.
        """

        state = self._require(image_id)
        task = LoadTask.full(
            image_id,
            QueueName.USER_REQUESTED,
            placeholder_ref=state.placeholder_ref,
            priority=self._clock.now_ms(),
        )
        queued = self._queues.enqueue(QueueName.USER_REQUESTED, task)
        LOGGER.debug("User requested full image for %s (queued=%s)", image_id, queued)
        return queued

    def manual_load(self, image_id: str, tier: Union[FidelityTier, str]) -> bool:
        """Force a load of *tier* outside the visibility rules.

        Thumbnail tiers re-run the thumbnail chain up to *tier*; this is also
        the retry path for an image whose small tier failed.
        """

        tier = FidelityTier.parse(tier)
        state = self._require(image_id)
        self._store.clear_failed(image_id)
        if tier is FidelityTier.FULL:
            task = LoadTask.full(
                image_id,
                QueueName.USER_REQUESTED,
                placeholder_ref=state.placeholder_ref,
                priority=self._clock.now_ms(),
            )
        else:
            task = LoadTask.thumbnail(
                image_id,
                QueueName.USER_REQUESTED,
                placeholder_ref=state.placeholder_ref,
                priority=self._clock.now_ms(),
                tier=tier,
            )
        return self._queues.enqueue(QueueName.USER_REQUESTED, task)

    def load_all_visible(self) -> int:
        """Queue thumbnails for every visible image still missing one."""

        queued = 0
        for image_id in sorted(self._visible):
            state = self._store.get(image_id)
            if state is None or not self._thumbnail_pending(state):
                continue
            if self._queues.enqueue(
                QueueName.VISIBLE_THUMBNAILS, self._thumbnail_task(state, QueueName.VISIBLE_THUMBNAILS)
            ):
                queued += 1
        return queued

    def _require(self, image_id: str) -> ResourceState:
        state = self._store.get(image_id)
        if state is None:
            raise UnknownImageError(f"Image {image_id!r} is not registered")
        return state

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> LoadStats:
        return LoadStats(
            queues=self._queues.lengths(),
            current_loading=self._dispatcher.current_loading,
            max_concurrent=self._dispatcher.max_concurrent,
            total_images=self._store.total_images,
            loaded_thumbnails=self._store.loaded_thumbnails,
            loaded_full_images=self._store.loaded_full_images,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _thumbnail_task(self, state: ResourceState, queue: QueueName) -> LoadTask:
        return LoadTask.thumbnail(
            state.image_id,
            queue,
            placeholder_ref=state.placeholder_ref,
            priority=self._clock.now_ms(),
        )

    def _on_promotion_fired(self, image_id: str, enqueued: bool) -> None:
        if self._events is not None:
            self._events.publish(PromotionFiredEvent(image_id=image_id, enqueued=enqueued, source="scheduler"))
