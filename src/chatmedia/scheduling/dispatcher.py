"""Concurrency-bounded dispatch of queued load tasks."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from ..config import MAX_CONCURRENT
from ..domain.models import DISPATCH_ORDER, FidelityTier, LoadTask, QueueName, ResourceState, TaskKind
from ..errors import FetchFailedError, ImageDestroyedError, LocatorUnavailableError, MediaLoadError
from ..errors.handler import ErrorHandler
from ..events.bus import EventBus
from ..events.media_events import TierFailedEvent, TierLoadedEvent
from .ports import ByteFetcher, FetchResult, ResourceLocatorPort
from .presentation import PresentationAdapter
from .queues import PriorityQueueSet
from .state_store import ResourceStateStore

if TYPE_CHECKING:  # pragma: no cover - only for type checking
    from ..infrastructure.services.byte_cache import MediaByteCache
    from .promotion import PromotionTimer

LOGGER = logging.getLogger(__name__)

_InFlightKey = Tuple[str, TaskKind]


class _TaskRun:
    """Execution of one admitted task.

    Thumbnail runs walk their tiers in order (``SMALL`` then ``MEDIUM``); full
    runs fetch ``FULL`` once.  Every fetch result re-enters through
    :meth:`_on_result` on the scheduler's context.

    The run is bound to the :class:`ResourceState` it was started for; once
    the store holds a different state under the same id, the run is stale.
    """

    def __init__(self, dispatcher: "Dispatcher", task: LoadTask, state: ResourceState) -> None:
        self._dispatcher = dispatcher
        self.task = task
        self.state = state
        self._remaining: List[FidelityTier] = list(task.tiers)
        self._awaiting: Optional[FidelityTier] = None
        self.reached: Optional[FidelityTier] = None
        self.finished = False
        # User request that arrived while this ambient run was in flight.
        self.user_task: Optional[LoadTask] = None

    @property
    def prefetch(self) -> bool:
        return self.task.queue is not QueueName.USER_REQUESTED and self.user_task is None

    def advance(self) -> None:
        if self.finished:
            return
        if not self._remaining:
            self._dispatcher._finish(self)
            return
        tier = self._remaining.pop(0)
        self._awaiting = tier
        self._dispatcher._fetch_tier(self, tier)

    def _on_result(self, tier: FidelityTier, result: FetchResult) -> None:
        if self.finished or self._awaiting is not tier:
            LOGGER.debug("Ignoring stray %s result for %s", tier.name, self.task.image_id)
            return
        self._awaiting = None
        if result.ok:
            self._dispatcher._handle_success(self, tier, result)
        else:
            error = FetchFailedError(
                f"{tier.label} load failed for {self.task.image_id}: {result.error}",
                image_id=self.task.image_id,
                tier=tier,
            )
            self._dispatcher._handle_failure(self, tier, error)

    def abandon_remaining(self) -> None:
        self._remaining.clear()


class Dispatcher:
    """Pull tasks in queue-priority order and hand them to the byte fetcher.

    :meth:`tick` never waits: it only starts loads, bounded by
    ``max_concurrent`` slots.  A slot freed by a completion is reused on a
    later tick, never within the tick that is currently admitting.
    """

    def __init__(
        self,
        queues: PriorityQueueSet,
        store: ResourceStateStore,
        locator: ResourceLocatorPort,
        fetcher: ByteFetcher,
        presenter: PresentationAdapter,
        *,
        max_concurrent: int = MAX_CONCURRENT,
        promotions: Optional["PromotionTimer"] = None,
        error_handler: Optional[ErrorHandler] = None,
        event_bus: Optional[EventBus] = None,
        byte_cache: Optional["MediaByteCache"] = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._queues = queues
        self._store = store
        self._locator = locator
        self._fetcher = fetcher
        self._presenter = presenter
        self._max_concurrent = max_concurrent
        self._promotions = promotions
        self._errors = error_handler
        self._events = event_bus
        self._cache = byte_cache
        self._current_loading = 0
        self._in_flight: Dict[_InFlightKey, _TaskRun] = {}
        self._started_total = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def current_loading(self) -> int:
        return self._current_loading

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def started_total(self) -> int:
        return self._started_total

    def is_in_flight(self, image_id: str, kind: TaskKind) -> bool:
        return self._active_run(image_id, kind) is not None

    def bind_promotions(self, promotions: "PromotionTimer") -> None:
        self._promotions = promotions

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def tick(self) -> int:
        """Admit as many queued tasks as there are free slots; return the count.

        A user task whose image already has a load of the same kind running
        is either attached to that load or put back to wait for it; ambient
        duplicates are dropped.
        """

        if self._current_loading >= self._max_concurrent:
            return 0
        budget = self._max_concurrent - self._current_loading
        started = 0
        deferred: List[LoadTask] = []
        while started < budget:
            task = self._next_task()
            if task is None:
                break
            running = self._active_run(task.image_id, task.kind)
            if running is not None:
                if task.queue is QueueName.USER_REQUESTED:
                    if not self._attach(running, task):
                        deferred.append(task)
                else:
                    LOGGER.debug("Dropping %s task for %s: already loading", task.kind.value, task.image_id)
                continue
            if not self._admissible(task):
                continue
            self._start(task)
            started += 1
        for task in deferred:
            self._queues.enqueue(task.queue, task)
        return started

    def _next_task(self) -> Optional[LoadTask]:
        for name in DISPATCH_ORDER:
            task = self._queues.dequeue(name)
            if task is not None:
                return task
        return None

    def _admissible(self, task: LoadTask) -> bool:
        state = self._store.get(task.image_id)
        if state is None:
            LOGGER.debug("Dropping %s task for destroyed image %s", task.kind.value, task.image_id)
            return False
        if task.queue is QueueName.USER_REQUESTED:
            return True
        if task.kind is TaskKind.THUMBNAIL and (state.thumbnail_loaded or state.failed):
            return False
        if task.kind is TaskKind.FULL and state.full_loaded:
            return False
        return True

    def _active_run(self, image_id: str, kind: TaskKind) -> Optional[_TaskRun]:
        run = self._in_flight.get((image_id, kind))
        if run is None or not self._is_current(run):
            return None
        return run

    def _is_current(self, run: _TaskRun) -> bool:
        return self._store.get(run.task.image_id) is run.state

    def _attach(self, run: _TaskRun, task: LoadTask) -> bool:
        """Hand a user full request to the ambient full load already running."""

        if task.kind is not TaskKind.FULL or not run.prefetch:
            return False
        run.user_task = task
        LOGGER.debug("User full request for %s joined the running prefetch", task.image_id)
        return True

    def _start(self, task: LoadTask) -> None:
        state = self._store.get(task.image_id)
        run = _TaskRun(self, task, state)
        self._current_loading += 1
        self._started_total += 1
        self._in_flight[(task.image_id, task.kind)] = run
        LOGGER.debug(
            "Start %s load for %s from %s (%d/%d)",
            task.kind.value,
            task.image_id,
            task.queue.name,
            self._current_loading,
            self._max_concurrent,
        )
        run.advance()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _fetch_tier(self, run: _TaskRun, tier: FidelityTier) -> None:
        if not self._is_current(run):
            self._absorb_destroyed(run)
            return
        url = self._locator.build_url(run.state.image, tier)
        if not url:
            error = LocatorUnavailableError(
                f"No {tier.label} URL for {run.task.image_id}: credential unavailable",
                image_id=run.task.image_id,
                tier=tier,
            )
            self._handle_failure(run, tier, error)
            return
        try:
            self._fetcher.fetch(url, lambda result, t=tier: run._on_result(t, result))
        except Exception as exc:
            LOGGER.exception("Byte fetcher raised for %s", url)
            run._on_result(tier, FetchResult.failure(url, str(exc)))

    def _handle_success(self, run: _TaskRun, tier: FidelityTier, result: FetchResult) -> None:
        image_id = run.task.image_id
        if not self._is_current(run):
            self._absorb_destroyed(run)
            return
        if self._cache is not None and result.data is not None:
            self._cache.put(image_id, tier, result.data)

        if tier.is_thumbnail:
            # First light: anything below the task's target is shown blurred
            # until the better tier lands.
            provisional = tier < run.task.tier
            run.reached = tier
            self._store.mark_tier_displayed(image_id, tier, provisional=provisional)
            self._notify_available(image_id, tier, provisional=provisional, prefetch=False)
            self._publish_loaded(image_id, tier, result, provisional=provisional, prefetch=False)
            run.advance()
            return

        self._store.mark_full_loaded(image_id)
        if not run.prefetch:
            self._store.mark_tier_displayed(image_id, tier, provisional=False)
        self._notify_available(image_id, tier, provisional=False, prefetch=run.prefetch)
        self._publish_loaded(image_id, tier, result, provisional=False, prefetch=run.prefetch)
        self._finish(run)

    def _handle_failure(self, run: _TaskRun, tier: FidelityTier, error: MediaLoadError) -> None:
        image_id = run.task.image_id
        if not self._is_current(run):
            self._absorb_destroyed(run)
            return
        self._report(error)
        try:
            self._presenter.on_load_failed(image_id, tier)
        except Exception:
            LOGGER.exception("Presentation adapter failed handling load failure of %s", image_id)
        if self._events is not None:
            self._events.publish(
                TierFailedEvent(image_id=image_id, tier=tier.label, reason=str(error), source="dispatcher")
            )

        if tier is FidelityTier.SMALL:
            self._store.mark_failed(image_id)
        elif tier is FidelityTier.MEDIUM and run.reached is not None:
            # Best effort reached: the small tier stays on screen, unblurred.
            self._store.mark_tier_displayed(image_id, run.reached, provisional=False)
        run.abandon_remaining()
        self._finish(run)
        if run.user_task is not None:
            # The user never got an attempt of their own.
            self._queues.enqueue(QueueName.USER_REQUESTED, run.user_task)

    def _finish(self, run: _TaskRun) -> None:
        if run.finished:
            return
        run.finished = True
        self._release(run)
        if run.task.kind is TaskKind.THUMBNAIL and run.reached is not None:
            self._store.mark_thumbnail_loaded(run.task.image_id)
            if self._promotions is not None:
                self._promotions.schedule(run.task.image_id)

    def _absorb_destroyed(self, run: _TaskRun) -> None:
        LOGGER.debug(
            "%s",
            ImageDestroyedError(f"{run.task.image_id} destroyed while loading", image_id=run.task.image_id),
        )
        run.finished = True
        run.abandon_remaining()
        self._release(run)

    def _release(self, run: _TaskRun) -> None:
        self._current_loading = max(0, self._current_loading - 1)
        key = (run.task.image_id, run.task.kind)
        # A newer registration of the same id may already own the key.
        if self._in_flight.get(key) is run:
            del self._in_flight[key]

    # ------------------------------------------------------------------
    # Notification helpers
    # ------------------------------------------------------------------

    def _notify_available(self, image_id: str, tier: FidelityTier, *, provisional: bool, prefetch: bool) -> None:
        try:
            self._presenter.on_tier_available(image_id, tier, provisional=provisional, prefetch=prefetch)
        except Exception:
            LOGGER.exception("Presentation adapter failed painting %s at %s", image_id, tier.name)

    def _publish_loaded(
        self, image_id: str, tier: FidelityTier, result: FetchResult, *, provisional: bool, prefetch: bool
    ) -> None:
        if self._events is None:
            return
        self._events.publish(
            TierLoadedEvent(
                image_id=image_id,
                tier=tier.label,
                provisional=provisional,
                prefetch=prefetch,
                size_bytes=len(result.data or b""),
                source="dispatcher",
            )
        )

    def _report(self, error: MediaLoadError) -> None:
        if self._errors is not None:
            self._errors.report_load_failure(error)
        else:
            LOGGER.warning("%s: %s", error.__class__.__name__, error)
