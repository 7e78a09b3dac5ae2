"""Qt presentation adapter exposing scheduler decisions as signals."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from PySide6.QtCore import QObject, Signal, Slot

from ..domain.models import FidelityTier
from ..scheduling.presentation import DisplayState, DisplayStateTracker

if TYPE_CHECKING:  # pragma: no cover - only for type checking
    from ..infrastructure.services.byte_cache import MediaByteCache
    from ..scheduling.scheduler import MediaLoadScheduler

LOGGER = logging.getLogger(__name__)


class QtPresentationAdapter(QObject):
    """Relay tier availability to the view layer.

    ``tierAvailable`` carries ``(image_id, tier, provisional)`` and fires only
    when what the placeholder should show changes.  A prefetched full image
    emits ``fullPrefetched`` instead, leaving the displayed tier alone until
    the user asks for it.
    """

    tierAvailable = Signal(str, int, bool)
    fullPrefetched = Signal(str)
    loadFailed = Signal(str, int)

    def __init__(
        self,
        byte_cache: Optional["MediaByteCache"] = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._tracker = DisplayStateTracker()
        self._cache = byte_cache
        self._scheduler: Optional["MediaLoadScheduler"] = None

    def bind_scheduler(self, scheduler: "MediaLoadScheduler") -> None:
        self._scheduler = scheduler

    def state(self, image_id: str) -> DisplayState:
        return self._tracker.state(image_id)

    def forget(self, image_id: str) -> None:
        self._tracker.forget(image_id)

    def bytes_for(self, image_id: str, tier: FidelityTier) -> Optional[bytes]:
        if self._cache is None:
            return None
        return self._cache.get(image_id, tier)

    # Scheduler-facing callbacks
    def on_tier_available(
        self,
        image_id: str,
        tier: FidelityTier,
        *,
        provisional: bool = False,
        prefetch: bool = False,
    ) -> None:
        before = self._tracker.state(image_id)
        previous = (before.tier, before.provisional)
        self._tracker.on_tier_available(image_id, tier, provisional=provisional, prefetch=prefetch)
        after = self._tracker.state(image_id)
        if tier is FidelityTier.FULL and prefetch:
            self.fullPrefetched.emit(image_id)
            return
        if (after.tier, after.provisional) != previous and after.tier is not None:
            self.tierAvailable.emit(image_id, int(after.tier), after.provisional)

    def on_load_failed(self, image_id: str, tier: FidelityTier) -> None:
        before = self._tracker.state(image_id)
        previous = (before.tier, before.provisional)
        self._tracker.on_load_failed(image_id, tier)
        after = self._tracker.state(image_id)
        if after.shows_failure:
            self.loadFailed.emit(image_id, int(tier))
        elif after.tier is not None and (after.tier, after.provisional) != previous:
            # A fallback tier settled; repaint it sharp.
            self.tierAvailable.emit(image_id, int(after.tier), after.provisional)

    # View-facing slots
    @Slot(str)
    def requestFull(self, image_id: str) -> None:  # noqa: N802 - Qt slot naming
        """Show the full image, loading it at user priority if needed."""

        state = self._tracker.state(image_id)
        if state.full_ready:
            self._tracker.on_tier_available(image_id, FidelityTier.FULL)
            self.tierAvailable.emit(image_id, int(FidelityTier.FULL), False)
            return
        if self._scheduler is None:
            LOGGER.warning("requestFull(%s) ignored: no scheduler bound", image_id)
            return
        self._scheduler.request_full(image_id)

    @Slot(str, int)
    def retry(self, image_id: str, tier: int) -> None:
        if self._scheduler is None:
            LOGGER.warning("retry(%s) ignored: no scheduler bound", image_id)
            return
        self._scheduler.manual_load(image_id, FidelityTier(tier))
