"""Translate scroll geometry into viewport enter/leave notifications."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Optional, Set

from PySide6.QtCore import QObject, QRect, Signal, Slot

from ..config import VIEWPORT_MARGIN_PX

if TYPE_CHECKING:  # pragma: no cover - only for type checking
    from ..scheduling.scheduler import MediaLoadScheduler

LOGGER = logging.getLogger(__name__)


class ViewportTracker(QObject):
    """Track which placeholders intersect the (margin-expanded) viewport.

    Geometry is in content coordinates.  The viewport is grown vertically by
    ``margin`` pixels on both sides so that loading starts just before a
    placeholder scrolls into view.  Transitions are reported once each.
    """

    entered = Signal(str)
    left = Signal(str)

    def __init__(self, margin: int = VIEWPORT_MARGIN_PX, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._margin = max(0, int(margin))
        self._viewport = QRect()
        self._items: Dict[str, QRect] = {}
        self._inside: Set[str] = set()

    @property
    def margin(self) -> int:
        return self._margin

    def visible_ids(self) -> Set[str]:
        return set(self._inside)

    def bind(self, scheduler: "MediaLoadScheduler") -> None:
        """Forward transitions to *scheduler*."""

        self.entered.connect(scheduler.on_viewport_enter)
        self.left.connect(scheduler.on_viewport_leave)

    def register(self, image_id: str, rect: QRect) -> None:
        self._items[image_id] = QRect(rect)
        self._evaluate(image_id)

    def update_item(self, image_id: str, rect: QRect) -> None:
        if image_id not in self._items:
            return
        self._items[image_id] = QRect(rect)
        self._evaluate(image_id)

    def unregister(self, image_id: str) -> None:
        # Destruction is reported to the scheduler separately; no leave event.
        self._items.pop(image_id, None)
        self._inside.discard(image_id)

    @Slot(QRect)
    def set_viewport(self, viewport: QRect) -> None:
        self._viewport = QRect(viewport)
        for image_id in list(self._items):
            self._evaluate(image_id)

    def _expanded(self) -> QRect:
        return self._viewport.adjusted(0, -self._margin, 0, self._margin)

    def _evaluate(self, image_id: str) -> None:
        rect = self._items[image_id]
        area = self._expanded()
        now_inside = area.isValid() and rect.intersects(area)
        was_inside = image_id in self._inside
        if now_inside and not was_inside:
            self._inside.add(image_id)
            LOGGER.debug("Viewport enter: %s", image_id)
            self.entered.emit(image_id)
        elif was_inside and not now_inside:
            self._inside.discard(image_id)
            LOGGER.debug("Viewport leave: %s", image_id)
            self.left.emit(image_id)
