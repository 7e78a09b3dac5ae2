"""Per-image load state."""

from __future__ import annotations

import logging
import weakref
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..domain.models import FidelityTier, LogicalImage, ResourceState

LOGGER = logging.getLogger(__name__)

PlaceholderProbe = Callable[[Any], bool]


def placeholder_alive(ref: Any) -> bool:
    """Default liveness probe for placeholder references.

    A dead ``weakref`` or an object whose ``is_attached()`` returns ``False``
    counts as gone; anything else (including ``None``) is kept.
    """

    if isinstance(ref, weakref.ReferenceType):
        target = ref()
        if target is None:
            return False
        ref = target
    probe = getattr(ref, "is_attached", None)
    if callable(probe):
        return bool(probe())
    return True


class ResourceStateStore:
    """Holds one :class:`ResourceState` per registered image.  No I/O."""

    def __init__(self) -> None:
        self._states: Dict[str, ResourceState] = {}

    def register(self, image: LogicalImage, placeholder_ref: Any = None) -> ResourceState:
        state = self._states.get(image.id)
        if state is not None:
            if placeholder_ref is not None:
                state.placeholder_ref = placeholder_ref
            return state
        state = ResourceState(image=image, placeholder_ref=placeholder_ref)
        self._states[image.id] = state
        return state

    def get(self, image_id: str) -> Optional[ResourceState]:
        return self._states.get(image_id)

    def destroy(self, image_id: str) -> bool:
        return self._states.pop(image_id, None) is not None

    def mark_tier_displayed(self, image_id: str, tier: FidelityTier, *, provisional: bool) -> None:
        state = self._states.get(image_id)
        if state is None:
            return
        state.displayed_tier = tier
        state.provisional = provisional

    def mark_thumbnail_loaded(self, image_id: str) -> None:
        state = self._states.get(image_id)
        if state is not None:
            state.thumbnail_loaded = True
            state.failed = False

    def mark_full_loaded(self, image_id: str) -> None:
        state = self._states.get(image_id)
        if state is not None:
            state.full_loaded = True

    def mark_failed(self, image_id: str) -> None:
        state = self._states.get(image_id)
        if state is not None:
            state.failed = True

    def clear_failed(self, image_id: str) -> None:
        state = self._states.get(image_id)
        if state is not None:
            state.failed = False

    def collect_detached(self, is_alive: Optional[PlaceholderProbe] = None) -> List[str]:
        """Return ids whose placeholder is gone.

        The caller is responsible for destroying them so that queued work and
        armed promotions are released together with the state.
        """

        probe = is_alive or placeholder_alive
        dead: List[str] = []
        for image_id, state in self._states.items():
            try:
                alive = probe(state.placeholder_ref)
            except Exception:
                LOGGER.exception("Placeholder probe failed for %s", image_id)
                continue
            if not alive:
                dead.append(image_id)
        return dead

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    @property
    def total_images(self) -> int:
        return len(self._states)

    @property
    def loaded_thumbnails(self) -> int:
        return sum(1 for state in self._states.values() if state.thumbnail_loaded)

    @property
    def loaded_full_images(self) -> int:
        return sum(1 for state in self._states.values() if state.full_loaded)

    def ids(self) -> List[str]:
        return list(self._states)

    def __contains__(self, image_id: object) -> bool:
        return image_id in self._states

    def __iter__(self) -> Iterator[ResourceState]:
        return iter(list(self._states.values()))

    def __len__(self) -> int:
        return len(self._states)
