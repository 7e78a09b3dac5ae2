"""Presentation-side contract and a plain display-state recorder."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from ..domain.models import FidelityTier

LOGGER = logging.getLogger(__name__)


class PresentationAdapter(Protocol):
    """Receives the scheduler's decisions; owns all rendering.

    ``provisional`` marks a first-light image that should be drawn blurred
    until a better tier replaces it.  ``prefetch`` marks bytes fetched ahead
    of need that must not change what is on screen.
    """

    def on_tier_available(
        self,
        image_id: str,
        tier: FidelityTier,
        *,
        provisional: bool = False,
        prefetch: bool = False,
    ) -> None: ...

    def on_load_failed(self, image_id: str, tier: FidelityTier) -> None: ...


@dataclass
class DisplayState:
    """What a placeholder currently shows."""

    tier: Optional[FidelityTier] = None
    provisional: bool = False
    full_ready: bool = False
    failed: bool = False

    @property
    def shows_failure(self) -> bool:
        """True when nothing ever loaded and the failure affordance is due."""
        return self.failed and self.tier is None


class DisplayStateTracker:
    """Presentation adapter that records display state without rendering.

    Used headless (CLI, tests) and as the model behind the Qt adapter.
    """

    def __init__(self) -> None:
        self._states: Dict[str, DisplayState] = {}

    def on_tier_available(
        self,
        image_id: str,
        tier: FidelityTier,
        *,
        provisional: bool = False,
        prefetch: bool = False,
    ) -> None:
        state = self._states.setdefault(image_id, DisplayState())
        if tier is FidelityTier.FULL:
            state.full_ready = True
            if prefetch:
                return
        elif state.tier is not None and state.tier > tier:
            # Never step back to a lower tier once something better is shown.
            return
        state.tier = tier
        state.provisional = provisional
        state.failed = False

    def on_load_failed(self, image_id: str, tier: FidelityTier) -> None:
        state = self._states.setdefault(image_id, DisplayState())
        if state.tier is None:
            state.failed = True
        elif tier.is_thumbnail and state.tier < tier:
            # The lower tier becomes the settled thumbnail.
            state.provisional = False
        LOGGER.debug("Display keeps %s for %s after %s failed", state.tier, image_id, tier.name)

    def state(self, image_id: str) -> DisplayState:
        return self._states.get(image_id, DisplayState())

    def forget(self, image_id: str) -> None:
        self._states.pop(image_id, None)

    def __len__(self) -> int:
        return len(self._states)
