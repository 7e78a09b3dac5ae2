"""Offline fetcher and locator used by the ``simulate`` command and tests."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..domain.models import FidelityTier, LogicalImage
from .clock import Clock
from .ports import FetchCallback, FetchResult

LOGGER = logging.getLogger(__name__)

SIMULATED_SCHEME = "sim://"

# Rough payload sizes per tier for the stress test.
_TIER_BYTES: Dict[str, int] = {"small": 4_000, "medium": 30_000, "full": 400_000}


class SimulatedLocator:
    """Locator producing ``sim://<id>/<tier>`` URLs; optional missing credential."""

    def __init__(self, *, credential: bool = True) -> None:
        self.credential = credential

    def build_url(self, image: LogicalImage, tier: FidelityTier) -> str:
        if not self.credential:
            return ""
        return f"{SIMULATED_SCHEME}{image.id}/{tier.label}"


@dataclass
class SimulatedFetcher:
    """Completes fetches on the clock after a random latency.

    ``failures`` lists URL substrings that always fail; ``failure_rate`` adds
    random failures on top.
    """

    clock: Clock
    latency_ms: tuple[int, int] = (50, 400)
    failure_rate: float = 0.0
    failures: List[str] = field(default_factory=list)
    seed: Optional[int] = None
    requested: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._rng = random.Random(self.seed)
        self.in_flight = 0
        self.peak_in_flight = 0

    def fetch(self, url: str, callback: FetchCallback) -> None:
        self.requested.append(url)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        delay = self._rng.randint(*self.latency_ms)
        fail = any(marker in url for marker in self.failures) or self._rng.random() < self.failure_rate
        self.clock.call_later(delay, lambda: self._complete(url, callback, fail))

    def _complete(self, url: str, callback: FetchCallback, fail: bool) -> None:
        self.in_flight -= 1
        if fail:
            callback(FetchResult.failure(url, "simulated network failure"))
            return
        tier = url.rsplit("/", 1)[-1]
        callback(FetchResult.success(url, b"\0" * _TIER_BYTES.get(tier, 1_000)))
