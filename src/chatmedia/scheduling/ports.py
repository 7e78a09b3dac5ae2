"""Interfaces the scheduler consumes from its environment."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ..domain.models import FidelityTier, LogicalImage


@dataclass(frozen=True)
class FetchResult:
    url: str
    data: Optional[bytes] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.data is not None

    @classmethod
    def success(cls, url: str, data: bytes) -> "FetchResult":
        return cls(url=url, data=data)

    @classmethod
    def failure(cls, url: str, reason: str) -> "FetchResult":
        return cls(url=url, error=reason or "unknown error")


FetchCallback = Callable[[FetchResult], None]


class ResourceLocatorPort(Protocol):
    """Maps an image and tier to a fetchable URL; ``""`` when no credential."""

    def build_url(self, image: LogicalImage, tier: FidelityTier) -> str: ...


class ByteFetcher(Protocol):
    """Loads one URL and reports back exactly once through *callback*.

    The callback must run on the scheduler's own context (the Qt thread that
    owns the scheduler, or the virtual clock in tests).
    """

    def fetch(self, url: str, callback: FetchCallback) -> None: ...
