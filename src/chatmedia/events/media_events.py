"""Notifications published by the scheduler about individual images."""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4


@dataclass(frozen=True)
class MediaEvent:
    """Base class; subscribe to it to observe every scheduler notification."""

    image_id: str = ""
    source: str = ""
    event_id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ImageRegisteredEvent(MediaEvent):
    visible: bool = False


@dataclass(frozen=True)
class ImageDestroyedEvent(MediaEvent):
    pass


@dataclass(frozen=True)
class TierLoadedEvent(MediaEvent):
    # Tier label: "small", "medium" or "full".
    tier: str = ""
    provisional: bool = False
    prefetch: bool = False
    size_bytes: int = 0


@dataclass(frozen=True)
class TierFailedEvent(MediaEvent):
    tier: str = ""
    reason: str = ""


@dataclass(frozen=True)
class PromotionFiredEvent(MediaEvent):
    # False when the image was already full or a full load was pending.
    enqueued: bool = False
