from .bus import Event, EventBus, Subscription
from .media_events import (
    ImageDestroyedEvent,
    ImageRegisteredEvent,
    MediaEvent,
    PromotionFiredEvent,
    TierFailedEvent,
    TierLoadedEvent,
)

__all__ = [
    "Event",
    "EventBus",
    "ImageDestroyedEvent",
    "ImageRegisteredEvent",
    "MediaEvent",
    "PromotionFiredEvent",
    "Subscription",
    "TierFailedEvent",
    "TierLoadedEvent",
]
