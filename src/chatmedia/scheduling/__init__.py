"""Progressive media-loading scheduler."""

from .clock import Clock, TimerHandle, VirtualClock
from .dispatcher import Dispatcher
from .ports import ByteFetcher, FetchCallback, FetchResult, ResourceLocatorPort
from .presentation import DisplayState, DisplayStateTracker, PresentationAdapter
from .promotion import PromotionTimer
from .queues import PriorityQueueSet
from .scheduler import MediaLoadScheduler
from .state_store import ResourceStateStore, placeholder_alive
from .stats import LoadStats, StatsMonitor

__all__ = [
    "ByteFetcher",
    "Clock",
    "Dispatcher",
    "DisplayState",
    "DisplayStateTracker",
    "FetchCallback",
    "FetchResult",
    "LoadStats",
    "MediaLoadScheduler",
    "PresentationAdapter",
    "PriorityQueueSet",
    "PromotionTimer",
    "ResourceLocatorPort",
    "ResourceStateStore",
    "StatsMonitor",
    "TimerHandle",
    "VirtualClock",
    "placeholder_alive",
]
