import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Type


@dataclass(kw_only=True)
class Event:
    """Base class for everything published on the :class:`EventBus`."""
    timestamp: datetime = field(default_factory=datetime.now)
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class Subscription:
    """Handle returned by subscribe(); can be used to unsubscribe."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_type: Type = Event
    handler: Callable = field(default=lambda e: None)
    active: bool = True

    def cancel(self):
        self.active = False


class EventBus:
    """Synchronous publish/subscribe hub.

    The scheduler runs on a single cooperative context, so handlers are
    invoked inline on the publishing thread.  A handler subscribed to a base
    class also receives its subclasses.
    """

    def __init__(self, logger: logging.Logger = None):
        self._logger = logger or logging.getLogger(__name__)
        self._handlers: Dict[Type, List[Subscription]] = defaultdict(list)

    def subscribe(self, event_type: Type, handler: Callable) -> Subscription:
        sub = Subscription(event_type=event_type, handler=handler)
        self._handlers[event_type].append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription):
        subscription.active = False
        subs = self._handlers.get(subscription.event_type, [])
        try:
            subs.remove(subscription)
        except ValueError:
            pass

    def publish(self, event) -> int:
        """Deliver *event* to every matching handler; return how many ran."""
        delivered = 0
        for event_type in type(event).__mro__:
            for sub in list(self._handlers.get(event_type, ())):
                if not sub.active:
                    continue
                try:
                    sub.handler(event)
                except Exception as e:
                    self._logger.error(f"Handler failed for {type(event).__name__}: {e}")
                delivered += 1
        return delivered

    def subscriber_count(self, event_type: Type) -> int:
        return sum(1 for sub in self._handlers.get(event_type, ()) if sub.active)
