import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from chatmedia.errors import MediaLoadError
from chatmedia.events.bus import Event, EventBus


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(kw_only=True)
class ErrorOccurredEvent(Event):
    error: Exception
    severity: ErrorSeverity
    context: dict = field(default_factory=dict)


UiCallback = Callable[[str, ErrorSeverity], None]


class ErrorHandler:
    """Route recoverable errors to the log, the event bus and the UI.

    Load failures are expected in a chat feed (expired tokens, deleted
    uploads, flaky links), so they are reported at WARNING and never reach
    the UI callback, which only sees ERROR and CRITICAL.
    """

    def __init__(self, logger: logging.Logger, event_bus: EventBus):
        self._logger = logger
        self._events = event_bus
        self._ui_callback: Optional[UiCallback] = None
        self._counts: Counter = Counter()

    def register_ui_callback(self, callback: UiCallback):
        self._ui_callback = callback

    @property
    def counts(self) -> dict:
        """Number of handled errors per exception class name."""
        return dict(self._counts)

    def handle(self, error: Exception, severity: ErrorSeverity = ErrorSeverity.ERROR, context: dict = None):
        context = dict(context or {})
        self._counts[error.__class__.__name__] += 1
        log_method = getattr(self._logger, severity.value, self._logger.error)
        log_method("%s: %s", error.__class__.__name__, error, extra=context)

        self._events.publish(ErrorOccurredEvent(error=error, severity=severity, context=context))

        if self._ui_callback and severity in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL):
            self._ui_callback(str(error), severity)

    def report_load_failure(self, error: MediaLoadError):
        tier = getattr(error.tier, "label", error.tier)
        self.handle(error, ErrorSeverity.WARNING, {"image_id": error.image_id, "tier": tier})
