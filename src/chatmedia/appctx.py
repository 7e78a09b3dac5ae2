"""Application-wide context shared by the CLI and GUI entry points."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from .errors.handler import ErrorHandler
from .events.bus import EventBus
from .infrastructure.services.byte_cache import MediaByteCache
from .infrastructure.services.resource_locator import ResourceLocator, TokenProvider

if TYPE_CHECKING:  # pragma: no cover - only for type checking
    from .scheduling.clock import Clock
    from .scheduling.ports import ByteFetcher
    from .scheduling.presentation import PresentationAdapter
    from .scheduling.scheduler import MediaLoadScheduler
    from .settings.manager import SettingsManager


def _create_settings_manager() -> "SettingsManager":
    from .settings.manager import SettingsManager

    manager = SettingsManager()
    manager.load()
    return manager


@dataclass
class AppContext:
    """Container object wiring settings, events and error reporting."""

    settings: "SettingsManager" = field(default_factory=_create_settings_manager)
    event_bus: EventBus = field(default_factory=EventBus)
    error_handler: Optional[ErrorHandler] = None
    byte_cache: Optional[MediaByteCache] = None

    def __post_init__(self) -> None:
        if self.error_handler is None:
            self.error_handler = ErrorHandler(logging.getLogger("chatmedia"), self.event_bus)
        if self.byte_cache is None:
            self.byte_cache = MediaByteCache(int(self.settings.get("cache.max_entries", 200)))

    def build_locator(
        self,
        token_provider: Optional[TokenProvider] = None,
        *,
        api_url: Optional[str] = None,
    ) -> ResourceLocator:
        return ResourceLocator(
            api_url or self.settings.get("api.base_url"),
            token_provider,
            thumbnail_sizes=self.settings.get("api.thumbnail_sizes"),
            backend_url=self.settings.get("api.backend_url"),
        )

    def build_scheduler(
        self,
        fetcher: "ByteFetcher",
        presenter: "PresentationAdapter",
        *,
        clock: "Clock",
        locator=None,
    ) -> "MediaLoadScheduler":
        """Return a scheduler configured from the ``scheduler`` settings section."""

        from .scheduling.scheduler import MediaLoadScheduler

        return MediaLoadScheduler(
            locator or self.build_locator(),
            fetcher,
            presenter,
            clock=clock,
            config=self.settings.scheduler_config(),
            error_handler=self.error_handler,
            event_bus=self.event_bus,
            byte_cache=self.byte_cache,
        )
