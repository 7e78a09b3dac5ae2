"""Default configuration values for chatmedia."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final, Mapping

from .errors import SettingsValidationError

# Admission control: at most this many fetches are in flight at once.  Two
# keeps a chat feed responsive on mobile links without starving the thumbnail
# pipeline of bandwidth.
MAX_CONCURRENT: Final[int] = 2

# Delay between a thumbnail settling and its full-resolution prefetch being
# queued.  Images the user scrolls straight past never cost a full download
# as long as they are destroyed within this window.
PROMOTION_DELAY_MS: Final[int] = 5000

DISPATCH_TICK_MS: Final[int] = 100

# Placeholders start loading this many pixels before they scroll into view.
VIEWPORT_MARGIN_PX: Final[int] = 200

# Pixel edge requested from the backend thumbnail endpoint per tier.  The full
# tier is served by the ``/view`` endpoint and has no size parameter.
THUMBNAIL_SIZES: Final[dict[str, int]] = {"small": 150, "medium": 400}

DEFAULT_API_URL: Final[str] = "http://127.0.0.1:4005/api"
DEFAULT_BACKEND_URL: Final[str] = "http://127.0.0.1:4005"

# Environment variables consulted, in order, for the access token used to sign
# media URLs.
TOKEN_ENV_VARS: Final[tuple[str, ...]] = ("CHATMEDIA_ACCESS_TOKEN", "ACCESS_TOKEN")

BYTE_CACHE_MAX_ENTRIES: Final[int] = 200

# The periodic stats monitor only logs while there is work queued or in flight.
STATS_LOG_INTERVAL_MS: Final[int] = 5000


@dataclass(frozen=True)
class SchedulerConfig:
    """Tunables recognised by :class:`~chatmedia.scheduling.scheduler.MediaLoadScheduler`."""

    max_concurrent: int = MAX_CONCURRENT
    promotion_delay_ms: int = PROMOTION_DELAY_MS
    dispatch_tick_ms: int = DISPATCH_TICK_MS
    viewport_margin_px: int = VIEWPORT_MARGIN_PX

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise SettingsValidationError(
                f"max_concurrent must be at least 1, got {self.max_concurrent}"
            )
        if self.promotion_delay_ms < 0:
            raise SettingsValidationError(
                f"promotion_delay_ms must not be negative, got {self.promotion_delay_ms}"
            )
        if self.dispatch_tick_ms <= 0:
            raise SettingsValidationError(
                f"dispatch_tick_ms must be positive, got {self.dispatch_tick_ms}"
            )
        if self.viewport_margin_px < 0:
            raise SettingsValidationError(
                f"viewport_margin_px must not be negative, got {self.viewport_margin_px}"
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "SchedulerConfig":
        """Build a config from the camelCase ``scheduler`` settings section."""

        if not data:
            return cls()
        return cls(
            max_concurrent=int(data.get("maxConcurrent", MAX_CONCURRENT)),
            promotion_delay_ms=int(data.get("promotionDelayMs", PROMOTION_DELAY_MS)),
            dispatch_tick_ms=int(data.get("dispatchTickMs", DISPATCH_TICK_MS)),
            viewport_margin_px=int(data.get("viewportMarginPx", VIEWPORT_MARGIN_PX)),
        )

    def to_mapping(self) -> dict[str, int]:
        return {
            "maxConcurrent": self.max_concurrent,
            "promotionDelayMs": self.promotion_delay_ms,
            "dispatchTickMs": self.dispatch_tick_ms,
            "viewportMarginPx": self.viewport_margin_px,
        }
