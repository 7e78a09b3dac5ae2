"""Custom exception hierarchy for chatmedia."""

from __future__ import annotations


class ChatMediaError(Exception):
    """Base class for all custom errors raised by chatmedia."""


# --- Load errors (scoped to one image + tier) ---

class MediaLoadError(ChatMediaError):
    """Base class for failures affecting a single image at a single tier."""

    def __init__(self, message: str, *, image_id: str | None = None, tier: object = None) -> None:
        super().__init__(message)
        self.image_id = image_id
        self.tier = tier


class LocatorUnavailableError(MediaLoadError):
    """Raised when no URL can be built, typically because no credential is available."""


class FetchFailedError(MediaLoadError):
    """Raised when the network load or image decoding fails."""


class ImageDestroyedError(MediaLoadError):
    """Raised when a deferred action targets an image that no longer exists."""


# --- Scheduling errors ---

class SchedulingError(ChatMediaError):
    """Base class for misuse of the scheduler API."""


class InvalidTaskError(SchedulingError):
    """Raised when a load task combines a tier and a queue that cannot coexist."""


class UnknownImageError(SchedulingError):
    """Raised when a user action names an image that was never registered."""


# --- Settings errors ---

class SettingsError(ChatMediaError):
    """Base class for settings related failures."""


class SettingsLoadError(SettingsError):
    """Raised when the settings file cannot be parsed or loaded."""


class SettingsValidationError(SettingsError):
    """Raised when settings data fails schema validation."""
