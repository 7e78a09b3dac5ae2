"""Schema helpers for the chatmedia settings file."""

from __future__ import annotations

from copy import deepcopy
from typing import Any

from jsonschema import Draft202012Validator

from ..config import (
    BYTE_CACHE_MAX_ENTRIES,
    DEFAULT_API_URL,
    DEFAULT_BACKEND_URL,
    DISPATCH_TICK_MS,
    MAX_CONCURRENT,
    PROMOTION_DELAY_MS,
    THUMBNAIL_SIZES,
    VIEWPORT_MARGIN_PX,
)

SETTINGS_SCHEMA: dict[str, Any] = {
    "$id": "chatmedia/settings.schema.json",
    "type": "object",
    "required": ["schema", "scheduler", "api"],
    "properties": {
        "schema": {"const": "chatmedia/settings@1"},
        "scheduler": {
            "type": "object",
            "properties": {
                "maxConcurrent": {"type": "integer", "minimum": 1},
                "promotionDelayMs": {"type": "integer", "minimum": 0},
                "dispatchTickMs": {"type": "integer", "minimum": 1},
                "viewportMarginPx": {"type": "integer", "minimum": 0},
            },
            "additionalProperties": True,
        },
        "api": {
            "type": "object",
            "properties": {
                "base_url": {"type": "string", "minLength": 1},
                "backend_url": {"type": "string", "minLength": 1},
                "thumbnail_sizes": {
                    "type": "object",
                    "properties": {
                        "small": {"type": "integer", "minimum": 1},
                        "medium": {"type": "integer", "minimum": 1},
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": True,
        },
        "cache": {
            "type": "object",
            "properties": {
                "max_entries": {"type": "integer", "minimum": 1},
            },
            "additionalProperties": True,
        },
    },
    "additionalProperties": True,
}

DEFAULT_SETTINGS: dict[str, Any] = {
    "schema": "chatmedia/settings@1",
    "scheduler": {
        "maxConcurrent": MAX_CONCURRENT,
        "promotionDelayMs": PROMOTION_DELAY_MS,
        "dispatchTickMs": DISPATCH_TICK_MS,
        "viewportMarginPx": VIEWPORT_MARGIN_PX,
    },
    "api": {
        "base_url": DEFAULT_API_URL,
        "backend_url": DEFAULT_BACKEND_URL,
        "thumbnail_sizes": dict(THUMBNAIL_SIZES),
    },
    "cache": {
        "max_entries": BYTE_CACHE_MAX_ENTRIES,
    },
}

_validator = Draft202012Validator(SETTINGS_SCHEMA)

_SECTIONS = ("scheduler", "api", "cache")


def merge_with_defaults(data: dict[str, Any] | None) -> dict[str, Any]:
    """Merge *data* with :data:`DEFAULT_SETTINGS` and validate the result."""

    merged = deepcopy(DEFAULT_SETTINGS)
    if data:
        for key, value in data.items():
            if key in _SECTIONS and isinstance(value, dict):
                target = merged.setdefault(key, {})
                for sub_key, sub_value in value.items():
                    if sub_key == "thumbnail_sizes" and isinstance(sub_value, dict):
                        target.setdefault(sub_key, {}).update(sub_value)
                        continue
                    target[sub_key] = sub_value
                continue
            merged[key] = value
    _validator.validate(merged)
    return merged


def validate_settings(data: dict[str, Any]) -> None:
    """Validate *data* against the settings schema."""

    _validator.validate(data)
