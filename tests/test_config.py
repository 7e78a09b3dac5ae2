"""Tests for SchedulerConfig and the settings schema helpers."""

from __future__ import annotations

import pytest
from jsonschema import ValidationError

from chatmedia.config import MAX_CONCURRENT, SchedulerConfig
from chatmedia.errors import SettingsValidationError
from chatmedia.settings.schema import DEFAULT_SETTINGS, merge_with_defaults, validate_settings


def test_defaults():
    config = SchedulerConfig()
    assert config.max_concurrent == MAX_CONCURRENT == 2
    assert config.promotion_delay_ms == 5000
    assert config.dispatch_tick_ms == 100
    assert config.viewport_margin_px == 200


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_concurrent": 0},
        {"promotion_delay_ms": -1},
        {"dispatch_tick_ms": 0},
        {"viewport_margin_px": -5},
    ],
)
def test_invalid_values_rejected(kwargs):
    with pytest.raises(SettingsValidationError):
        SchedulerConfig(**kwargs)


def test_mapping_uses_camel_case_keys():
    config = SchedulerConfig.from_mapping({"maxConcurrent": 4, "promotionDelayMs": 0})
    assert config.max_concurrent == 4
    assert config.promotion_delay_ms == 0
    assert config.dispatch_tick_ms == 100
    assert SchedulerConfig.from_mapping(None) == SchedulerConfig()
    assert SchedulerConfig.from_mapping(config.to_mapping()) == config


def test_merge_with_defaults_keeps_unspecified_keys():
    merged = merge_with_defaults({"scheduler": {"maxConcurrent": 3}, "api": {"thumbnail_sizes": {"small": 100}}})
    assert merged["scheduler"]["maxConcurrent"] == 3
    assert merged["scheduler"]["promotionDelayMs"] == 5000
    assert merged["api"]["thumbnail_sizes"] == {"small": 100, "medium": 400}
    assert merged["api"]["base_url"] == DEFAULT_SETTINGS["api"]["base_url"]
    # Defaults are not mutated by merging.
    assert DEFAULT_SETTINGS["scheduler"]["maxConcurrent"] == 2


@pytest.mark.parametrize(
    "payload",
    [
        {"scheduler": {"maxConcurrent": 0}},
        {"scheduler": {"promotionDelayMs": "soon"}},
        {"api": {"thumbnail_sizes": {"huge": 2000}}},
        {"schema": "chatmedia/settings@0"},
    ],
)
def test_invalid_settings_rejected(payload):
    with pytest.raises(ValidationError):
        merge_with_defaults(payload)


def test_validate_defaults():
    validate_settings(DEFAULT_SETTINGS)
