# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Tests for configuration providers and engine settings."""

import os
from unittest.mock import patch

import pytest

from roundtable_config import (
    EngineSettings,
    EnvConfigProvider,
    StaticConfigProvider,
    load_engine_settings,
)


class TestEnvConfigProvider:
    """Tests for EnvConfigProvider."""

    def test_reads_prefixed_variable(self):
        with patch.dict(os.environ, {"ROUNDTABLE_ANIMATION_TIMEOUT_MS": "250"}):
            provider = EnvConfigProvider()

            assert provider.get_int("animation_timeout_ms", 5000) == 250
            assert provider.get_int("title_poll_max_attempts", 30) == 30

    def test_custom_prefix(self):
        provider = EnvConfigProvider({"RT_TEST_TITLE_POLL_MAX_ATTEMPTS": "4"}, prefix="RT_TEST_")

        assert provider.get_int("title_poll_max_attempts", 30) == 4
        assert provider.describe("title_poll_max_attempts") == "RT_TEST_TITLE_POLL_MAX_ATTEMPTS"

    @pytest.mark.parametrize("value,expected", [
        ("true", True), ("1", True), ("YES", True), ("on", True),
        ("false", False), ("0", False), ("No", False), ("off", False),
    ])
    def test_get_bool(self, value, expected):
        provider = EnvConfigProvider({"ROUNDTABLE_MODERATOR_ENABLED": value})

        assert provider.get_bool("moderator_enabled", default=not expected) is expected

    def test_invalid_bool_names_variable(self):
        provider = EnvConfigProvider({"ROUNDTABLE_MODERATOR_ENABLED": "maybe"})

        with pytest.raises(ValueError, match="ROUNDTABLE_MODERATOR_ENABLED must be a boolean"):
            provider.get_bool("moderator_enabled", default=True)

    def test_invalid_int_names_variable(self):
        provider = EnvConfigProvider({"ROUNDTABLE_ANIMATION_TIMEOUT_MS": "forty"})

        with pytest.raises(ValueError, match="ROUNDTABLE_ANIMATION_TIMEOUT_MS must be an integer"):
            provider.get_int("animation_timeout_ms", 5000)

    def test_empty_variable_is_unset(self):
        provider = EnvConfigProvider({"ROUNDTABLE_ANIMATION_TIMEOUT_MS": "  "})

        assert provider.get_positive_int("animation_timeout_ms", 5000) == 5000


class TestStaticConfigProvider:
    """Tests for StaticConfigProvider."""

    def test_typed_getters(self):
        provider = StaticConfigProvider({
            "moderator_enabled": "off",
            "animation_timeout_ms": "12",
            "title_poll_max_attempts": 3,
        })

        assert provider.get_bool("moderator_enabled", default=True) is False
        assert provider.get_int("animation_timeout_ms", 5000) == 12
        assert provider.get_positive_int("title_poll_max_attempts", 30) == 3

    def test_bool_is_not_an_integer(self):
        provider = StaticConfigProvider({"title_poll_max_attempts": True})

        with pytest.raises(ValueError, match="setting 'title_poll_max_attempts' must be an integer"):
            provider.get_int("title_poll_max_attempts", 30)

    def test_non_positive_rejected(self):
        provider = StaticConfigProvider({"pre_search_timeout_seconds": 0})

        with pytest.raises(ValueError, match="must be positive, got 0"):
            provider.get_positive_int("pre_search_timeout_seconds", 120)

    def test_set(self):
        provider = StaticConfigProvider()

        provider.set("animation_timeout_ms", 75)

        assert provider.get_int("animation_timeout_ms", 5000) == 75


class TestEngineSettings:
    """Tests for EngineSettings and load_engine_settings."""

    def test_defaults(self):
        settings = EngineSettings()

        assert settings.pre_search_timeout_seconds == 120
        assert settings.resumption_max_age_seconds == 3600
        assert settings.animation_timeout_ms == 5000
        assert settings.pre_search_poll_interval_ms == 1000
        assert settings.moderator_enabled is True

    def test_non_positive_duration_rejected(self):
        with pytest.raises(ValueError, match="pre_search_timeout_seconds must be positive"):
            EngineSettings(pre_search_timeout_seconds=0)

    def test_settings_are_frozen(self):
        settings = EngineSettings()

        with pytest.raises(Exception):
            settings.animation_timeout_ms = 1

    def test_load_from_environment(self):
        with patch.dict(os.environ, {
            "ROUNDTABLE_PRE_SEARCH_TIMEOUT_SECONDS": "30",
            "ROUNDTABLE_ANIMATION_TIMEOUT_MS": "250",
            "ROUNDTABLE_MODERATOR_ENABLED": "false",
        }, clear=True):
            settings = load_engine_settings()

        assert settings.pre_search_timeout_seconds == 30
        assert settings.animation_timeout_ms == 250
        assert settings.moderator_enabled is False
        assert settings.title_poll_max_attempts == 30

    def test_load_from_static_provider(self):
        provider = StaticConfigProvider({"resumption_max_age_seconds": 60})

        assert load_engine_settings(provider).resumption_max_age_seconds == 60

    def test_load_rejects_invalid_value(self):
        provider = StaticConfigProvider({"title_poll_max_attempts": -1})

        with pytest.raises(ValueError, match="setting 'title_poll_max_attempts' must be positive"):
            load_engine_settings(provider)
