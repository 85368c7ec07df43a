# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Typed settings for the round orchestration engine."""

from dataclasses import dataclass, fields
from typing import Optional

from .base import ConfigProvider
from .env_provider import EnvConfigProvider


@dataclass(frozen=True)
class EngineSettings:
    """Timing and feature settings of the round engine.

    Attributes:
        pre_search_timeout_seconds: Inactivity after which a pre-search is
            force-completed
        pre_search_sweep_interval_seconds: How often stuck pre-searches are swept
        resumption_max_age_seconds: Age at which a resumption state is stale
        animation_timeout_ms: Upper bound on the animation barrier wait
        pre_search_poll_interval_ms: Delay between pre-search status polls
        title_poll_interval_ms: Delay between title/slug polls
        title_poll_max_attempts: Polls before giving up on a generated title
        moderator_enabled: Whether rounds run a moderator pass
        analysis_summary_max_length: Maximum length of a per-participant summary
    """

    pre_search_timeout_seconds: int = 120
    pre_search_sweep_interval_seconds: int = 5
    resumption_max_age_seconds: int = 3600
    animation_timeout_ms: int = 5000
    pre_search_poll_interval_ms: int = 1000
    title_poll_interval_ms: int = 2000
    title_poll_max_attempts: int = 30
    moderator_enabled: bool = True
    analysis_summary_max_length: int = 300

    def __post_init__(self):
        for name in (
            "pre_search_timeout_seconds",
            "pre_search_sweep_interval_seconds",
            "resumption_max_age_seconds",
            "animation_timeout_ms",
            "pre_search_poll_interval_ms",
            "title_poll_interval_ms",
            "title_poll_max_attempts",
            "analysis_summary_max_length",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")


def load_engine_settings(provider: Optional[ConfigProvider] = None) -> EngineSettings:
    """Load engine settings from a configuration provider.

    Each field is looked up by name; the environment provider maps
    ``pre_search_timeout_seconds`` to ``ROUNDTABLE_PRE_SEARCH_TIMEOUT_SECONDS``.
    Unset settings keep their defaults.

    Args:
        provider: Configuration source (defaults to environment variables)

    Returns:
        EngineSettings instance

    Raises:
        ValueError: If a configured value is malformed or a duration is not positive
    """
    provider = provider or EnvConfigProvider()
    defaults = EngineSettings()

    values = {}
    for item in fields(EngineSettings):
        default = getattr(defaults, item.name)
        if isinstance(default, bool):
            values[item.name] = provider.get_bool(item.name, default)
        else:
            values[item.name] = provider.get_positive_int(item.name, default)
    return EngineSettings(**values)
