# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Roundtable configuration providers and typed engine settings."""

from .base import ConfigProvider
from .env_provider import ENV_PREFIX, EnvConfigProvider
from .settings import EngineSettings, load_engine_settings
from .static_provider import StaticConfigProvider

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigProvider",
    "ENV_PREFIX",
    "EngineSettings",
    "EnvConfigProvider",
    "StaticConfigProvider",
    "load_engine_settings",
]
