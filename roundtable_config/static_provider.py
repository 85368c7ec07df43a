# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""In-memory settings provider for tests and embedding."""

from typing import Any

from .base import ConfigProvider


class StaticConfigProvider(ConfigProvider):
    """Settings given directly by name, e.g. ``{"animation_timeout_ms": 50}``."""

    def __init__(self, values: dict[str, Any] | None = None):
        self._values = dict(values or {})

    def lookup(self, name: str) -> Any:
        return self._values.get(name)

    def describe(self, name: str) -> str:
        return f"setting '{name}'"

    def set(self, name: str, value: Any) -> None:
        self._values[name] = value
