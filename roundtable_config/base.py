# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Sources of engine setting values.

A provider is asked for settings by name, the ``EngineSettings`` field name.
Each source only knows how to find a raw value; parsing and validation are
shared so every source rejects a bad value the same way.
"""

from abc import ABC, abstractmethod
from typing import Any

_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


class ConfigProvider(ABC):
    """Abstract source of engine settings keyed by setting name."""

    @abstractmethod
    def lookup(self, name: str) -> Any:
        """Raw value configured for a setting, or None when it is unset."""
        raise NotImplementedError

    @abstractmethod
    def describe(self, name: str) -> str:
        """Where a setting is read from, for error messages."""
        raise NotImplementedError

    def get_bool(self, name: str, default: bool) -> bool:
        """Get a boolean setting.

        Raises:
            ValueError: If the configured value is not a recognized boolean
        """
        value = self.lookup(name)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"{self.describe(name)} must be a boolean, got {value!r}")

    def get_int(self, name: str, default: int) -> int:
        """Get an integer setting.

        Raises:
            ValueError: If the configured value is not an integer
        """
        value = self.lookup(name)
        if value is None:
            return default
        if isinstance(value, bool):
            raise ValueError(f"{self.describe(name)} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{self.describe(name)} must be an integer, got {value!r}") from None

    def get_positive_int(self, name: str, default: int) -> int:
        """Get an integer setting that must be greater than zero.

        Raises:
            ValueError: If the configured value is not a positive integer
        """
        value = self.get_int(name, default)
        if value <= 0:
            raise ValueError(f"{self.describe(name)} must be positive, got {value}")
        return value
