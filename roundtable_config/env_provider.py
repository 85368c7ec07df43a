# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Environment-backed settings provider."""

import os
from typing import Any, Mapping, Optional

from .base import ConfigProvider

ENV_PREFIX = "ROUNDTABLE_"


class EnvConfigProvider(ConfigProvider):
    """Reads settings from ``ROUNDTABLE_``-prefixed environment variables.

    The setting ``pre_search_timeout_seconds`` is read from
    ``ROUNDTABLE_PRE_SEARCH_TIMEOUT_SECONDS``. Empty variables count as unset.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None, prefix: str = ENV_PREFIX):
        self._environ = environ if environ is not None else os.environ
        self.prefix = prefix

    def key_for(self, name: str) -> str:
        return self.prefix + name.upper()

    def lookup(self, name: str) -> Any:
        value = self._environ.get(self.key_for(name))
        if value is None or not value.strip():
            return None
        return value

    def describe(self, name: str) -> str:
        return self.key_for(name)
