# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Barrier on per-message completion animations.

UI-integrated callers register an animation when a message finishes and
complete it when the animation ends. The analysis stream waits until no
animation is pending, or until the timeout expires.
"""

import asyncio
import logging
from typing import Hashable, Set

logger = logging.getLogger(__name__)


class AnimationBarrier:
    """Tracks pending completion animations."""

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._pending: Set[Hashable] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending(self) -> Set[Hashable]:
        return set(self._pending)

    def register(self, key: Hashable) -> None:
        self._pending.add(key)
        self._idle.clear()

    def complete(self, key: Hashable) -> None:
        self._pending.discard(key)
        if not self._pending:
            self._idle.set()

    def clear(self) -> None:
        self._pending.clear()
        self._idle.set()

    async def wait(self) -> bool:
        """Wait until no animation is pending.

        Returns:
            True if all animations finished, False if the timeout expired
        """
        if not self._pending:
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=self.timeout_seconds)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                f"Animations still pending after {self.timeout_seconds}s: {sorted(map(str, self._pending))}"
            )
            return False
