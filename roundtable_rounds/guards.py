# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Per-round idempotency guards.

Every phase trigger consults a guard through a single check-and-set call.
The check and the mutation happen under one lock, so two trigger paths that
observe the same completion condition cannot both win.
"""

import threading
from typing import Dict, Hashable, Iterable, Set, Tuple


class RoundGuard:
    """One-shot gate keyed by an arbitrary hashable key (usually a round number)."""

    def __init__(self, name: str):
        self.name = name
        self._keys: Set[Hashable] = set()
        self._lock = threading.Lock()

    def try_mark(self, key: Hashable) -> bool:
        """Mark key as triggered.

        Returns:
            True if this call marked the key, False if it was already marked
        """
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def has(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._keys

    def clear(self, key: Hashable) -> None:
        with self._lock:
            self._keys.discard(key)

    def keys(self) -> Set[Hashable]:
        with self._lock:
            return set(self._keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)


class RoundPairGuard(RoundGuard):
    """Gate keyed by (round number, sub key), cleared per round.

    Used for resumption attempts, keyed by (round, participant index).
    """

    def try_mark_pair(self, round_number: int, sub_key: Hashable) -> bool:
        return self.try_mark((round_number, sub_key))

    def clear_round(self, round_number: int) -> None:
        with self._lock:
            self._keys = {key for key in self._keys if key[0] != round_number}


class MessageRoundGuard:
    """Gate keyed by both a message id and its round number.

    A match on either the id or the round blocks the trigger. The same round
    can show up under a new message id after a remount, and the round match
    catches that.
    """

    def __init__(self, name: str):
        self.name = name
        self._rounds: Set[int] = set()
        self._ids: Dict[str, int] = {}
        self._lock = threading.Lock()

    def try_mark(self, message_id: str, round_number: int) -> bool:
        with self._lock:
            if round_number in self._rounds or message_id in self._ids:
                return False
            self._rounds.add(round_number)
            self._ids[message_id] = round_number
            return True

    def has(self, message_id: str | None = None, round_number: int | None = None) -> bool:
        with self._lock:
            return (round_number is not None and round_number in self._rounds) or (
                message_id is not None and message_id in self._ids
            )

    def clear(self, round_number: int) -> None:
        """Forget the round and every id that was marked for it."""
        with self._lock:
            self._rounds.discard(round_number)
            self._ids = {mid: rnd for mid, rnd in self._ids.items() if rnd != round_number}

    def rounds(self) -> Set[int]:
        with self._lock:
            return set(self._rounds)


class GuardRegistry:
    """All idempotency guards of one orchestrator session.

    A registry is never emptied in place on a full reset; the reset builds a
    new registry so no stale reference can observe or mutate the next
    session's guards.

    Attributes:
        pre_search_triggered: Rounds whose pre-search was created
        moderator_created: Rounds whose moderator message was created
        moderator_stream_triggered: (message id, round) pairs whose moderator stream was opened
        analysis_created: Rounds whose analysis record was created
        resumption_attempted: (round, participant index) pairs already resumed
    """

    def __init__(self):
        self.pre_search_triggered = RoundGuard("pre_search_triggered")
        self.moderator_created = RoundGuard("moderator_created")
        self.moderator_stream_triggered = MessageRoundGuard("moderator_stream_triggered")
        self.analysis_created = RoundGuard("analysis_created")
        self.resumption_attempted = RoundPairGuard("resumption_attempted")

    def clear_round(self, round_number: int) -> None:
        """Clear every guard of one round, leaving other rounds untouched."""
        self.pre_search_triggered.clear(round_number)
        self.moderator_created.clear(round_number)
        self.moderator_stream_triggered.clear(round_number)
        self.analysis_created.clear(round_number)
        self.resumption_attempted.clear_round(round_number)

    def replace_resumption_attempts(self) -> None:
        self.resumption_attempted = RoundPairGuard("resumption_attempted")

    def mark_completed_rounds(
        self,
        pre_search_rounds: Iterable[int] = (),
        moderator_rounds: Iterable[Tuple[str, int]] = (),
        analysis_rounds: Iterable[int] = (),
    ) -> None:
        """Mark phases that already ran before this session was mounted."""
        for round_number in pre_search_rounds:
            self.pre_search_triggered.try_mark(round_number)
        for message_id, round_number in moderator_rounds:
            self.moderator_created.try_mark(round_number)
            self.moderator_stream_triggered.try_mark(message_id, round_number)
        for round_number in analysis_rounds:
            self.analysis_created.try_mark(round_number)
