# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Stream resumption after a reload or reconnect."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from .guards import GuardRegistry
from .models import StreamResumptionState, StreamStatus, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(hours=1)


class StreamResumptionManager:
    """Decides whether an in-flight participant stream should be re-attached.

    Attributes:
        state: Persisted in-flight stream, if any
        next_participant_to_trigger: Participant to start after a resumed stream
            completes, or None when the round's participants are done
    """

    def __init__(self, registry: GuardRegistry, max_age: timedelta = DEFAULT_MAX_AGE):
        self._registry = registry
        self.max_age = max_age
        self.state: Optional[StreamResumptionState] = None
        self.next_participant_to_trigger: Optional[int] = None

    def set_state(self, state: Optional[StreamResumptionState]) -> None:
        self.state = state

    def clear(self) -> None:
        self.state = None

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        if self.state is None:
            return True
        return (now or utcnow()) - self.state.created_at >= self.max_age

    def needs_resumption(
        self,
        current_thread_id: Optional[str],
        enabled_participant_count: int,
        now: Optional[datetime] = None,
    ) -> bool:
        """Whether the persisted stream should be re-attached.

        Requires an active state for the current thread that is younger than
        the maximum age and points at an enabled participant.
        """
        state = self.state
        if state is None or state.status != StreamStatus.ACTIVE:
            return False
        if current_thread_id is None or state.thread_id != current_thread_id:
            return False
        if self.is_stale(now):
            return False
        return 0 <= state.participant_index < enabled_participant_count

    def mark_resumption_attempted(self, round_number: int, participant_index: int) -> bool:
        """One-shot gate per (round, participant index).

        Returns:
            True the first time for a pair, False on every later call
        """
        return self._registry.resumption_attempted.try_mark_pair(round_number, participant_index)

    def handle_resumed_stream_complete(
        self,
        round_number: int,
        participant_index: int,
        enabled_participant_count: int,
    ) -> Optional[int]:
        """Record the end of a resumed stream.

        Returns:
            The next participant index, or None if the round's participants are done
        """
        next_index = participant_index + 1
        self.next_participant_to_trigger = next_index if next_index < enabled_participant_count else None
        logger.info(
            f"Resumed stream for round {round_number} participant {participant_index} complete, "
            f"next participant: {self.next_participant_to_trigger}"
        )
        self.clear()
        return self.next_participant_to_trigger

    def handle_resumption_failure(self, round_number: int, participant_index: int) -> None:
        """Forget the failed resumption and start a fresh attempt set."""
        logger.warning(f"Resumption of round {round_number} participant {participant_index} failed")
        self.clear()
        self.next_participant_to_trigger = None
        self._registry.replace_resumption_attempts()
