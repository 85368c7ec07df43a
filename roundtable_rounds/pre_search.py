# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Pre-search coordination.

A round with web search enabled gets one pre-search record. Creating it
does not hold back the user message, but the round's participants may not
start while the record is pending or streaming. Status only moves forward,
and a pre-search that goes quiet for longer than the activity timeout is
force-completed so search trouble never stalls the round.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .guards import RoundGuard
from .models import PhaseStatus, PreSearch, utcnow

logger = logging.getLogger(__name__)

DEFAULT_ACTIVITY_TIMEOUT = timedelta(seconds=120)


class PreSearchCoordinator:
    """Owns the pre-search records of a thread, one per round."""

    def __init__(self, guard: RoundGuard, activity_timeout: timedelta = DEFAULT_ACTIVITY_TIMEOUT):
        """Initialize the coordinator.

        Args:
            guard: Guard marking rounds whose pre-search was created
            activity_timeout: Inactivity after which a non-terminal pre-search
                is completed synthetically
        """
        self._guard = guard
        self.activity_timeout = activity_timeout
        self._records: Dict[int, PreSearch] = {}
        self._last_activity: Dict[int, datetime] = {}

    @staticmethod
    def pre_search_id(thread_id: str, round_number: int) -> str:
        return f"{thread_id}_r{round_number}_presearch"

    def get(self, round_number: int) -> Optional[PreSearch]:
        return self._records.get(round_number)

    def records(self) -> List[PreSearch]:
        return [self._records[r] for r in sorted(self._records)]

    def create(
        self,
        thread_id: str,
        round_number: int,
        user_query: str,
        now: Optional[datetime] = None,
    ) -> Optional[PreSearch]:
        """Create the pending pre-search of a round.

        Returns:
            The new record, or None if this round's pre-search was already triggered
        """
        if not self._guard.try_mark(round_number):
            logger.debug(f"Pre-search for round {round_number} already triggered")
            return None

        now = now or utcnow()
        record = PreSearch(
            id=self.pre_search_id(thread_id, round_number),
            thread_id=thread_id,
            round_number=round_number,
            status=PhaseStatus.PENDING,
            user_query=user_query,
            created_at=now,
        )
        self._records[round_number] = record
        self._last_activity[round_number] = now
        return record

    def add(self, record: PreSearch) -> bool:
        """Merge a record delivered by the backend.

        A record for a round that already has one only replaces it if its
        status is further along.

        Returns:
            True if the record was stored
        """
        existing = self._records.get(record.round_number)
        if existing is not None and not existing.status.can_transition_to(record.status):
            return False
        self._records[record.round_number] = record
        self._guard.try_mark(record.round_number)
        self._last_activity.setdefault(record.round_number, record.created_at)
        return True

    def update_status(
        self,
        round_number: int,
        status: PhaseStatus,
        now: Optional[datetime] = None,
        search_data: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        """Move a round's pre-search forward.

        Updates that would move the status backwards, or away from a terminal
        status, are ignored.

        Returns:
            True if the status changed
        """
        record = self._records.get(round_number)
        if record is None:
            logger.warning(f"Status update for unknown pre-search of round {round_number}")
            return False
        if not record.status.can_transition_to(status):
            logger.debug(
                f"Ignoring pre-search status {status.value} for round {round_number} "
                f"(current: {record.status.value})"
            )
            return False

        now = now or utcnow()
        record.status = status
        if search_data is not None:
            record.search_data = search_data
        if status.is_terminal:
            record.completed_at = now
            record.error_message = error_message if status == PhaseStatus.FAILED else None
        self._last_activity[round_number] = now
        return True

    def record_activity(self, round_number: int, now: Optional[datetime] = None) -> None:
        """Note that the pre-search stream produced data."""
        record = self._records.get(round_number)
        if record is None or record.status.is_terminal:
            return
        self._last_activity[round_number] = now or utcnow()

    def is_blocking(self, round_number: int) -> bool:
        """Whether the round's participants must wait for the pre-search."""
        record = self._records.get(round_number)
        return record is not None and not record.status.is_terminal

    def sweep_stuck(self, now: Optional[datetime] = None) -> List[int]:
        """Complete every non-terminal pre-search idle past the activity timeout.

        Returns:
            Rounds whose pre-search was force-completed
        """
        now = now or utcnow()
        completed = []
        for round_number, record in sorted(self._records.items()):
            if record.status.is_terminal:
                continue
            last_activity = self._last_activity.get(round_number, record.created_at)
            if now - last_activity >= self.activity_timeout:
                logger.warning(
                    f"Pre-search for round {round_number} idle since {last_activity.isoformat()}, "
                    f"completing without search context"
                )
                self.update_status(round_number, PhaseStatus.COMPLETE, now=now)
                completed.append(round_number)
        return completed

    def remove(self, round_number: int) -> None:
        self._records.pop(round_number, None)
        self._last_activity.pop(round_number, None)
