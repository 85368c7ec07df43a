# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Participant roster operations.

Priority is the participant's position in the thread's display order, a
dense 0..N-1 sequence. Every structural change returns a new list with
priorities reassigned; a model's position in any global catalog never
leaks into priority.
"""

import uuid
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence

from .exceptions import DuplicateParticipantError, UnknownParticipantError
from .models import Participant


def sort_by_priority(participants: Iterable[Participant]) -> List[Participant]:
    return sorted(participants, key=lambda p: p.priority)


def reindex(participants: Sequence[Participant]) -> List[Participant]:
    """Reassign priority 0..N-1 following the given order."""
    return [replace(p, priority=index) for index, p in enumerate(participants)]


def enabled_participants(participants: Iterable[Participant]) -> List[Participant]:
    """Enabled participants in turn order."""
    return [p for p in sort_by_priority(participants) if p.is_enabled]


def _find(participants: Sequence[Participant], participant_id: str) -> Participant:
    for participant in participants:
        if participant.id == participant_id:
            return participant
    raise UnknownParticipantError(f"Participant not found: {participant_id}")


def add_participant(
    participants: Sequence[Participant],
    model_id: str,
    role: Optional[str] = None,
    participant_id: Optional[str] = None,
) -> List[Participant]:
    """Append a participant for model_id at the end of the display order.

    Raises:
        DuplicateParticipantError: If the model is already on the thread
    """
    if any(p.model_id == model_id for p in participants):
        raise DuplicateParticipantError(f"Model already participates in this thread: {model_id}")

    new_participant = Participant(
        id=participant_id or str(uuid.uuid4()),
        model_id=model_id,
        priority=len(participants),
        role=role,
    )
    return reindex(sort_by_priority(participants) + [new_participant])


def remove_participant(participants: Sequence[Participant], participant_id: str) -> List[Participant]:
    _find(participants, participant_id)
    return reindex([p for p in sort_by_priority(participants) if p.id != participant_id])


def reorder_participants(participants: Sequence[Participant], ordered_ids: Sequence[str]) -> List[Participant]:
    """Reorder participants to match ordered_ids.

    Raises:
        UnknownParticipantError: If ordered_ids is not a permutation of the roster
    """
    if sorted(ordered_ids) != sorted(p.id for p in participants):
        raise UnknownParticipantError(
            f"Reorder ids {list(ordered_ids)} do not match roster {[p.id for p in participants]}"
        )
    return reindex([_find(participants, pid) for pid in ordered_ids])


def set_enabled(participants: Sequence[Participant], participant_id: str, enabled: bool) -> List[Participant]:
    _find(participants, participant_id)
    return reindex([
        replace(p, is_enabled=enabled) if p.id == participant_id else p
        for p in sort_by_priority(participants)
    ])
