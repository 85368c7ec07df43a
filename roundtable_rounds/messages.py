# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Message log of a thread with upsert, de-duplication and round ordering."""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional

from .models import Message, MessageRole, utcnow

logger = logging.getLogger(__name__)

_DETERMINISTIC_ID = re.compile(r"^.+_r\d+_p\d+$")


def participant_message_id(thread_id: str, round_number: int, participant_index: int) -> str:
    return f"{thread_id}_r{round_number}_p{participant_index}"


def moderator_message_id(thread_id: str, round_number: int) -> str:
    return f"{thread_id}_r{round_number}_moderator"


def optimistic_user_message_id(round_number: int, now: Optional[datetime] = None) -> str:
    timestamp_ms = int((now or utcnow()).timestamp() * 1000)
    return f"optimistic-user-{timestamp_ms}-r{round_number}"


def is_deterministic_id(message_id: str) -> bool:
    return _DETERMINISTIC_ID.match(message_id) is not None


def _sort_key(message: Message):
    if message.role == MessageRole.USER:
        slot = (0, 0)
    elif message.is_moderator:
        slot = (2, 0)
    else:
        slot = (1, message.participant_index)
    return (message.round_number, slot, message.created_at)


class MessageLog:
    """Messages of one thread keyed by id.

    Two participant messages for the same (round, participant index) are the
    same turn; only one is kept, preferring the deterministic id.
    """

    def __init__(self, messages: Optional[List[Message]] = None):
        self._messages: Dict[str, Message] = {}
        for message in messages or []:
            self.upsert(message)

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._messages

    def get(self, message_id: str) -> Optional[Message]:
        return self._messages.get(message_id)

    def _turn_duplicate(self, message: Message) -> Optional[Message]:
        if not message.is_participant_message:
            return None
        for existing in self._messages.values():
            if (
                existing.id != message.id
                and existing.is_participant_message
                and existing.round_number == message.round_number
                and existing.participant_index == message.participant_index
            ):
                return existing
        return None

    def upsert(self, message: Message) -> Message:
        """Insert or replace a message.

        Returns:
            The message that is stored for this turn after the upsert
        """
        duplicate = self._turn_duplicate(message)
        if duplicate is not None:
            if is_deterministic_id(duplicate.id) and not is_deterministic_id(message.id):
                logger.debug(f"Dropping duplicate turn message {message.id} in favor of {duplicate.id}")
                return duplicate
            del self._messages[duplicate.id]
        self._messages[message.id] = message
        return message

    def replace(self, old_id: str, message: Message) -> Message:
        self._messages.pop(old_id, None)
        return self.upsert(message)

    def remove(self, message_id: str) -> None:
        self._messages.pop(message_id, None)

    def clear(self) -> None:
        self._messages.clear()

    def ordered(self) -> List[Message]:
        """Messages ordered by round, then user, participants by index, moderator."""
        return sorted(self._messages.values(), key=_sort_key)

    def for_round(self, round_number: int) -> List[Message]:
        return [m for m in self.ordered() if m.round_number == round_number]

    def participant_messages(self, round_number: int) -> List[Message]:
        return [m for m in self.for_round(round_number) if m.is_participant_message]

    def moderator_message(self, round_number: int) -> Optional[Message]:
        for message in self.for_round(round_number):
            if message.is_moderator:
                return message
        return None

    def last_round_number(self) -> Optional[int]:
        if not self._messages:
            return None
        return max(m.round_number for m in self._messages.values())

    def next_round_number(self) -> int:
        last = self.last_round_number()
        return 0 if last is None else last + 1

    def remove_round_responses(self, round_number: int) -> List[str]:
        """Drop the participant and moderator messages of one round.

        Returns:
            Ids of the removed messages
        """
        removed = [
            mid for mid, m in self._messages.items()
            if m.round_number == round_number and m.role == MessageRole.ASSISTANT
        ]
        for mid in removed:
            del self._messages[mid]
        return removed
