# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Participant turn sequencing and round completion detection."""

import logging
from typing import Any, Dict, List, Optional

from .messages import MessageLog, participant_message_id
from .models import (
    PART_STATE_DONE,
    PART_STATE_STREAMING,
    FinishReason,
    Message,
    MessagePart,
    MessageRole,
    Participant,
)

logger = logging.getLogger(__name__)


def is_empty_response(message: Message) -> bool:
    """A participant that finished with an unknown reason and no text."""
    return message.finish_reason == FinishReason.UNKNOWN and not message.text.strip()


def is_message_complete(message: Message) -> bool:
    """Whether a participant message has finished.

    A message is complete when no part is still streaming and it either has
    text or carries a recognized finish reason. Empty responses are complete.
    """
    if message.is_streaming:
        return False
    return bool(message.text.strip()) or message.finish_reason is not None


class ParticipantSequencer:
    """Tracks whose turn it is in the current round.

    The cursor only says who streams next. Round completion is decided by
    counting completed participant messages against the enabled roster
    snapshot, so the same check holds if participants stream concurrently.

    Attributes:
        round_number: Round being sequenced, or None when idle
        participants: Enabled participants of the round in turn order
        current_index: Participant index currently streaming, or None
    """

    def __init__(self, messages: MessageLog):
        self._messages = messages
        self.thread_id: Optional[str] = None
        self.round_number: Optional[int] = None
        self.participants: List[Participant] = []
        self.current_index: Optional[int] = None

    @property
    def expected_count(self) -> int:
        return len(self.participants)

    def start_round(
        self,
        thread_id: str,
        round_number: int,
        participants: List[Participant],
        start_index: int = 0,
    ) -> None:
        """Begin sequencing a round.

        Args:
            thread_id: Owning thread
            round_number: Round to sequence
            participants: Enabled participants in turn order
            start_index: First participant to stream (non-zero when resuming)
        """
        if not 0 <= start_index <= len(participants):
            raise ValueError(f"start_index {start_index} outside roster of {len(participants)}")
        self.thread_id = thread_id
        self.round_number = round_number
        self.participants = list(participants)
        self.current_index = start_index if start_index < len(participants) else None

    def reset(self) -> None:
        self.thread_id = None
        self.round_number = None
        self.participants = []
        self.current_index = None

    def participant_at(self, index: int) -> Participant:
        return self.participants[index]

    def message_id(self, index: int) -> str:
        return participant_message_id(self.thread_id, self.round_number, index)

    def begin_turn(self, index: int) -> Message:
        """Insert the streaming placeholder message of a participant turn."""
        participant = self.participant_at(index)
        self.current_index = index
        message = Message(
            id=self.message_id(index),
            role=MessageRole.ASSISTANT,
            round_number=self.round_number,
            parts=[MessagePart(text="", state=PART_STATE_STREAMING)],
            participant_index=index,
            participant_id=participant.id,
            model_id=participant.model_id,
        )
        return self._messages.upsert(message)

    def append_chunk(self, index: int, text: str) -> Optional[Message]:
        message = self._messages.get(self.message_id(index))
        if message is None:
            message = self.begin_turn(index)
        if not message.parts:
            message.parts.append(MessagePart(state=PART_STATE_STREAMING))
        message.parts[-1].text += text
        message.parts[-1].state = PART_STATE_STREAMING
        return message

    def finish_turn(
        self,
        index: int,
        finish_reason: Any,
        text: Optional[str] = None,
        usage: Optional[Dict[str, Any]] = None,
    ) -> Optional[int]:
        """Finalize a participant message and advance the cursor.

        Args:
            index: Participant index that finished
            finish_reason: Reported finish reason; unrecognized values count as unknown
            text: Full final text, if the transport reports it
            usage: Token usage reported with the terminal event

        Returns:
            Index of the next participant to stream, or None if this was the last turn
        """
        message = self._messages.get(self.message_id(index))
        if message is None:
            message = self.begin_turn(index)

        if text is not None:
            message.parts = [MessagePart(text=text)]
        for part in message.parts:
            part.state = PART_STATE_DONE
        message.finish_reason = FinishReason.parse(finish_reason) or FinishReason.UNKNOWN
        if usage:
            message.metadata["usage"] = dict(usage)
        message.has_error = message.finish_reason == FinishReason.FAILED or is_empty_response(message)
        if message.has_error:
            logger.info(
                f"Participant {index} of round {self.round_number} finished with "
                f"{message.finish_reason.value} and {len(message.text)} characters"
            )

        self.current_index = self.next_unanswered(index + 1)
        return self.current_index

    def next_unanswered(self, index: Optional[int]) -> Optional[int]:
        """First participant index from ``index`` on without a complete message."""
        if index is None or self.round_number is None:
            return None
        answered = {
            m.participant_index for m in self._messages.participant_messages(self.round_number)
            if is_message_complete(m)
        }
        while index < self.expected_count:
            if index not in answered:
                return index
            index += 1
        return None

    def completed_messages(self) -> List[Message]:
        if self.round_number is None:
            return []
        enabled_ids = {p.id for p in self.participants}
        return [
            m for m in self._messages.participant_messages(self.round_number)
            if is_message_complete(m)
            and m.participant_index < self.expected_count
            and (m.participant_id is None or m.participant_id in enabled_ids)
        ]

    def completed_count(self) -> int:
        return len(self.completed_messages())

    def is_round_complete(self) -> bool:
        """Whether every enabled participant of the round has a complete message."""
        return self.round_number is not None and self.expected_count > 0 and (
            self.completed_count() >= self.expected_count
        )

    def participant_message_ids(self) -> List[str]:
        return [m.id for m in self.completed_messages()]
