# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Builders for threads, participants and messages used across tests."""

from datetime import datetime, timezone

from roundtable_rounds import FinishReason, Message, MessagePart, MessageRole, Participant

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_participants(count: int = 3) -> list[Participant]:
    return [Participant(id=f"p{i}", model_id=f"model-{i}", priority=i) for i in range(count)]


def user_message(thread_id: str, round_number: int, text: str = "What should we build?") -> Message:
    return Message(
        id=f"{thread_id}_r{round_number}_user",
        role=MessageRole.USER,
        round_number=round_number,
        parts=[MessagePart(text=text)],
    )


def participant_message(
    thread_id: str,
    round_number: int,
    index: int,
    text: str = "An answer",
    finish_reason: FinishReason = FinishReason.STOP,
) -> Message:
    return Message(
        id=f"{thread_id}_r{round_number}_p{index}",
        role=MessageRole.ASSISTANT,
        round_number=round_number,
        parts=[MessagePart(text=text)],
        participant_index=index,
        participant_id=f"p{index}",
        model_id=f"model-{index}",
        finish_reason=finish_reason,
    )


def moderator_message(thread_id: str, round_number: int, summary: str = "A synthesis") -> Message:
    return Message(
        id=f"{thread_id}_r{round_number}_moderator",
        role=MessageRole.ASSISTANT,
        round_number=round_number,
        parts=[MessagePart(text=summary)],
        is_moderator=True,
        finish_reason=FinishReason.STOP,
    )


def completed_round(thread_id: str, round_number: int, participant_count: int) -> list[Message]:
    """User, participant and moderator messages of a finished round."""
    return (
        [user_message(thread_id, round_number)]
        + [participant_message(thread_id, round_number, i) for i in range(participant_count)]
        + [moderator_message(thread_id, round_number)]
    )
