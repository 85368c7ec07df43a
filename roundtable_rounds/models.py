# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Data models for threads, participants, messages and round phases."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(Enum):
    """Author of a message."""
    USER = "user"
    ASSISTANT = "assistant"


class FinishReason(Enum):
    """Terminal reason reported by a participant stream."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool-calls"
    CONTENT_FILTER = "content-filter"
    FAILED = "failed"
    OTHER = "other"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> Optional["FinishReason"]:
        """Return the matching finish reason, or None if it is not recognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class PhaseStatus(Enum):
    """Status of a pre-search or analysis record.

    Status only moves forward: pending, then streaming, then complete or
    failed. Terminal statuses never change.
    """
    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PhaseStatus.COMPLETE, PhaseStatus.FAILED)

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def can_transition_to(self, new_status: "PhaseStatus") -> bool:
        return new_status.rank > self.rank


_STATUS_RANK = {
    PhaseStatus.PENDING: 0,
    PhaseStatus.STREAMING: 1,
    PhaseStatus.COMPLETE: 2,
    PhaseStatus.FAILED: 2,
}


class StreamStatus(Enum):
    """Status of a persisted in-flight participant stream."""
    ACTIVE = "active"
    COMPLETED = "completed"


class RoundPhase(Enum):
    """Lifecycle phase of a single round."""
    IDLE = "idle"
    AWAITING_PRE_SEARCH = "awaiting_pre_search"
    STREAMING_PARTICIPANTS = "streaming_participants"
    AWAITING_MODERATOR = "awaiting_moderator"
    STREAMING_MODERATOR = "streaming_moderator"
    AWAITING_ANALYSIS = "awaiting_analysis"
    STREAMING_ANALYSIS = "streaming_analysis"
    COMPLETE = "complete"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (RoundPhase.COMPLETE, RoundPhase.STOPPED)

    @property
    def blocks_submission(self) -> bool:
        """Phases during which a new round cannot be submitted."""
        return self in (
            RoundPhase.AWAITING_PRE_SEARCH,
            RoundPhase.STREAMING_PARTICIPANTS,
            RoundPhase.AWAITING_MODERATOR,
            RoundPhase.STREAMING_MODERATOR,
        )


PART_STATE_STREAMING = "streaming"
PART_STATE_DONE = "done"


@dataclass
class Thread:
    """A conversation thread.

    Attributes:
        id: Thread identifier
        slug: URL slug; may change when an AI-generated title arrives
        mode: Conversation mode (e.g. "analyzing", "debating")
        enable_web_search: Whether new rounds start with a pre-search
        is_ai_generated_title: Whether title/slug came from the title generator
        title: Display title
    """

    id: str
    slug: str
    mode: str = "analyzing"
    enable_web_search: bool = False
    is_ai_generated_title: bool = False
    title: str = ""


@dataclass
class Participant:
    """An AI participant configured on a thread."""

    id: str
    model_id: str
    priority: int
    is_enabled: bool = True
    role: Optional[str] = None

    def __post_init__(self):
        if self.priority < 0:
            raise ValueError(f"Participant priority must be non-negative, got {self.priority}")


@dataclass
class MessagePart:
    """Text part of a message; ``state`` is "streaming" while chunks arrive."""

    text: str = ""
    type: str = "text"
    state: Optional[str] = None


@dataclass
class Message:
    """A user, participant or moderator message.

    Attributes:
        id: Message identifier
        role: Author role
        round_number: Zero-based round this message belongs to
        parts: Content parts
        participant_index: Turn index within the round (participant messages only)
        participant_id: Participant that produced the message
        model_id: Model that produced the message
        is_moderator: Whether this is the moderator synthesis message
        finish_reason: Terminal reason once the stream finished
        has_error: Whether the message finished with an error or empty response
        is_optimistic: Whether this is a local placeholder not yet confirmed by the backend
        metadata: Additional fields (usage, moderator payload)
        created_at: Creation timestamp
    """

    id: str
    role: MessageRole
    round_number: int
    parts: List[MessagePart] = field(default_factory=list)
    participant_index: Optional[int] = None
    participant_id: Optional[str] = None
    model_id: Optional[str] = None
    is_moderator: bool = False
    finish_reason: Optional[FinishReason] = None
    has_error: bool = False
    is_optimistic: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if self.round_number < 0:
            raise ValueError(f"round_number must be non-negative, got {self.round_number}")
        if self.is_participant_message and (self.participant_index is None or self.participant_index < 0):
            raise ValueError("Participant messages require a non-negative participant_index")

    @property
    def is_participant_message(self) -> bool:
        return self.role == MessageRole.ASSISTANT and not self.is_moderator

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if part.type == "text")

    @property
    def is_streaming(self) -> bool:
        return any(part.state == PART_STATE_STREAMING for part in self.parts)


@dataclass
class PreSearch:
    """Web-search record run before the participants of a round."""

    id: str
    thread_id: str
    round_number: int
    status: PhaseStatus = PhaseStatus.PENDING
    user_query: str = ""
    search_data: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


@dataclass
class Analysis:
    """Comparative analysis record of one round.

    Attributes:
        id: Analysis identifier
        thread_id: Owning thread
        round_number: Round being analyzed
        status: Lifecycle status
        participant_message_ids: One id per enabled participant of the round
        analysis_data: Parsed payload once complete
        error_message: Reason for a failed status
        created_at: Creation timestamp
        completed_at: Time a terminal status was reached
    """

    id: str
    thread_id: str
    round_number: int
    participant_message_ids: List[str]
    status: PhaseStatus = PhaseStatus.PENDING
    analysis_data: Optional[Any] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


@dataclass
class StreamResumptionState:
    """A participant stream that was in flight when the session was lost."""

    thread_id: str
    round_number: int
    participant_index: int
    status: StreamStatus = StreamStatus.ACTIVE
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class SessionPreferences:
    """User preferences that survive thread-to-thread navigation."""

    selected_model_ids: List[str] = field(default_factory=list)
    model_order: List[str] = field(default_factory=list)
    mode: str = "analyzing"
    enable_web_search: bool = False
