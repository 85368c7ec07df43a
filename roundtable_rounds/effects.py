# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Side effects requested by round state transitions.

Transition functions never perform I/O. They return the next phase and a
list of these effects; the orchestrator executes them against the backend.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from .models import RoundPhase


@dataclass(frozen=True)
class SendUserMessage:
    round_number: int
    content: str
    participant_ids: Tuple[str, ...]
    enable_web_search: bool
    optimistic_message_id: Optional[str] = None


@dataclass(frozen=True)
class CreatePreSearch:
    round_number: int
    query: str


@dataclass(frozen=True)
class StreamParticipant:
    round_number: int
    participant_index: int
    participant_id: str
    message_id: str


@dataclass(frozen=True)
class ResumeParticipantStream:
    round_number: int
    participant_index: int
    message_id: str


@dataclass(frozen=True)
class StreamModerator:
    round_number: int
    message_id: str
    participant_message_ids: Tuple[str, ...]


@dataclass(frozen=True)
class StreamAnalysis:
    round_number: int
    analysis_id: str
    participant_message_ids: Tuple[str, ...]


@dataclass(frozen=True)
class AbortRound:
    round_number: int


@dataclass(frozen=True)
class StartTitlePolling:
    thread_id: str


Effect = Union[
    SendUserMessage,
    CreatePreSearch,
    StreamParticipant,
    ResumeParticipantStream,
    StreamModerator,
    StreamAnalysis,
    AbortRound,
    StartTitlePolling,
]


@dataclass(frozen=True)
class PhaseFailure:
    """A phase-local failure recorded on its owning entity."""

    phase: str
    round_number: int
    message: str


@dataclass
class Transition:
    """Result of applying one event to the round state machine.

    Attributes:
        round_number: Round the event applied to, if any
        phase: Phase of that round after the event
        effects: Side effects the caller must perform, in order
        failures: Phase-local failures recorded by this event
        changed: Whether any state changed
        duplicates: Phases whose trigger was blocked by an idempotency guard
    """

    round_number: Optional[int]
    phase: RoundPhase
    effects: List[Effect] = field(default_factory=list)
    failures: List[PhaseFailure] = field(default_factory=list)
    changed: bool = True
    duplicates: List[str] = field(default_factory=list)
