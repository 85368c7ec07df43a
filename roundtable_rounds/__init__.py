# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Roundtable round orchestration engine.

Sequences the phases of a multi-participant round (pre-search, participant
streaming, moderator synthesis, analysis) with per-round idempotency
guards, stream resumption and user cancellation.

Example:
    >>> from roundtable_rounds import RoundOrchestrator, MockRoundBackend, Thread, Participant
    >>> backend = MockRoundBackend()
    >>> orchestrator = RoundOrchestrator(backend)
    >>> orchestrator.load(Thread(id="t1", slug="t1"), [Participant(id="p1", model_id="m1", priority=0)])
    >>> await orchestrator.submit("How should we roll this out?")
"""

__version__ = "0.1.0"

from .analysis import AnalysisPayload, AnalysisTrigger, LeaderboardEntry, parse_analysis_payload, rank_leaderboard
from .exceptions import (
    AnalysisParseError,
    DuplicateParticipantError,
    InvariantViolationError,
    RoundError,
    RoundInProgressError,
    TransportError,
    UnknownParticipantError,
)
from .guards import GuardRegistry
from .mock_backend import MockRoundBackend
from .moderator import ModeratorPayload, ModeratorTrigger, is_displayable
from .models import (
    Analysis,
    FinishReason,
    Message,
    MessagePart,
    MessageRole,
    Participant,
    PhaseStatus,
    PreSearch,
    RoundPhase,
    SessionPreferences,
    StreamResumptionState,
    StreamStatus,
    Thread,
)
from .orchestrator import NavigationSignal, RoundOrchestrator
from .pre_search import PreSearchCoordinator
from .resumption import StreamResumptionManager
from .sequencer import ParticipantSequencer, is_message_complete
from .state_machine import RoundSnapshot, RoundStateMachine
from .transports import RoundBackend, StreamFinish, TextDelta, TitleStatus

__all__ = [
    "__version__",
    "Analysis",
    "AnalysisParseError",
    "AnalysisPayload",
    "AnalysisTrigger",
    "DuplicateParticipantError",
    "FinishReason",
    "GuardRegistry",
    "InvariantViolationError",
    "LeaderboardEntry",
    "Message",
    "MessagePart",
    "MessageRole",
    "MockRoundBackend",
    "ModeratorPayload",
    "ModeratorTrigger",
    "NavigationSignal",
    "Participant",
    "ParticipantSequencer",
    "PhaseStatus",
    "PreSearch",
    "PreSearchCoordinator",
    "RoundBackend",
    "RoundError",
    "RoundInProgressError",
    "RoundOrchestrator",
    "RoundPhase",
    "RoundSnapshot",
    "RoundStateMachine",
    "SessionPreferences",
    "StreamFinish",
    "StreamResumptionManager",
    "StreamResumptionState",
    "StreamStatus",
    "TextDelta",
    "Thread",
    "TitleStatus",
    "TransportError",
    "UnknownParticipantError",
    "is_displayable",
    "is_message_complete",
    "parse_analysis_payload",
    "rank_leaderboard",
]
