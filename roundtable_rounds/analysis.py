# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Analysis trigger and analysis payload parsing."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .exceptions import AnalysisParseError, InvariantViolationError
from .guards import RoundGuard
from .models import Analysis, PhaseStatus, utcnow
from .partial_object import PartialObjectReducer
from .schema_validator import validate_json

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_MAX_LENGTH = 300


@dataclass
class LeaderboardEntry:
    """One participant's place in the round leaderboard."""

    rank: int
    participant_index: int
    score: float
    badges: List[str] = field(default_factory=list)
    model_id: Optional[str] = None


@dataclass
class ParticipantAnalysis:
    """Critique of one participant's answer."""

    participant_index: int
    scores: Dict[str, float]
    strengths: List[str]
    weaknesses: List[str]
    summary: str
    model_id: Optional[str] = None


@dataclass
class RoundSynthesis:
    """Round-level conclusions across all participants."""

    key_insights: List[str] = field(default_factory=list)
    consensus_points: List[str] = field(default_factory=list)
    divergent_approaches: List[str] = field(default_factory=list)
    recommended_actions: List[str] = field(default_factory=list)


@dataclass
class AnalysisPayload:
    """Parsed content of a complete analysis.

    Attributes:
        leaderboard: Entries ordered by descending score
        participant_analyses: One critique per participant, by participant index
        round_summary: Round-level synthesis
    """

    leaderboard: List[LeaderboardEntry]
    participant_analyses: List[ParticipantAnalysis]
    round_summary: RoundSynthesis

    def to_dict(self) -> Dict[str, Any]:
        return {
            "leaderboard": [
                {
                    "rank": e.rank,
                    "participantIndex": e.participant_index,
                    "modelId": e.model_id,
                    "score": e.score,
                    "badges": list(e.badges),
                }
                for e in self.leaderboard
            ],
            "participantAnalyses": [
                {
                    "participantIndex": a.participant_index,
                    "modelId": a.model_id,
                    "scores": dict(a.scores),
                    "strengths": list(a.strengths),
                    "weaknesses": list(a.weaknesses),
                    "summary": a.summary,
                }
                for a in self.participant_analyses
            ],
            "roundSummary": {
                "keyInsights": list(self.round_summary.key_insights),
                "consensusPoints": list(self.round_summary.consensus_points),
                "divergentApproaches": list(self.round_summary.divergent_approaches),
                "recommendedActions": list(self.round_summary.recommended_actions),
            },
        }


def rank_leaderboard(entries: Sequence[LeaderboardEntry]) -> List[LeaderboardEntry]:
    """Order entries by descending score and renumber ranks from 1.

    Equal scores are ordered by participant index, lowest first.
    """
    ordered = sorted(entries, key=lambda e: (-e.score, e.participant_index))
    return [
        LeaderboardEntry(
            rank=position + 1,
            participant_index=e.participant_index,
            score=e.score,
            badges=list(e.badges),
            model_id=e.model_id,
        )
        for position, e in enumerate(ordered)
    ]


def truncate_summary(text: str, max_length: int = DEFAULT_SUMMARY_MAX_LENGTH) -> str:
    text = text.strip()
    if len(text) <= max_length:
        return text
    return text[: max_length - 1].rstrip() + "…"


def parse_analysis_payload(document: Any, summary_max_length: int = DEFAULT_SUMMARY_MAX_LENGTH) -> AnalysisPayload:
    """Validate and convert a streamed analysis result.

    Args:
        document: Decoded object, or its JSON text
        summary_max_length: Bound on each participant summary

    Returns:
        AnalysisPayload with a ranked leaderboard

    Raises:
        AnalysisParseError: If the document is not JSON or does not match the schema
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise AnalysisParseError(f"Analysis payload is not valid JSON: {e}") from e

    is_valid, errors = validate_json(document, "analysis")
    if not is_valid:
        raise AnalysisParseError(f"Invalid analysis payload: {'; '.join(errors)}", errors)

    leaderboard = rank_leaderboard([
        LeaderboardEntry(
            rank=item.get("rank", 0),
            participant_index=item["participantIndex"],
            score=item["score"],
            badges=list(item.get("badges", [])),
            model_id=item.get("modelId"),
        )
        for item in document["leaderboard"]
    ])
    analyses = sorted(
        (
            ParticipantAnalysis(
                participant_index=item["participantIndex"],
                scores=dict(item["scores"]),
                strengths=list(item["strengths"]),
                weaknesses=list(item["weaknesses"]),
                summary=truncate_summary(item["summary"], summary_max_length),
                model_id=item.get("modelId"),
            )
            for item in document["participantAnalyses"]
        ),
        key=lambda a: a.participant_index,
    )
    summary = document["roundSummary"]
    return AnalysisPayload(
        leaderboard=leaderboard,
        participant_analyses=analyses,
        round_summary=RoundSynthesis(
            key_insights=list(summary["keyInsights"]),
            consensus_points=list(summary["consensusPoints"]),
            divergent_approaches=list(summary["divergentApproaches"]),
            recommended_actions=list(summary["recommendedActions"]),
        ),
    )


def has_analysis_data(partial: Optional[Dict[str, Any]]) -> bool:
    """Whether a partial analysis has any content worth showing."""
    if not partial:
        return False
    if partial.get("leaderboard") or partial.get("participantAnalyses"):
        return True
    summary = partial.get("roundSummary")
    if isinstance(summary, dict):
        return any(isinstance(v, list) and v for v in summary.values())
    return False


class AnalysisTrigger:
    """Creates at most one analysis per round and owns its status lifecycle.

    The per-round guard is the only record of "this round attempted
    analysis". Removing a record (retry or regeneration) clears the guard of
    that round alone.
    """

    def __init__(self, guard: RoundGuard, summary_max_length: int = DEFAULT_SUMMARY_MAX_LENGTH):
        self._guard = guard
        self.summary_max_length = summary_max_length
        self._records: Dict[int, Analysis] = {}
        self._reducers: Dict[int, PartialObjectReducer] = {}

    @staticmethod
    def analysis_id(thread_id: str, round_number: int) -> str:
        return f"{thread_id}_r{round_number}_analysis"

    def get(self, round_number: int) -> Optional[Analysis]:
        return self._records.get(round_number)

    def records(self) -> List[Analysis]:
        return [self._records[r] for r in sorted(self._records)]

    def add(self, record: Analysis) -> None:
        """Store an analysis loaded from the backend and mark its round."""
        self._guard.try_mark(record.round_number)
        self._records[record.round_number] = record

    def try_create(
        self,
        thread_id: str,
        round_number: int,
        participant_message_ids: Sequence[str],
        expected_count: int,
        stopped: bool,
        now: Optional[datetime] = None,
    ) -> Optional[Analysis]:
        """Create the pending analysis of a round if it was not attempted yet.

        Args:
            thread_id: Owning thread
            round_number: Round to analyze
            participant_message_ids: Completed participant messages of the round
            expected_count: Enabled participants of the round
            stopped: Whether the user stopped this round

        Returns:
            The new pending record, or None if suppressed or already attempted

        Raises:
            InvariantViolationError: If message ids do not cover every enabled participant
        """
        if stopped:
            logger.debug(f"Analysis for round {round_number} suppressed: round stopped")
            return None
        if len(participant_message_ids) != expected_count:
            raise InvariantViolationError(
                f"Analysis of round {round_number} needs {expected_count} participant messages, "
                f"got {len(participant_message_ids)}"
            )
        if not self._guard.try_mark(round_number):
            logger.debug(f"Analysis for round {round_number} already created")
            return None

        record = Analysis(
            id=self.analysis_id(thread_id, round_number),
            thread_id=thread_id,
            round_number=round_number,
            participant_message_ids=list(participant_message_ids),
            created_at=now or utcnow(),
        )
        self._records[round_number] = record
        self._reducers[round_number] = PartialObjectReducer()
        return record

    def _transition(self, round_number: int, status: PhaseStatus) -> Optional[Analysis]:
        record = self._records.get(round_number)
        if record is None or not record.status.can_transition_to(status):
            return None
        record.status = status
        return record

    def mark_streaming(self, round_number: int) -> bool:
        return self._transition(round_number, PhaseStatus.STREAMING) is not None

    def apply_partial(self, round_number: int, delta: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        self.mark_streaming(round_number)
        reducer = self._reducers.setdefault(round_number, PartialObjectReducer())
        return reducer.apply(delta)

    def complete(self, round_number: int, document: Any = None, now: Optional[datetime] = None) -> Optional[Analysis]:
        """Parse the final payload and finish the analysis.

        A payload that fails to parse finishes the analysis as failed with
        the parse error retained.

        Returns:
            The terminal record, or None if the round has no open analysis
        """
        record = self._records.get(round_number)
        if record is None or record.status.is_terminal:
            return None
        reducer = self._reducers.pop(round_number, None)
        if document is None:
            document = reducer.value if reducer else {}
        try:
            payload = parse_analysis_payload(document, self.summary_max_length)
        except AnalysisParseError as e:
            logger.warning(f"Analysis for round {round_number} failed to parse: {e}")
            return self.fail(round_number, str(e), now=now)

        record.status = PhaseStatus.COMPLETE
        record.analysis_data = payload
        record.error_message = None
        record.completed_at = now or utcnow()
        return record

    def fail(self, round_number: int, error_message: str, now: Optional[datetime] = None) -> Optional[Analysis]:
        record = self._transition(round_number, PhaseStatus.FAILED)
        if record is None:
            return None
        self._reducers.pop(round_number, None)
        record.error_message = error_message
        record.completed_at = now or utcnow()
        return record

    def remove(self, round_number: int) -> Optional[Analysis]:
        """Drop a round's analysis and clear that round's guard."""
        self._reducers.pop(round_number, None)
        self._guard.clear(round_number)
        return self._records.pop(round_number, None)

    def retry(self, round_number: int) -> bool:
        """Remove a failed analysis so the round may attempt analysis again.

        Returns:
            True if a failed record was removed
        """
        record = self._records.get(round_number)
        if record is None or record.status != PhaseStatus.FAILED:
            return False
        self.remove(round_number)
        return True
