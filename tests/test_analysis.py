# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Tests for the analysis trigger and payload parsing."""

import json

import pytest

from roundtable_rounds import (
    AnalysisParseError,
    AnalysisTrigger,
    InvariantViolationError,
    LeaderboardEntry,
    PhaseStatus,
    parse_analysis_payload,
    rank_leaderboard,
)
from roundtable_rounds.analysis import has_analysis_data, truncate_summary
from roundtable_rounds.guards import RoundGuard
from roundtable_rounds.mock_backend import build_analysis_payload

from tests.helpers import T0

IDS = ["t1_r0_p0", "t1_r0_p1"]


def _trigger(summary_max_length: int = 300) -> AnalysisTrigger:
    return AnalysisTrigger(RoundGuard("analysis_created"), summary_max_length=summary_max_length)


class TestLeaderboard:
    """Tests for leaderboard ranking."""

    def test_sorted_by_score_descending(self):
        ranked = rank_leaderboard([
            LeaderboardEntry(rank=1, participant_index=0, score=60),
            LeaderboardEntry(rank=2, participant_index=1, score=95),
            LeaderboardEntry(rank=3, participant_index=2, score=80),
        ])

        assert [(e.rank, e.participant_index) for e in ranked] == [(1, 1), (2, 2), (3, 0)]

    def test_ties_broken_by_participant_index(self):
        ranked = rank_leaderboard([
            LeaderboardEntry(rank=1, participant_index=2, score=70),
            LeaderboardEntry(rank=1, participant_index=0, score=70),
        ])

        assert [e.participant_index for e in ranked] == [0, 2]
        assert [e.rank for e in ranked] == [1, 2]


class TestParseAnalysisPayload:
    """Tests for parse_analysis_payload."""

    def test_parse_valid_document(self):
        payload = parse_analysis_payload(build_analysis_payload(2))

        assert [e.participant_index for e in payload.leaderboard] == [0, 1]
        assert payload.participant_analyses[1].summary == "Participant 1 gave a focused answer."
        assert payload.round_summary.recommended_actions == ["Run a two-week pilot"]

    def test_parse_json_text(self):
        payload = parse_analysis_payload(json.dumps(build_analysis_payload(1)))

        assert len(payload.leaderboard) == 1

    def test_invalid_json_text(self):
        with pytest.raises(AnalysisParseError, match="not valid JSON"):
            parse_analysis_payload("{not json")

    def test_missing_round_summary(self):
        document = build_analysis_payload(1)
        del document["roundSummary"]

        with pytest.raises(AnalysisParseError) as exc_info:
            parse_analysis_payload(document)
        assert any("roundSummary" in e for e in exc_info.value.errors)

    def test_score_out_of_range(self):
        document = build_analysis_payload(1)
        document["leaderboard"][0]["score"] = 150

        with pytest.raises(AnalysisParseError):
            parse_analysis_payload(document)

    def test_long_summary_truncated(self):
        document = build_analysis_payload(1)
        document["participantAnalyses"][0]["summary"] = "word " * 100

        payload = parse_analysis_payload(document, summary_max_length=40)

        summary = payload.participant_analyses[0].summary
        assert len(summary) <= 40
        assert summary.endswith("…")

    def test_to_dict_uses_wire_names(self):
        data = parse_analysis_payload(build_analysis_payload(1)).to_dict()

        assert set(data) == {"leaderboard", "participantAnalyses", "roundSummary"}
        assert data["leaderboard"][0]["participantIndex"] == 0

    def test_truncate_short_text_unchanged(self):
        assert truncate_summary("  short  ", 10) == "short"


class TestHasAnalysisData:
    """Tests for has_analysis_data."""

    def test_empty(self):
        assert not has_analysis_data(None)
        assert not has_analysis_data({})
        assert not has_analysis_data({"leaderboard": [], "roundSummary": {"keyInsights": []}})

    def test_with_data(self):
        assert has_analysis_data({"leaderboard": [{"participantIndex": 0}]})
        assert has_analysis_data({"roundSummary": {"keyInsights": ["x"]}})


class TestAnalysisTrigger:
    """Tests for AnalysisTrigger."""

    def test_create_once(self):
        trigger = _trigger()

        record = trigger.try_create("t1", 0, IDS, expected_count=2, stopped=False, now=T0)

        assert record.id == "t1_r0_analysis"
        assert record.status == PhaseStatus.PENDING
        assert record.participant_message_ids == IDS
        assert trigger.try_create("t1", 0, IDS, expected_count=2, stopped=False) is None

    def test_suppressed_when_stopped(self):
        trigger = _trigger()

        assert trigger.try_create("t1", 0, IDS, expected_count=2, stopped=True) is None
        assert trigger.try_create("t1", 0, IDS, expected_count=2, stopped=False) is not None

    def test_id_count_must_match_enabled_participants(self):
        with pytest.raises(InvariantViolationError):
            _trigger().try_create("t1", 0, IDS[:1], expected_count=2, stopped=False)

    def test_lifecycle_to_complete(self):
        trigger = _trigger()
        trigger.try_create("t1", 0, IDS, expected_count=2, stopped=False)
        payload = build_analysis_payload(2)

        trigger.apply_partial(0, {"leaderboard": payload["leaderboard"]})
        assert trigger.get(0).status == PhaseStatus.STREAMING
        trigger.apply_partial(0, payload)
        record = trigger.complete(0, now=T0)

        assert record.status == PhaseStatus.COMPLETE
        assert record.completed_at == T0
        assert len(record.analysis_data.leaderboard) == 2

    def test_parse_failure_fails_analysis(self):
        trigger = _trigger()
        trigger.try_create("t1", 0, IDS, expected_count=2, stopped=False)
        trigger.apply_partial(0, {"leaderboard": []})

        record = trigger.complete(0)

        assert record.status == PhaseStatus.FAILED
        assert "Invalid analysis payload" in record.error_message

    def test_terminal_status_is_final(self):
        trigger = _trigger()
        trigger.try_create("t1", 0, IDS, expected_count=2, stopped=False)
        trigger.fail(0, "model error")

        assert trigger.complete(0, build_analysis_payload(2)) is None
        assert not trigger.mark_streaming(0)
        assert trigger.fail(0, "again") is None
        assert trigger.get(0).error_message == "model error"

    def test_retry_only_failed(self):
        trigger = _trigger()
        trigger.try_create("t1", 0, IDS, expected_count=2, stopped=False)

        assert not trigger.retry(0)

        trigger.fail(0, "model error")
        assert trigger.retry(0)
        assert trigger.get(0) is None
        assert trigger.try_create("t1", 0, IDS, expected_count=2, stopped=False) is not None

    def test_remove_clears_only_that_round(self):
        trigger = _trigger()
        trigger.try_create("t1", 0, IDS, expected_count=2, stopped=False)
        trigger.try_create("t1", 1, ["t1_r1_p0", "t1_r1_p1"], expected_count=2, stopped=False)

        trigger.remove(1)

        assert trigger.try_create("t1", 0, IDS, expected_count=2, stopped=False) is None
        assert trigger.try_create("t1", 1, ["t1_r1_p0", "t1_r1_p1"], expected_count=2, stopped=False) is not None
