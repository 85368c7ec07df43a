# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Hypothesis property-based tests for round engine invariants.

Usage:
    pytest tests/test_properties.py -v
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from roundtable_rounds import Participant, PhaseStatus
from roundtable_rounds.analysis import LeaderboardEntry, rank_leaderboard
from roundtable_rounds.guards import GuardRegistry, RoundGuard
from roundtable_rounds.participants import enabled_participants, reindex, sort_by_priority
from roundtable_rounds.partial_object import merge_partial
from roundtable_rounds.pre_search import PreSearchCoordinator

statuses = st.sampled_from(list(PhaseStatus))
json_scalars = st.one_of(st.integers(), st.text(max_size=5), st.booleans())
partial_objects = st.recursive(
    st.dictionaries(st.text(max_size=3), json_scalars, max_size=4),
    lambda children: st.dictionaries(st.text(max_size=3), st.one_of(json_scalars, children), max_size=4),
    max_leaves=10,
)


class TestStatusProperties:
    """Status of a pre-search only moves forward."""

    @given(st.lists(statuses, max_size=12))
    @settings(max_examples=200, deadline=None)
    def test_status_rank_never_decreases(self, updates):
        """Any sequence of updates leaves a non-decreasing status rank."""
        coordinator = PreSearchCoordinator(RoundGuard("pre_search_triggered"))
        record = coordinator.create("t1", 0, "query")
        ranks = [record.status.rank]

        for status in updates:
            coordinator.update_status(0, status)
            ranks.append(record.status.rank)

        assert ranks == sorted(ranks)

    @given(st.lists(statuses, max_size=12))
    @settings(max_examples=200, deadline=None)
    def test_terminal_status_is_final(self, updates):
        """The first terminal status a record reaches is the one it keeps."""
        coordinator = PreSearchCoordinator(RoundGuard("pre_search_triggered"))
        record = coordinator.create("t1", 0, "query")
        first_terminal = None

        for status in updates:
            coordinator.update_status(0, status)
            if first_terminal is None and record.status.is_terminal:
                first_terminal = record.status

        if first_terminal is not None:
            assert record.status == first_terminal
        assert coordinator.is_blocking(0) == (first_terminal is None)


class TestRosterProperties:
    """Participant priorities stay dense."""

    @given(st.lists(st.tuples(st.integers(min_value=0, max_value=50), st.booleans()), min_size=1, max_size=10))
    @settings(max_examples=200, deadline=None)
    def test_reindex_is_dense_and_stable(self, rows):
        """Reindexing yields priorities 0..N-1 in the original priority order."""
        roster = [
            Participant(id=f"p{i}", model_id=f"model-{i}", priority=priority, is_enabled=enabled)
            for i, (priority, enabled) in enumerate(rows)
        ]

        result = reindex(sort_by_priority(roster))

        assert [p.priority for p in result] == list(range(len(roster)))
        assert [p.id for p in result] == [p.id for p in sort_by_priority(roster)]
        assert [p.id for p in enabled_participants(result)] == [p.id for p in result if p.is_enabled]


class TestLeaderboardProperties:
    """Leaderboard ordering."""

    @given(st.lists(st.integers(min_value=0, max_value=100), min_size=1, max_size=8))
    @settings(max_examples=200, deadline=None)
    def test_ranks_follow_scores(self, scores):
        """Ranks run 1..N with descending scores; ties keep participant index order."""
        entries = [LeaderboardEntry(rank=0, participant_index=i, score=s) for i, s in enumerate(scores)]

        ranked = rank_leaderboard(list(reversed(entries)))

        assert [e.rank for e in ranked] == list(range(1, len(scores) + 1))
        keys = [(-e.score, e.participant_index) for e in ranked]
        assert keys == sorted(keys)


class TestPartialMergeProperties:
    """Merging partial objects."""

    @given(partial_objects, partial_objects)
    @settings(max_examples=200, deadline=None)
    def test_merge_keeps_every_key(self, current, delta):
        """A merge never drops a key and later top-level scalars win."""
        merged = merge_partial(current, delta)

        assert set(merged) == set(current) | set(delta)
        for key, value in delta.items():
            if not isinstance(value, dict):
                assert merged[key] == value

    @given(partial_objects, partial_objects)
    @settings(max_examples=100, deadline=None)
    def test_merge_does_not_mutate_inputs(self, current, delta):
        """Neither the accumulated value nor the delta is modified."""
        before_current = repr(current)
        before_delta = repr(delta)

        merge_partial(current, delta)

        assert repr(current) == before_current
        assert repr(delta) == before_delta

    @given(partial_objects)
    @settings(max_examples=100, deadline=None)
    def test_merge_is_idempotent(self, delta):
        """Applying the same partial twice equals applying it once."""
        once = merge_partial({}, delta)

        assert merge_partial(once, delta) == once


class TestGuardProperties:
    """Idempotency guards are one-shot per key."""

    @given(st.lists(st.integers(min_value=0, max_value=5), max_size=30))
    @settings(max_examples=200, deadline=None)
    def test_only_first_mark_wins(self, keys):
        """try_mark succeeds exactly once for each distinct key."""
        guard = RoundGuard("analysis_created")

        results = [guard.try_mark(key) for key in keys]

        assert sum(results) == len(set(keys))
        assert len(guard) == len(set(keys))

    @given(st.sets(st.integers(min_value=0, max_value=8)), st.integers(min_value=0, max_value=8))
    @settings(max_examples=200, deadline=None)
    def test_clear_round_leaves_other_rounds(self, rounds, cleared):
        """Clearing one round's guards keeps every other round marked."""
        registry = GuardRegistry()
        for round_number in rounds:
            registry.analysis_created.try_mark(round_number)
            registry.moderator_stream_triggered.try_mark(f"t1_r{round_number}_moderator", round_number)
            registry.resumption_attempted.try_mark_pair(round_number, 0)

        registry.clear_round(cleared)

        remaining = rounds - {cleared}
        assert registry.analysis_created.keys() == remaining
        assert registry.moderator_stream_triggered.rounds() == remaining
        assert {key[0] for key in registry.resumption_attempted.keys()} == remaining
