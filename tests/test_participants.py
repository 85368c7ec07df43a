# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Tests for participant roster operations."""

import pytest

from roundtable_rounds import DuplicateParticipantError, Participant, UnknownParticipantError
from roundtable_rounds.participants import (
    add_participant,
    enabled_participants,
    reindex,
    remove_participant,
    reorder_participants,
    set_enabled,
    sort_by_priority,
)

from tests.helpers import make_participants


def _priorities(participants):
    return [(p.id, p.priority) for p in participants]


class TestRoster:
    """Tests for roster changes and dense priorities."""

    def test_negative_priority_rejected(self):
        with pytest.raises(ValueError, match="priority"):
            Participant(id="p", model_id="m", priority=-1)

    def test_reindex_assigns_dense_priorities(self):
        roster = [
            Participant(id="a", model_id="m-a", priority=40),
            Participant(id="b", model_id="m-b", priority=7),
        ]

        assert _priorities(reindex(sort_by_priority(roster))) == [("b", 0), ("a", 1)]

    def test_add_appends_at_end(self):
        roster = add_participant(make_participants(2), "model-new", participant_id="new")

        assert _priorities(roster) == [("p0", 0), ("p1", 1), ("new", 2)]

    def test_add_duplicate_model_rejected(self):
        with pytest.raises(DuplicateParticipantError):
            add_participant(make_participants(2), "model-1")

    def test_add_generates_id(self):
        roster = add_participant([], "model-x")

        assert roster[0].id
        assert roster[0].priority == 0

    def test_remove_closes_gap(self):
        roster = remove_participant(make_participants(3), "p1")

        assert _priorities(roster) == [("p0", 0), ("p2", 1)]

    def test_remove_unknown(self):
        with pytest.raises(UnknownParticipantError):
            remove_participant(make_participants(2), "nope")

    def test_reorder(self):
        roster = reorder_participants(make_participants(3), ["p2", "p0", "p1"])

        assert _priorities(roster) == [("p2", 0), ("p0", 1), ("p1", 2)]

    def test_reorder_requires_permutation(self):
        with pytest.raises(UnknownParticipantError):
            reorder_participants(make_participants(3), ["p2", "p0"])

    def test_set_enabled_keeps_order(self):
        roster = set_enabled(make_participants(3), "p1", False)

        assert _priorities(roster) == [("p0", 0), ("p1", 1), ("p2", 2)]
        assert [p.id for p in enabled_participants(roster)] == ["p0", "p2"]

    def test_operations_do_not_mutate_input(self):
        original = make_participants(3)

        reorder_participants(original, ["p2", "p1", "p0"])

        assert _priorities(original) == [("p0", 0), ("p1", 1), ("p2", 2)]
