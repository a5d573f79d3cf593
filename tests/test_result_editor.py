"""Tests for services.result_editor (cascade invalidation)."""

from datetime import datetime

import pytest

from domain.enums import CascadePolicy, MatchStatus
from domain.errors import InvalidResultError, ResolutionError
from services.advancement import AdvancementEngine
from services.result_editor import ResultEditor, apply_result
from tests.conftest import FIXED_NOW, at, live_placements, make_snapshot

LATER = datetime(2024, 5, 2, 9, 30, 0)


def _record(bracket, position, winner_slot=1, scores=None):
    m = at(bracket, position)
    scores = scores or ((2, 1) if winner_slot == 1 else (1, 2))
    winner = m.participant1_id if winner_slot == 1 else m.participant2_id
    apply_result(m, participant1_score=scores[0], participant2_score=scores[1], winner_id=winner, completed_at=FIXED_NOW)
    AdvancementEngine().advance(bracket, m.match_id)


def _eight_through_semis():
    """8 seeds, round 1 and both semi finals played by the higher seed."""
    b = make_snapshot(8)
    for pos in ("R1M1", "R1M2", "R1M3", "R1M4", "R2M1", "R2M2"):
        _record(b, pos)
    assert at(b, "R3M1").slots == ("p1", "p3")
    return b


def _edit(bracket, position, winner, *, policy=CascadePolicy.DESCENDANTS, scores=None):
    editor = ResultEditor(policy=policy)
    m = at(bracket, position)
    scores = scores or ((2, 0) if winner == m.participant1_id else (0, 2))
    return editor.edit(
        bracket,
        m.match_id,
        participant1_score=scores[0],
        participant2_score=scores[1],
        winner_id=winner,
        completed_at=LATER,
    )


def test_changed_round_one_winner_resets_semi_and_final():
    b = _eight_through_semis()
    out = _edit(b, "R1M1", "p5")

    semi = at(b, "R2M1")
    assert semi.slots == ("p5", "p2")
    assert semi.status == MatchStatus.SCHEDULED
    assert semi.winner_id is None and semi.participant1_score is None and semi.completed_at is None

    final = at(b, "R3M1")
    assert final.slots == (None, "p3")
    assert final.status == MatchStatus.AWAITING

    assert out.old_winner_id == "p1" and out.new_winner_id == "p5"
    assert out.reset_ids == {semi.match_id}
    assert {semi.match_id, final.match_id, at(b, "R1M1").match_id} <= out.changed_ids


def test_descendants_policy_leaves_other_branch_alone():
    b = _eight_through_semis()
    _edit(b, "R1M1", "p5")
    other = at(b, "R2M2")
    assert other.status == MatchStatus.COMPLETED
    assert other.winner_id == "p3"


def test_later_rounds_policy_resets_every_later_result():
    b = _eight_through_semis()
    out = _edit(b, "R1M1", "p5", policy=CascadePolicy.LATER_ROUNDS)

    assert at(b, "R2M1").slots == ("p5", "p2")
    other = at(b, "R2M2")
    assert other.slots == ("p3", "p4")
    assert other.status == MatchStatus.SCHEDULED
    assert other.winner_id is None
    assert at(b, "R3M1").slots == (None, None)
    assert out.reset_ids == {at(b, "R2M1").match_id, other.match_id}


def test_reset_final_loses_both_finalists_from_edited_branch():
    b = _eight_through_semis()
    _record(b, "R3M1")
    out = _edit(b, "R1M1", "p5")

    final = at(b, "R3M1")
    assert final.slots == (None, "p3")
    assert final.winner_id is None
    assert final.match_id in out.reset_ids


def test_editing_a_semi_final_moves_the_new_winner_into_the_final():
    b = _eight_through_semis()
    _record(b, "R3M1")
    _edit(b, "R2M1", "p2")
    final = at(b, "R3M1")
    assert final.slots == ("p2", "p3")
    assert final.status == MatchStatus.SCHEDULED


def test_same_winner_new_scores_has_no_downstream_effect():
    b = _eight_through_semis()
    before = {m.match_id: (m.slots, m.winner_id, m.status) for m in b.matches if m.round_number > 1}
    out = _edit(b, "R1M1", "p1", scores=(5, 4))

    after = {m.match_id: (m.slots, m.winner_id, m.status) for m in b.matches if m.round_number > 1}
    assert after == before
    assert out.changed_ids == {at(b, "R1M1").match_id}
    assert out.reset_ids == set()
    assert at(b, "R1M1").participant1_score == 5


def test_pre_round_edit_in_seeded_bracket():
    """N=6: flipping a pre-round result swaps who tops up the safe seed."""
    b = make_snapshot(6)
    _record(b, "R1M1")  # p4 -> R2M1
    _record(b, "R1M2")  # p3 -> R2M2
    _record(b, "R2M1")  # p1 beats p4
    _edit(b, "R1M1", "p5")

    r2m1 = at(b, "R2M1")
    assert r2m1.slots == ("p1", "p5")
    assert r2m1.status == MatchStatus.SCHEDULED
    assert at(b, "R2M2").slots == ("p2", "p3")
    assert at(b, "R3M1").slots == (None, None)


def test_no_duplicate_live_placement_after_edits():
    b = _eight_through_semis()
    _record(b, "R3M1")
    for position, winner in (("R1M1", "p5"), ("R1M3", "p7"), ("R1M1", "p1"), ("R2M2", "p4")):
        _edit(b, position, winner)
        for pids in live_placements(b).values():
            assert len(pids) == len(set(pids))


def test_edit_validates_winner():
    b = _eight_through_semis()
    with pytest.raises(InvalidResultError):
        _edit(b, "R1M1", "p8")


def test_edit_unknown_match():
    with pytest.raises(ResolutionError):
        ResultEditor().edit(
            make_snapshot(4),
            "missing",
            participant1_score=1,
            participant2_score=0,
            winner_id="p1",
            completed_at=LATER,
        )


@pytest.mark.parametrize("scores", [(-1, 2), (1, -3)])
def test_negative_scores_rejected(scores):
    b = make_snapshot(4)
    m = at(b, "R1M1")
    with pytest.raises(InvalidResultError):
        apply_result(m, participant1_score=scores[0], participant2_score=scores[1], winner_id="p1", completed_at=LATER)
    assert m.status == MatchStatus.SCHEDULED


def test_result_needs_both_participants():
    b = make_snapshot(5)
    with pytest.raises(InvalidResultError):
        apply_result(at(b, "R2M2"), participant1_score=1, participant2_score=0, winner_id="p2", completed_at=LATER)


@pytest.mark.parametrize(
    "scores, winner",
    [
        ((3, 3), "p1"),  # tie
        ((0, 21), "p1"),  # p3 scored more
        ((21, 0), "p3"),  # p1 scored more
    ],
)
def test_result_must_match_the_scores(scores, winner):
    b = make_snapshot(4)
    m = at(b, "R1M1")
    with pytest.raises(InvalidResultError):
        apply_result(m, participant1_score=scores[0], participant2_score=scores[1], winner_id=winner, completed_at=LATER)
    assert m.status == MatchStatus.SCHEDULED
    assert m.winner_id is None and m.participant1_score is None


def test_edit_with_contradicting_scores_changes_nothing():
    b = _eight_through_semis()
    with pytest.raises(InvalidResultError):
        _edit(b, "R1M1", "p1", scores=(0, 2))
    assert at(b, "R1M1").winner_id == "p1"
    assert at(b, "R3M1").slots == ("p1", "p3")


def test_descendants_follow_where_the_winner_actually_sits():
    """N=6, R1M2 decided first: editing R1M1 must leave R2M1 alone."""
    b = make_snapshot(6)
    _record(b, "R1M2")  # p3 -> R2M1 slot 2
    _record(b, "R1M1")  # p4 -> R2M2 slot 2
    _record(b, "R2M2")  # p2 -> final
    assert at(b, "R2M1").slots == ("p1", "p3")
    assert at(b, "R3M1").slots == (None, "p2")

    out = _edit(b, "R1M1", "p5")

    assert out.reset_ids == {at(b, "R2M2").match_id}
    assert at(b, "R2M1").slots == ("p1", "p3")
    assert at(b, "R2M1").status == MatchStatus.SCHEDULED
    assert at(b, "R2M2").slots == ("p2", "p5")
    assert at(b, "R2M2").winner_id is None
    assert at(b, "R3M1").slots == (None, None)
