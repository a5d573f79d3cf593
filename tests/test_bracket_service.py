"""Tests for services.bracket_service against the in-memory repository."""

import asyncio

import pytest

from config import EngineConfig
from domain.enums import CascadePolicy, MatchStatus, TournamentStage, TournamentType
from domain.errors import (
    BracketAlreadyExistsError,
    ConcurrencyConflictError,
    InsufficientParticipantsError,
    InvalidResultError,
    MatchNotFoundError,
    StageTransitionError,
    StoreError,
    TournamentNotFoundError,
)
from services.bracket_service import BracketService


async def _seed_ids(bracket_service, tid):
    snap = await bracket_service.get_snapshot(tournament_id=tid)
    return {p.seed_number: p.participant_id for p in snap.participants}


async def _play(bracket_service, tid, position, winner_slot=1, scores=None):
    m = await bracket_service.find_match(tournament_id=tid, position=position)
    scores = scores or ((2, 1) if winner_slot == 1 else (1, 2))
    winner = m.participant1_id if winner_slot == 1 else m.participant2_id
    return await bracket_service.record_result(
        match_id=m.match_id,
        participant1_score=scores[0],
        participant2_score=scores[1],
        winner_id=winner,
    )


async def _play_all(bracket_service, tid):
    while True:
        snap = await bracket_service.get_snapshot(tournament_id=tid)
        ready = [m for m in snap.matches if m.status == MatchStatus.SCHEDULED]
        if not ready:
            return snap
        await _play(bracket_service, tid, ready[0].bracket_position)


async def test_generate_persists_every_match(bracket_service, make_tournament, repo):
    tid = await make_tournament(6)
    update = await bracket_service.generate_bracket(tournament_id=tid)

    assert update.changed == 5
    assert update.stage == TournamentStage.ELIMINATION_STAGE
    assert len(await repo.list_matches(tournament_id=tid)) == 5
    assert repo.tournaments[tid].current_stage == TournamentStage.ELIMINATION_STAGE
    assert update.version == repo.tournaments[tid].version


async def test_generate_twice_is_rejected(bracket_service, make_tournament):
    tid = await make_tournament(4)
    await bracket_service.generate_bracket(tournament_id=tid)
    with pytest.raises(BracketAlreadyExistsError):
        await bracket_service.generate_bracket(tournament_id=tid)


async def test_generate_needs_two_participants_and_writes_nothing(bracket_service, make_tournament, repo):
    tid = await make_tournament(1)
    writes = len(repo.applied)
    with pytest.raises(InsufficientParticipantsError):
        await bracket_service.generate_bracket(tournament_id=tid)
    assert len(repo.applied) == writes
    assert repo.tournaments[tid].current_stage == TournamentStage.SETUP


async def test_two_stage_tournament_must_pass_through_groups(bracket_service, tournament_service, make_tournament):
    tid = await make_tournament(4, tournament_type=TournamentType.DOUBLE_STAGE)
    with pytest.raises(StageTransitionError, match="must be in group_stage"):
        await bracket_service.generate_bracket(tournament_id=tid)

    await tournament_service.start_group_stage(tournament_id=tid)
    update = await bracket_service.generate_bracket(tournament_id=tid)
    assert update.stage == TournamentStage.ELIMINATION_STAGE


async def test_unknown_tournament(bracket_service):
    with pytest.raises(TournamentNotFoundError):
        await bracket_service.generate_bracket(tournament_id="missing")
    with pytest.raises(TournamentNotFoundError):
        await bracket_service.get_snapshot(tournament_id="missing")


async def test_record_result_advances_winner(bracket_service, make_tournament, repo):
    tid = await make_tournament(5)
    await bracket_service.generate_bracket(tournament_id=tid)
    seeds = await _seed_ids(bracket_service, tid)

    update = await _play(bracket_service, tid, "R1M1", winner_slot=2)

    r2m2 = repo.match_at(tid, "R2M2")
    assert r2m2.slots == (seeds[2], seeds[5])
    assert r2m2.status == MatchStatus.SCHEDULED
    assert update.placement.match_id == r2m2.match_id
    assert set(update.changed_match_ids) == {repo.match_at(tid, "R1M1").match_id, r2m2.match_id}


async def test_full_run_completes_and_counts_stats(bracket_service, make_tournament, repo):
    tid = await make_tournament(6)
    await bracket_service.generate_bracket(tournament_id=tid)
    snap = await _play_all(bracket_service, tid)

    assert snap.tournament.current_stage == TournamentStage.COMPLETED
    assert repo.tournaments[tid].current_stage == TournamentStage.COMPLETED

    final = snap.round(snap.final_round())[0]
    by_id = {p.participant_id: p for p in snap.participants}
    champion = by_id[final.winner_id]
    runner_up = by_id[final.participant2_id if final.winner_id == final.participant1_id else final.participant1_id]

    assert champion.seed_number == 1
    assert champion.eliminated_round is None
    assert champion.wins == 2 and champion.losses == 0
    assert champion.points_for == 4 and champion.points_against == 2
    assert runner_up.eliminated_round == snap.final_round()
    assert sum(p.wins for p in snap.participants) == 5
    assert sum(p.losses for p in snap.participants) == 5
    assert len([p for p in snap.participants if p.eliminated_round is None]) == 1


async def test_editing_after_completion_reopens_the_tournament(bracket_service, make_tournament, repo):
    tid = await make_tournament(4)
    await bracket_service.generate_bracket(tournament_id=tid)
    await _play_all(bracket_service, tid)
    seeds = await _seed_ids(bracket_service, tid)

    semi = repo.match_at(tid, "R1M1")
    update = await bracket_service.edit_result(
        match_id=semi.match_id,
        participant1_score=0,
        participant2_score=2,
        winner_id=seeds[3],
    )

    final = repo.match_at(tid, "R2M1")
    assert update.stage == TournamentStage.ELIMINATION_STAGE
    assert final.match_id in update.reset_match_ids
    assert final.slots == (seeds[3], seeds[2])
    assert final.status == MatchStatus.SCHEDULED
    assert final.winner_id is None

    snap = await bracket_service.get_snapshot(tournament_id=tid)
    by_id = {p.participant_id: p for p in snap.participants}
    assert by_id[seeds[1]].eliminated_round == 1
    assert by_id[seeds[1]].wins == 0
    assert by_id[seeds[3]].wins == 1


async def test_same_result_again_is_a_no_op(bracket_service, make_tournament, repo):
    tid = await make_tournament(8)
    await bracket_service.generate_bracket(tournament_id=tid)
    await _play(bracket_service, tid, "R1M1")
    m = repo.match_at(tid, "R1M1")
    version = repo.tournaments[tid].version

    update = await bracket_service.edit_result(
        match_id=m.match_id,
        participant1_score=m.participant1_score,
        participant2_score=m.participant2_score,
        winner_id=m.winner_id,
    )

    assert update.changed == 0
    assert repo.tournaments[tid].version == version
    assert repo.match_at(tid, "R1M1").completed_at == m.completed_at


async def test_record_on_completed_match_acts_as_edit(bracket_service, make_tournament, repo):
    tid = await make_tournament(8)
    await bracket_service.generate_bracket(tournament_id=tid)
    await _play(bracket_service, tid, "R1M1")
    await _play(bracket_service, tid, "R1M2")
    await _play(bracket_service, tid, "R2M1")

    update = await _play(bracket_service, tid, "R1M1", winner_slot=2, scores=(1, 2))

    assert repo.match_at(tid, "R2M1").match_id in update.reset_match_ids
    assert repo.match_at(tid, "R2M1").winner_id is None


async def test_record_rejects_bad_input(bracket_service, make_tournament, repo):
    tid = await make_tournament(5)
    await bracket_service.generate_bracket(tournament_id=tid)
    seeds = await _seed_ids(bracket_service, tid)
    r1 = repo.match_at(tid, "R1M1")
    r2m2 = repo.match_at(tid, "R2M2")

    with pytest.raises(MatchNotFoundError):
        await bracket_service.record_result(match_id="nope", participant1_score=1, participant2_score=0, winner_id="x")
    with pytest.raises(InvalidResultError):
        await bracket_service.record_result(
            match_id=r1.match_id, participant1_score=1, participant2_score=0, winner_id=seeds[1]
        )
    with pytest.raises(InvalidResultError):
        await bracket_service.record_result(
            match_id=r2m2.match_id, participant1_score=1, participant2_score=0, winner_id=seeds[2]
        )
    assert repo.match_at(tid, "R1M1").status == MatchStatus.SCHEDULED


async def test_find_match_by_position(bracket_service, make_tournament):
    tid = await make_tournament(4)
    await bracket_service.generate_bracket(tournament_id=tid)

    m = await bracket_service.find_match(tournament_id=tid, position="r2m1")
    assert m.bracket_position == "R2M1"
    with pytest.raises(MatchNotFoundError):
        await bracket_service.find_match(tournament_id=tid, position="R5M1")
    with pytest.raises(MatchNotFoundError):
        await bracket_service.find_match(tournament_id=tid, position="final")


async def test_conflicts_are_retried_from_a_fresh_read(bracket_service, make_tournament, repo):
    tid = await make_tournament(4)
    await bracket_service.generate_bracket(tournament_id=tid)
    version = repo.tournaments[tid].version
    loads = repo.loads

    repo.conflicts_to_inject = 2
    update = await _play(bracket_service, tid, "R1M1")

    assert update.version == version + 3
    assert repo.loads - loads >= 3
    assert repo.match_at(tid, "R2M1").participant1_id is not None


async def test_conflicts_give_up_after_retries_without_writing(repo, make_tournament):
    service = BracketService(repo, engine_config=EngineConfig(conflict_retries=1))
    tid = await make_tournament(4)
    await service.generate_bracket(tournament_id=tid)

    repo.conflicts_to_inject = 5
    with pytest.raises(ConcurrencyConflictError):
        await _play(service, tid, "R1M1")
    assert repo.conflicts_to_inject == 3
    assert repo.match_at(tid, "R1M1").status == MatchStatus.SCHEDULED
    assert repo.match_at(tid, "R2M1").slots == (None, None)


async def test_store_failure_leaves_bracket_untouched(bracket_service, make_tournament, repo):
    tid = await make_tournament(4)
    await bracket_service.generate_bracket(tournament_id=tid)
    repo.fail_next_apply = StoreError("connection lost")

    with pytest.raises(StoreError):
        await _play(bracket_service, tid, "R1M1")

    assert repo.match_at(tid, "R1M1").status == MatchStatus.SCHEDULED
    snap = await bracket_service.get_snapshot(tournament_id=tid)
    assert all(m.winner_id is None for m in snap.matches)


async def test_concurrent_reports_are_serialized(bracket_service, make_tournament, repo):
    tid = await make_tournament(8)
    await bracket_service.generate_bracket(tournament_id=tid)
    positions = ["R1M1", "R1M2", "R1M3", "R1M4"]
    matches = [await bracket_service.find_match(tournament_id=tid, position=p) for p in positions]

    await asyncio.gather(
        *(
            bracket_service.record_result(
                match_id=m.match_id, participant1_score=3, participant2_score=1, winner_id=m.participant1_id
            )
            for m in matches
        )
    )

    assert repo.match_at(tid, "R2M1").slots == (matches[0].participant1_id, matches[1].participant1_id)
    assert repo.match_at(tid, "R2M2").slots == (matches[2].participant1_id, matches[3].participant1_id)


async def test_sync_with_store_reports_drift(bracket_service, make_tournament, repo):
    tid = await make_tournament(4)
    await bracket_service.generate_bracket(tournament_id=tid)
    await bracket_service.get_snapshot(tournament_id=tid)
    assert await bracket_service.sync_with_store(tournament_id=tid) == 0

    # another process writes a result behind our back
    m = repo.matches[repo.match_at(tid, "R1M1").match_id]
    m.participant1_score, m.participant2_score, m.winner_id = 2, 0, m.participant1_id
    m.status = MatchStatus.COMPLETED
    repo.bump_version(tid)

    assert await bracket_service.sync_with_store(tournament_id=tid) == 1
    assert await bracket_service.sync_with_store(tournament_id=tid) == 0
    snap = await bracket_service.get_snapshot(tournament_id=tid)
    assert snap.version == repo.tournaments[tid].version


async def test_sync_without_cache_counts_every_match(repo, make_tournament):
    service = BracketService(repo, engine_config=EngineConfig(cache_enabled=False))
    tid = await make_tournament(5)
    await service.generate_bracket(tournament_id=tid)
    assert service.cache is None
    assert await service.sync_with_store(tournament_id=tid) == 4


async def test_later_rounds_policy_through_service(repo, make_tournament):
    service = BracketService(repo, engine_config=EngineConfig(cascade_policy=CascadePolicy.LATER_ROUNDS))
    tid = await make_tournament(8)
    await service.generate_bracket(tournament_id=tid)
    for pos in ("R1M1", "R1M2", "R1M3", "R1M4", "R2M1", "R2M2"):
        await _play(service, tid, pos)

    update = await _play(service, tid, "R1M1", winner_slot=2, scores=(0, 1))

    assert set(update.reset_match_ids) == {repo.match_at(tid, "R2M1").match_id, repo.match_at(tid, "R2M2").match_id}
    assert repo.match_at(tid, "R3M1").slots == (None, None)


async def test_regenerate_after_completion(bracket_service, make_tournament, repo):
    tid = await make_tournament(4)
    await bracket_service.generate_bracket(tournament_id=tid)
    await _play_all(bracket_service, tid)
    old_ids = set(repo.matches)

    update = await bracket_service.regenerate_bracket(tournament_id=tid)

    assert update.stage == TournamentStage.ELIMINATION_STAGE
    assert update.changed == 3
    assert not (set(repo.matches) & old_ids)
    snap = await bracket_service.get_snapshot(tournament_id=tid)
    assert all(p.wins == 0 and p.losses == 0 for p in snap.participants)


def test_preview_needs_no_store():
    skeletons = BracketService.preview(["a", "b", "c"])
    assert [s.bracket_position for s in skeletons] == ["R1M1", "R2M1"]
