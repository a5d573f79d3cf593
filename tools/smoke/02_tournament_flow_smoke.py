from __future__ import annotations

import os, sys
from uuid import uuid4

HERE = os.path.dirname(__file__)
ROOT = os.path.abspath(os.path.join(HERE, "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import asyncio
from config import load_engine_config, load_mysql_config
from db.pool import DbPool
from db.schema import ensure_schema
from domain.enums import TournamentStage
from repositories.tournament_repo import TournamentRepo
from services.bracket_service import BracketService
from services.tournament_service import PlayerEntry, TournamentService

# Six players: two pre-round matches, then semis and a final.
PLAYERS = 6

async def main() -> None:
    run_id = os.getenv("SMOKE_RUN_ID") or f"smk_{uuid4().hex[:10]}"

    db = DbPool()
    await db.start(load_mysql_config())
    await ensure_schema(db.pool)

    repo = TournamentRepo(db)
    brackets = BracketService(repo, engine_config=load_engine_config())
    tournaments = TournamentService(repo, brackets)

    t = await tournaments.create_tournament(name=f"SMOKE_{run_id}", event_id=f"smoke:{run_id}")
    await tournaments.add_participants(
        tournament_id=t.tournament_id,
        players=[PlayerEntry(player_id=f"{run_id}_p{i}", display_name=f"SMOKE_P{i}") for i in range(1, PLAYERS + 1)],
    )

    update = await brackets.generate_bracket(tournament_id=t.tournament_id)
    assert update.changed == PLAYERS - 1, update

    # Play every round; the higher seed (slot 1) always wins.
    while True:
        snap = await brackets.get_snapshot(tournament_id=t.tournament_id)
        ready = [m for m in snap.matches if m.participant1_id and m.participant2_id and not m.is_completed]
        if not ready:
            break
        m = ready[0]
        await brackets.record_result(
            match_id=m.match_id,
            participant1_score=2,
            participant2_score=1,
            winner_id=m.participant1_id,
        )

    snap = await brackets.get_snapshot(tournament_id=t.tournament_id)
    assert snap.tournament.current_stage == TournamentStage.COMPLETED, snap.tournament.current_stage

    # Flip the first semi final and make sure the final was reset.
    semi = await brackets.find_match(tournament_id=t.tournament_id, position="R2M1")
    edit = await brackets.edit_result(
        match_id=semi.match_id,
        participant1_score=0,
        participant2_score=2,
        winner_id=semi.participant2_id,
    )
    assert edit.stage == TournamentStage.ELIMINATION_STAGE, edit
    assert edit.reset_match_ids, edit

    diff = await brackets.sync_with_store(tournament_id=t.tournament_id)
    assert diff == 0, diff

    await db.close()
    print(f"OK: tournament smoke passed. run_id={run_id} tournament_id={t.tournament_id}")

if __name__ == "__main__":
    asyncio.run(main())
