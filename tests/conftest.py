"""
Pytest configuration and fixtures.

Services run against the in-memory FakeTournamentRepo; nothing here needs
MySQL or a Discord connection.
"""

from datetime import datetime

import pytest

from config import EngineConfig
from domain.enums import CascadePolicy, TournamentStage, TournamentType
from domain.models import BracketSnapshot, Match, Participant, Tournament
from services.bracket_generator import generate_bracket
from services.bracket_service import BracketService, materialize
from services.tournament_service import PlayerEntry, TournamentService
from tests.fakes import FakeTournamentRepo

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0)


def make_snapshot(n: int, *, stage: TournamentStage = TournamentStage.ELIMINATION_STAGE) -> BracketSnapshot:
    """
    A freshly generated bracket for participants p1..pn (p1 is the top seed),
    built without any store.
    """
    ids = [f"p{i}" for i in range(1, n + 1)]
    t = Tournament(tournament_id="t1", event_id=None, name=f"{n} players", current_stage=stage)
    participants = [
        Participant(participant_id=pid, tournament_id="t1", player_id=pid, display_name=pid.upper(), seed_number=i)
        for i, pid in enumerate(ids, start=1)
    ]
    return BracketSnapshot(tournament=t, participants=participants, matches=materialize("t1", generate_bracket(ids)))


def at(bracket: BracketSnapshot, position: str) -> Match:
    for m in bracket.matches:
        if m.bracket_position == position:
            return m
    raise KeyError(position)


def live_placements(bracket: BracketSnapshot) -> dict[int, list[str]]:
    """round -> every participant currently sitting in a slot of that round."""
    out: dict[int, list[str]] = {}
    for m in bracket.matches:
        for pid in m.slots:
            if pid is not None:
                out.setdefault(m.round_number, []).append(pid)
    return out


@pytest.fixture
def repo():
    return FakeTournamentRepo()


@pytest.fixture
def engine_config():
    return EngineConfig(cascade_policy=CascadePolicy.DESCENDANTS, conflict_retries=3, cache_enabled=True)


@pytest.fixture
def bracket_service(repo, engine_config):
    return BracketService(repo, engine_config=engine_config, clock=lambda: FIXED_NOW)


@pytest.fixture
def tournament_service(repo, bracket_service):
    return TournamentService(repo, bracket_service)


@pytest.fixture
def make_tournament(tournament_service):
    """
    Factory: create a single-stage tournament with n seeded players
    (display names P1..Pn) and return its id.
    """

    async def _make(n: int, *, tournament_type: TournamentType = TournamentType.SINGLE_STAGE) -> str:
        t = await tournament_service.create_tournament(name=f"Cup of {n}", tournament_type=tournament_type)
        if n:
            await tournament_service.add_participants(
                tournament_id=t.tournament_id,
                players=[PlayerEntry(player_id=f"u{i}", display_name=f"P{i}") for i in range(1, n + 1)],
            )
        return t.tournament_id

    return _make
