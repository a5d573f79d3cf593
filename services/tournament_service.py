# services/tournament_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Union
from uuid import uuid4

from domain.enums import PlayFormat, TournamentStage, TournamentType
from domain.errors import InsufficientParticipantsError, ParticipantError, TournamentNotFoundError
from domain.lifecycle import check_transition
from domain.models import BracketSnapshot, Pair, Participant, Tournament
from repositories.tournament_repo import TournamentRepo
from services.bracket_generator import MIN_PARTICIPANTS
from services.bracket_service import BracketService
from services.mutation import BracketUpdate, Plan

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlayerEntry:
    player_id: str
    display_name: str = ""


def _reseed(participants: list[Participant]) -> None:
    for seed, p in enumerate(sorted(participants, key=lambda p: (p.seed_number, p.participant_id)), start=1):
        p.seed_number = seed


class TournamentService:
    """
    Tournament lifecycle + participant roster.

    Stages:
      single_stage: setup -> elimination_stage -> completed
      double_stage: setup -> group_stage -> elimination_stage -> completed

    Roster changes never touch matches; once a bracket exists the caller
    decides when to regenerate it.
    """

    def __init__(self, repo: TournamentRepo, bracket_service: BracketService) -> None:
        self._repo = repo
        self._brackets = bracket_service
        self._runner = bracket_service.runner

    # -------------------------
    # Tournament
    # -------------------------

    async def create_tournament(
        self,
        *,
        name: str,
        event_id: str | None = None,
        tournament_type: TournamentType = TournamentType.SINGLE_STAGE,
        play_format: PlayFormat = PlayFormat.SINGLES,
    ) -> Tournament:
        name = (name or "").strip()
        if not name:
            raise ValueError("Tournament name is required.")
        t = await self._repo.create_tournament(
            name=name[:128],
            event_id=event_id,
            tournament_type=TournamentType(tournament_type),
            play_format=PlayFormat(play_format),
        )
        log.info("Created tournament %s (%s, %s)", t.tournament_id, t.tournament_type.value, t.play_format.value)
        return t

    async def get_tournament(self, *, tournament_id: str) -> Tournament:
        t = await self._repo.get_tournament(tournament_id=tournament_id)
        if t is None:
            raise TournamentNotFoundError(f"Tournament not found: {tournament_id}")
        return t

    async def list_participants(self, *, tournament_id: str) -> list[Participant]:
        return await self._repo.list_participants(tournament_id=tournament_id)

    async def start_group_stage(self, *, tournament_id: str) -> BracketUpdate:
        def plan(work: BracketSnapshot) -> Plan:
            t = work.tournament
            check_transition(t.tournament_type, t.current_stage, TournamentStage.GROUP_STAGE)
            if len(work.participants) < MIN_PARTICIPANTS:
                raise InsufficientParticipantsError(
                    f"At least {MIN_PARTICIPANTS} participants are required, got {len(work.participants)}."
                )
            return Plan(stage=TournamentStage.GROUP_STAGE)

        return await self._runner.run(tournament_id, plan)

    # -------------------------
    # Roster
    # -------------------------

    async def add_participants(
        self,
        *,
        tournament_id: str,
        players: Sequence[Union[str, PlayerEntry]],
    ) -> list[Participant]:
        """Append singles players to the end of the seed order."""
        entries = [p if isinstance(p, PlayerEntry) else PlayerEntry(player_id=str(p)) for p in players]
        added: list[Participant] = []

        def plan(work: BracketSnapshot) -> Plan:
            if work.tournament.play_format != PlayFormat.SINGLES:
                raise ParticipantError("This is a doubles tournament; add pairs instead.")
            taken = {p.player_id for p in work.participants}
            seed = max((p.seed_number for p in work.participants), default=0)
            added.clear()
            for e in entries:
                if e.player_id in taken:
                    raise ParticipantError(f"Player {e.player_id} is already in this tournament.")
                taken.add(e.player_id)
                seed += 1
                added.append(
                    Participant(
                        participant_id=uuid4().hex,
                        tournament_id=tournament_id,
                        player_id=e.player_id,
                        display_name=(e.display_name or e.player_id)[:128],
                        seed_number=seed,
                    )
                )
            work.participants.extend(added)
            return Plan(new_participants=list(added))

        await self._runner.run(tournament_id, plan)
        await self._note_stale_bracket(tournament_id)
        return list(added)

    async def add_pairs(self, *, tournament_id: str, pairs: Sequence[Pair]) -> list[Participant]:
        """Doubles: each pair is seeded as a single participant."""
        added: list[Participant] = []

        def plan(work: BracketSnapshot) -> Plan:
            if work.tournament.play_format != PlayFormat.DOUBLES:
                raise ParticipantError("This is a singles tournament; add players instead.")
            taken: set[str] = set()
            for p in work.participants:
                taken.add(p.player_id)
                if p.partner_player_id:
                    taken.add(p.partner_player_id)
            seed = max((p.seed_number for p in work.participants), default=0)
            added.clear()
            for pair in pairs:
                if pair.player1_id == pair.player2_id:
                    raise ParticipantError(f"Pair {pair.pair_id} lists the same player twice.")
                for pid in (pair.player1_id, pair.player2_id):
                    if pid in taken:
                        raise ParticipantError(f"Player {pid} is already in this tournament.")
                    taken.add(pid)
                seed += 1
                added.append(
                    Participant(
                        participant_id=uuid4().hex,
                        tournament_id=tournament_id,
                        player_id=pair.player1_id,
                        partner_player_id=pair.player2_id,
                        group_id=pair.pair_id,
                        display_name=pair.display_name[:128],
                        seed_number=seed,
                    )
                )
            work.participants.extend(added)
            return Plan(new_participants=list(added))

        await self._runner.run(tournament_id, plan)
        await self._note_stale_bracket(tournament_id)
        return list(added)

    async def remove_participants(self, *, tournament_id: str, participant_ids: Sequence[str]) -> BracketUpdate:
        """Delete participants and close the gaps in the seed order."""
        ids = list(dict.fromkeys(participant_ids))

        def plan(work: BracketSnapshot) -> Plan:
            known = {p.participant_id for p in work.participants}
            missing = [pid for pid in ids if pid not in known]
            if missing:
                raise ParticipantError(f"Unknown participant(s): {', '.join(missing)}")
            work.participants = [p for p in work.participants if p.participant_id not in set(ids)]
            _reseed(work.participants)
            return Plan(delete_participant_ids=ids)

        update = await self._runner.run(tournament_id, plan)
        await self._note_stale_bracket(tournament_id)
        return update

    async def reorder_participants(self, *, tournament_id: str, new_order: Sequence[str]) -> BracketUpdate:
        """Rewrite seed numbers from new_order (must list every participant once)."""
        order = list(new_order)

        def plan(work: BracketSnapshot) -> Plan:
            current = {p.participant_id: p for p in work.participants}
            if len(order) != len(set(order)) or set(order) != set(current):
                raise ParticipantError("New order must list every participant exactly once.")
            for seed, pid in enumerate(order, start=1):
                current[pid].seed_number = seed
            return Plan()

        return await self._runner.run(tournament_id, plan)

    async def regenerate_bracket(self, *, tournament_id: str) -> BracketUpdate:
        return await self._brackets.regenerate_bracket(tournament_id=tournament_id)

    async def _note_stale_bracket(self, tournament_id: str) -> None:
        snap = await self._brackets.get_snapshot(tournament_id=tournament_id)
        if snap.matches:
            log.info("Tournament %s roster changed after bracket generation; regenerate to apply.", tournament_id)
