# repositories/tournament_repo.py
from __future__ import annotations

from typing import Any, Mapping
from uuid import uuid4

import aiomysql

from domain.enums import MatchStage, MatchStatus, PlayFormat, TournamentStage, TournamentType
from domain.errors import StoreError
from domain.models import BracketSnapshot, ChangeSet, Match, Participant, Tournament
from repositories.base_repo import BaseRepo


def _opt_int(v: Any) -> int | None:
    return int(v) if v is not None else None


def _opt_str(v: Any) -> str | None:
    return str(v) if v is not None else None


def tournament_from_row(r: Mapping[str, Any]) -> Tournament:
    return Tournament(
        tournament_id=str(r["tournament_id"]),
        event_id=_opt_str(r.get("event_id")),
        name=str(r["name"]),
        tournament_type=TournamentType(str(r["tournament_type"])),
        play_format=PlayFormat(str(r["play_format"])),
        current_stage=TournamentStage(str(r["current_stage"])),
        version=int(r["version"]),
        created_at=r.get("created_at"),
        updated_at=r.get("updated_at"),
    )


def participant_from_row(r: Mapping[str, Any]) -> Participant:
    return Participant(
        participant_id=str(r["participant_id"]),
        tournament_id=str(r["tournament_id"]),
        player_id=str(r["player_id"]),
        display_name=str(r["display_name"]),
        seed_number=int(r["seed_number"]),
        group_id=_opt_str(r.get("group_id")),
        partner_player_id=_opt_str(r.get("partner_player_id")),
        wins=int(r.get("wins") or 0),
        losses=int(r.get("losses") or 0),
        points_for=int(r.get("points_for") or 0),
        points_against=int(r.get("points_against") or 0),
        eliminated_round=_opt_int(r.get("eliminated_round")),
    )


def match_from_row(r: Mapping[str, Any]) -> Match:
    return Match(
        match_id=str(r["match_id"]),
        tournament_id=str(r["tournament_id"]),
        stage=MatchStage(str(r["stage"])),
        round_number=int(r["round_number"]),
        match_number=int(r["match_number"]),
        participant1_id=_opt_str(r.get("participant1_id")),
        participant2_id=_opt_str(r.get("participant2_id")),
        participant1_score=_opt_int(r.get("participant1_score")),
        participant2_score=_opt_int(r.get("participant2_score")),
        winner_id=_opt_str(r.get("winner_id")),
        status=MatchStatus(str(r["status"])),
        completed_at=r.get("completed_at"),
    )


_MATCH_COLUMNS = """
  match_id, tournament_id, stage, round_number, match_number,
  participant1_id, participant2_id, participant1_score, participant2_score,
  winner_id, status, completed_at, bracket_position
"""


def _match_params(m: Match) -> tuple[Any, ...]:
    return (
        m.match_id,
        m.tournament_id,
        m.stage.value,
        m.round_number,
        m.match_number,
        m.participant1_id,
        m.participant2_id,
        m.participant1_score,
        m.participant2_score,
        m.winner_id,
        m.status.value,
        m.completed_at,
        m.bracket_position,
    )


class TournamentRepo(BaseRepo):
    async def create_tournament(
        self,
        *,
        name: str,
        event_id: str | None = None,
        tournament_type: TournamentType = TournamentType.SINGLE_STAGE,
        play_format: PlayFormat = PlayFormat.SINGLES,
    ) -> Tournament:
        tournament_id = uuid4().hex
        await self.execute(
            """
            INSERT INTO tournament
              (tournament_id, event_id, name, tournament_type, play_format, current_stage, version)
            VALUES
              (%s, %s, %s, %s, %s, %s, 0);
            """,
            (
                tournament_id,
                event_id,
                name,
                TournamentType(tournament_type).value,
                PlayFormat(play_format).value,
                TournamentStage.SETUP.value,
            ),
        )
        t = await self.get_tournament(tournament_id=tournament_id)
        if t is None:
            raise StoreError(f"Tournament {tournament_id} was not readable after insert.")
        return t

    async def get_tournament(self, *, tournament_id: str) -> Tournament | None:
        row = await self.fetch_one("SELECT * FROM tournament WHERE tournament_id=%s;", (tournament_id,))
        return tournament_from_row(row) if row else None

    async def list_participants(self, *, tournament_id: str) -> list[Participant]:
        rows = await self.fetch_all(
            """
            SELECT *
            FROM tournament_participant
            WHERE tournament_id=%s
            ORDER BY seed_number, participant_id;
            """,
            (tournament_id,),
        )
        return [participant_from_row(r) for r in rows]

    async def list_matches(self, *, tournament_id: str) -> list[Match]:
        rows = await self.fetch_all(
            """
            SELECT *
            FROM tournament_match
            WHERE tournament_id=%s
            ORDER BY round_number, match_number;
            """,
            (tournament_id,),
        )
        return [match_from_row(r) for r in rows]

    async def get_match(self, *, match_id: str) -> Match | None:
        row = await self.fetch_one("SELECT * FROM tournament_match WHERE match_id=%s;", (match_id,))
        return match_from_row(row) if row else None

    async def find_match(self, *, tournament_id: str, round_number: int, match_number: int) -> Match | None:
        row = await self.fetch_one(
            """
            SELECT *
            FROM tournament_match
            WHERE tournament_id=%s AND round_number=%s AND match_number=%s;
            """,
            (tournament_id, int(round_number), int(match_number)),
        )
        return match_from_row(row) if row else None

    async def load_snapshot(self, *, tournament_id: str) -> BracketSnapshot | None:
        """
        Tournament, participants and matches read from one consistent snapshot so
        the three lists are consistent with the version they carry.
        """

        async def _read(_conn: aiomysql.Connection, cur: aiomysql.Cursor) -> BracketSnapshot | None:
            await cur.execute("SELECT * FROM tournament WHERE tournament_id=%s;", (tournament_id,))
            t_row = await cur.fetchone()
            if not t_row:
                return None
            await cur.execute(
                "SELECT * FROM tournament_participant WHERE tournament_id=%s ORDER BY seed_number, participant_id;",
                (tournament_id,),
            )
            p_rows = await cur.fetchall()
            await cur.execute(
                "SELECT * FROM tournament_match WHERE tournament_id=%s ORDER BY round_number, match_number;",
                (tournament_id,),
            )
            m_rows = await cur.fetchall()
            return BracketSnapshot(
                tournament=tournament_from_row(t_row),
                participants=[participant_from_row(r) for r in p_rows or []],
                matches=[match_from_row(r) for r in m_rows or []],
            )

        return await self.in_tx(_read, read_only=True)

    async def apply(self, changes: ChangeSet) -> int:
        """
        Applies a change set atomically behind the tournament version
        compare-and-set; a mismatch raises ConcurrencyConflictError and nothing
        is written. Returns the new version.
        """

        async def _write(cur: aiomysql.Cursor) -> None:
            if changes.delete_matches:
                await cur.execute("DELETE FROM tournament_match WHERE tournament_id=%s;", (changes.tournament_id,))

            if changes.delete_participant_ids:
                await cur.executemany(
                    "DELETE FROM tournament_participant WHERE tournament_id=%s AND participant_id=%s;",
                    [(changes.tournament_id, pid) for pid in changes.delete_participant_ids],
                )

            if changes.new_participants:
                await cur.executemany(
                    """
                    INSERT INTO tournament_participant
                      (participant_id, tournament_id, player_id, display_name, seed_number,
                       group_id, partner_player_id)
                    VALUES (%s, %s, %s, %s, %s, %s, %s);
                    """,
                    [
                        (
                            p.participant_id,
                            p.tournament_id,
                            p.player_id,
                            p.display_name,
                            p.seed_number,
                            p.group_id,
                            p.partner_player_id,
                        )
                        for p in changes.new_participants
                    ],
                )

            if changes.participant_updates:
                await cur.executemany(
                    """
                    UPDATE tournament_participant
                    SET seed_number=%s, wins=%s, losses=%s, points_for=%s,
                        points_against=%s, eliminated_round=%s
                    WHERE participant_id=%s;
                    """,
                    [
                        (
                            p.seed_number,
                            p.wins,
                            p.losses,
                            p.points_for,
                            p.points_against,
                            p.eliminated_round,
                            p.participant_id,
                        )
                        for p in changes.participant_updates
                    ],
                )

            if changes.new_matches:
                await cur.executemany(
                    f"INSERT INTO tournament_match ({_MATCH_COLUMNS}) "
                    "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s);",
                    [_match_params(m) for m in changes.new_matches],
                )

            if changes.match_updates:
                await cur.executemany(
                    """
                    UPDATE tournament_match
                    SET participant1_id=%s, participant2_id=%s,
                        participant1_score=%s, participant2_score=%s,
                        winner_id=%s, status=%s, completed_at=%s
                    WHERE match_id=%s AND tournament_id=%s;
                    """,
                    [
                        (
                            m.participant1_id,
                            m.participant2_id,
                            m.participant1_score,
                            m.participant2_score,
                            m.winner_id,
                            m.status.value,
                            m.completed_at,
                            m.match_id,
                            changes.tournament_id,
                        )
                        for m in changes.match_updates
                    ],
                )

        return await self.in_versioned_tx(
            _write,
            tournament_id=changes.tournament_id,
            expected_version=changes.expected_version,
            stage=changes.stage.value if changes.stage is not None else None,
        )
