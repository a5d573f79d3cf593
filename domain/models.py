# domain/models.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Union

from domain.enums import MatchStage, MatchStatus, PlayFormat, TournamentStage, TournamentType


def bracket_position(round_number: int, match_number: int) -> str:
    return f"R{int(round_number)}M{int(match_number)}"


def parse_bracket_position(code: str) -> tuple[int, int] | None:
    """
    R2M1 -> (2, 1). Case-insensitive, returns None for anything else.
    """
    c = (code or "").strip().upper()
    if not c.startswith("R") or "M" not in c:
        return None
    round_s, match_s = c[1:].split("M", 1)
    try:
        round_number = int(round_s)
        match_number = int(match_s)
    except ValueError:
        return None
    if round_number < 1 or match_number < 1:
        return None
    return round_number, match_number


def largest_power_of_two_at_most(n: int) -> int:
    if n < 2:
        return 1
    p = 2
    while p * 2 <= n:
        p *= 2
    return p


def round_name(players_in_round: int, *, pre_round: bool = False) -> str:
    if pre_round:
        return "Pre-Round"
    if players_in_round == 2:
        return "Final"
    if players_in_round == 4:
        return "Semi Finals"
    if players_in_round == 8:
        return "Quarter Finals"
    return f"Round of {players_in_round}"


def derive_status(
    participant1_id: Optional[str],
    participant2_id: Optional[str],
    winner_id: Optional[str] = None,
) -> MatchStatus:
    if participant1_id is None or participant2_id is None:
        return MatchStatus.AWAITING
    if winner_id is None:
        return MatchStatus.SCHEDULED
    return MatchStatus.COMPLETED


# -------------------------
# Match state variants
# -------------------------


@dataclass(frozen=True)
class Empty:
    pass


@dataclass(frozen=True)
class OneSeeded:
    participant_id: str
    slot: int  # 1 or 2


@dataclass(frozen=True)
class Ready:
    participant1_id: str
    participant2_id: str


@dataclass(frozen=True)
class Completed:
    participant1_id: str
    participant2_id: str
    winner_id: str
    participant1_score: int
    participant2_score: int

    def __post_init__(self) -> None:
        if self.winner_id not in (self.participant1_id, self.participant2_id):
            raise ValueError("winner must be one of the two participants")

    @property
    def loser_id(self) -> str:
        return self.participant2_id if self.winner_id == self.participant1_id else self.participant1_id


MatchState = Union[Empty, OneSeeded, Ready, Completed]


# -------------------------
# Records
# -------------------------


@dataclass(frozen=True)
class Pair:
    """Doubles entry: two players seeded as one participant."""

    pair_id: str
    player1_id: str
    player2_id: str
    player1_name: str = ""
    player2_name: str = ""

    @property
    def display_name(self) -> str:
        names = [n for n in (self.player1_name, self.player2_name) if n]
        return " / ".join(names) if names else self.pair_id


@dataclass
class Participant:
    participant_id: str
    tournament_id: str
    player_id: str
    display_name: str
    seed_number: int
    group_id: Optional[str] = None
    partner_player_id: Optional[str] = None
    wins: int = 0
    losses: int = 0
    points_for: int = 0
    points_against: int = 0
    eliminated_round: Optional[int] = None


@dataclass(frozen=True)
class MatchSkeleton:
    stage: MatchStage
    round_number: int
    match_number: int
    participant1_id: Optional[str]
    participant2_id: Optional[str]
    status: MatchStatus

    @property
    def bracket_position(self) -> str:
        return bracket_position(self.round_number, self.match_number)


@dataclass
class Match:
    match_id: str
    tournament_id: str
    stage: MatchStage
    round_number: int
    match_number: int
    participant1_id: Optional[str] = None
    participant2_id: Optional[str] = None
    participant1_score: Optional[int] = None
    participant2_score: Optional[int] = None
    winner_id: Optional[str] = None
    status: MatchStatus = MatchStatus.AWAITING
    completed_at: Optional[datetime] = None

    @property
    def bracket_position(self) -> str:
        return bracket_position(self.round_number, self.match_number)

    @property
    def slots(self) -> tuple[Optional[str], Optional[str]]:
        return self.participant1_id, self.participant2_id

    @property
    def is_completed(self) -> bool:
        return self.status == MatchStatus.COMPLETED

    @property
    def has_result(self) -> bool:
        return (
            self.winner_id is not None
            or self.participant1_score is not None
            or self.participant2_score is not None
            or self.completed_at is not None
        )

    @property
    def state(self) -> MatchState:
        p1, p2 = self.slots
        if p1 is None and p2 is None:
            return Empty()
        if p1 is None or p2 is None:
            return OneSeeded(participant_id=p1 or p2, slot=1 if p1 is not None else 2)  # type: ignore[arg-type]
        if self.status == MatchStatus.COMPLETED and self.winner_id is not None:
            return Completed(
                participant1_id=p1,
                participant2_id=p2,
                winner_id=self.winner_id,
                participant1_score=int(self.participant1_score or 0),
                participant2_score=int(self.participant2_score or 0),
            )
        return Ready(participant1_id=p1, participant2_id=p2)

    def holds(self, participant_id: Optional[str]) -> bool:
        return participant_id is not None and participant_id in self.slots

    def set_slot(self, slot: int, participant_id: Optional[str]) -> None:
        if slot == 1:
            self.participant1_id = participant_id
        elif slot == 2:
            self.participant2_id = participant_id
        else:
            raise ValueError(f"slot must be 1 or 2, got {slot!r}")

    def clear_result(self) -> None:
        self.participant1_score = None
        self.participant2_score = None
        self.winner_id = None
        self.completed_at = None
        self.recompute_status()

    def recompute_status(self) -> None:
        self.status = derive_status(self.participant1_id, self.participant2_id, self.winner_id)

    def copy(self) -> "Match":
        return replace(self)


@dataclass
class Tournament:
    tournament_id: str
    event_id: Optional[str]
    name: str
    tournament_type: TournamentType = TournamentType.SINGLE_STAGE
    play_format: PlayFormat = PlayFormat.SINGLES
    current_stage: TournamentStage = TournamentStage.SETUP
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class BracketSnapshot:
    """
    Everything a planner needs about one tournament, read in one go.
    Planners work on copies and never write to the store themselves.
    """

    tournament: Tournament
    participants: list[Participant] = field(default_factory=list)
    matches: list[Match] = field(default_factory=list)

    @property
    def version(self) -> int:
        return self.tournament.version

    def match_by_id(self, match_id: str) -> Optional[Match]:
        return next((m for m in self.matches if m.match_id == match_id), None)

    def round(self, round_number: int) -> list[Match]:
        ms = [m for m in self.matches if m.round_number == int(round_number)]
        ms.sort(key=lambda m: m.match_number)
        return ms

    def round_numbers(self) -> list[int]:
        return sorted({m.round_number for m in self.matches})

    def final_round(self) -> Optional[int]:
        rounds = self.round_numbers()
        return rounds[-1] if rounds else None

    def seed_order(self) -> list[str]:
        ps = sorted(self.participants, key=lambda p: (p.seed_number, p.participant_id))
        return [p.participant_id for p in ps]

    def clone(self) -> "BracketSnapshot":
        return BracketSnapshot(
            tournament=replace(self.tournament),
            participants=[replace(p) for p in self.participants],
            matches=[m.copy() for m in self.matches],
        )


@dataclass
class ChangeSet:
    """
    Every row write of one mutation. Repositories apply it in a single
    transaction guarded by the tournament version the plan was built from.
    """

    tournament_id: str
    expected_version: int
    stage: Optional[TournamentStage] = None
    delete_matches: bool = False
    new_matches: list[Match] = field(default_factory=list)
    match_updates: list[Match] = field(default_factory=list)
    new_participants: list[Participant] = field(default_factory=list)
    participant_updates: list[Participant] = field(default_factory=list)
    delete_participant_ids: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (
            self.stage is not None
            or self.delete_matches
            or self.new_matches
            or self.match_updates
            or self.new_participants
            or self.participant_updates
            or self.delete_participant_ids
        )
