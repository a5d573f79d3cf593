# domain/lifecycle.py
from __future__ import annotations

from domain.enums import TournamentStage, TournamentType
from domain.errors import StageTransitionError

_S = TournamentStage

# (tournament type, from) -> allowed targets
TRANSITIONS: dict[tuple[TournamentType, TournamentStage], frozenset[TournamentStage]] = {
    (TournamentType.SINGLE_STAGE, _S.SETUP): frozenset({_S.ELIMINATION_STAGE}),
    (TournamentType.SINGLE_STAGE, _S.ELIMINATION_STAGE): frozenset({_S.COMPLETED}),
    (TournamentType.SINGLE_STAGE, _S.COMPLETED): frozenset({_S.ELIMINATION_STAGE}),
    (TournamentType.DOUBLE_STAGE, _S.SETUP): frozenset({_S.GROUP_STAGE}),
    (TournamentType.DOUBLE_STAGE, _S.GROUP_STAGE): frozenset({_S.ELIMINATION_STAGE}),
    (TournamentType.DOUBLE_STAGE, _S.ELIMINATION_STAGE): frozenset({_S.COMPLETED}),
    (TournamentType.DOUBLE_STAGE, _S.COMPLETED): frozenset({_S.ELIMINATION_STAGE}),
}


def can_transition(tournament_type: TournamentType, current: TournamentStage, target: TournamentStage) -> bool:
    if current == target:
        return True
    return target in TRANSITIONS.get((TournamentType(tournament_type), TournamentStage(current)), frozenset())


def check_transition(tournament_type: TournamentType, current: TournamentStage, target: TournamentStage) -> None:
    if not can_transition(tournament_type, current, target):
        raise StageTransitionError(
            f"A {TournamentType(tournament_type).value} tournament cannot move from "
            f"{TournamentStage(current).value} to {TournamentStage(target).value}."
        )


def stage_before_bracket(tournament_type: TournamentType) -> TournamentStage:
    """Stage a tournament must be in before its first bracket is generated."""
    if TournamentType(tournament_type) == TournamentType.DOUBLE_STAGE:
        return TournamentStage.GROUP_STAGE
    return TournamentStage.SETUP
