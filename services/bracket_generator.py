# services/bracket_generator.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from domain.enums import MatchStage
from domain.errors import InsufficientParticipantsError
from domain.models import MatchSkeleton, Pair, derive_status, largest_power_of_two_at_most, round_name

log = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2


@dataclass(frozen=True)
class RoundPlan:
    round_number: int
    name: str
    stage: MatchStage
    matches: int
    players: int     # entering the round
    advancing: int


def _ids(entrants: Sequence[Union[str, Pair]]) -> list[str]:
    out: list[str] = []
    for e in entrants:
        out.append(e.pair_id if isinstance(e, Pair) else str(e))
    if len(set(out)) != len(out):
        raise ValueError("participant ids must be unique")
    return out


def _pre_round_pairs(tail: list[str], excess: int) -> list[tuple[str, str]]:
    """
    Pre-round match m pairs tail[excess - m] with tail[excess + m - 1],
    so the middle of the tail plays first and the extremes play last.
    """
    pairs: list[tuple[str, str]] = []
    for m in range(1, excess + 1):
        pairs.append((tail[excess - m], tail[excess + m - 1]))
    return pairs


def bracket_structure(n: int) -> list[RoundPlan]:
    """Per-round preview of a bracket for n participants (no ids needed)."""
    if n < MIN_PARTICIPANTS:
        return []
    target = largest_power_of_two_at_most(n)
    excess = n - target

    plans: list[RoundPlan] = []
    round_no = 1
    if excess:
        plans.append(
            RoundPlan(
                round_number=round_no,
                name=round_name(n, pre_round=True),
                stage=MatchStage.PRE_ROUND,
                matches=excess,
                players=2 * excess,
                advancing=excess,
            )
        )
        round_no += 1

    players = target
    while players > 1:
        plans.append(
            RoundPlan(
                round_number=round_no,
                name=round_name(players),
                stage=MatchStage.ELIMINATION,
                matches=players // 2,
                players=players,
                advancing=players // 2,
            )
        )
        players //= 2
        round_no += 1
    return plans


def generate_bracket(entrants: Sequence[Union[str, Pair]]) -> list[MatchSkeleton]:
    """
    Ordered entrants (index 0 = top seed) -> every match of a single-elimination
    bracket, ordered by (round, match).

    Non-power-of-two fields get pre-round matches in round 1 over the lowest
    seeds; the first main round then holds the "safe" top seeds with TBD slots
    left for pre-round winners. No byes are ever auto-advanced.
    """
    ids = _ids(entrants)
    n = len(ids)
    if n < MIN_PARTICIPANTS:
        raise InsufficientParticipantsError(
            f"At least {MIN_PARTICIPANTS} participants are required, got {n}."
        )

    target = largest_power_of_two_at_most(n)
    excess = n - target

    out: list[MatchSkeleton] = []
    round_no = 1

    if excess:
        tail = ids[n - 2 * excess :]
        for match_no, (p1, p2) in enumerate(_pre_round_pairs(tail, excess), start=1):
            out.append(
                MatchSkeleton(
                    stage=MatchStage.PRE_ROUND,
                    round_number=round_no,
                    match_number=match_no,
                    participant1_id=p1,
                    participant2_id=p2,
                    status=derive_status(p1, p2),
                )
            )
        round_no += 1

    safe = ids[: target - excess]
    half = target // 2
    for m in range(1, half + 1):
        s1: Optional[str] = safe[m - 1] if m - 1 < len(safe) else None
        s2: Optional[str] = safe[m - 1 + half] if m - 1 + half < len(safe) else None
        out.append(
            MatchSkeleton(
                stage=MatchStage.ELIMINATION,
                round_number=round_no,
                match_number=m,
                participant1_id=s1,
                participant2_id=s2,
                status=derive_status(s1, s2),
            )
        )

    count = half
    while count > 1:
        count //= 2
        round_no += 1
        for m in range(1, count + 1):
            out.append(
                MatchSkeleton(
                    stage=MatchStage.ELIMINATION,
                    round_number=round_no,
                    match_number=m,
                    participant1_id=None,
                    participant2_id=None,
                    status=derive_status(None, None),
                )
            )

    log.debug("Generated %d matches for %d participants (%d pre-round)", len(out), n, excess)
    return out
