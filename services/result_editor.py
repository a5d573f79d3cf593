# services/result_editor.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from domain.enums import CascadePolicy, MatchStatus
from domain.errors import InvalidResultError, ResolutionError
from domain.models import BracketSnapshot, Match
from services.advancement import AdvancementEngine, AdvancementResult, feed_graph

log = logging.getLogger(__name__)


@dataclass
class EditOutcome:
    match_id: str
    old_winner_id: Optional[str]
    new_winner_id: str
    changed_ids: set[str] = field(default_factory=set)
    reset_ids: set[str] = field(default_factory=set)
    advancement: Optional[AdvancementResult] = None


def apply_result(
    match: Match,
    *,
    participant1_score: int,
    participant2_score: int,
    winner_id: str,
    completed_at: datetime,
) -> None:
    """
    Validates and writes a result onto one match (no propagation).
    """
    if match.participant1_id is None or match.participant2_id is None:
        raise InvalidResultError(f"Match {match.bracket_position} is still waiting for a participant.")
    if winner_id not in (match.participant1_id, match.participant2_id):
        raise InvalidResultError(
            f"Winner must be {match.participant1_id} or {match.participant2_id} for {match.bracket_position}."
        )
    try:
        s1 = int(participant1_score)
        s2 = int(participant2_score)
    except (TypeError, ValueError) as e:
        raise InvalidResultError("Scores must be whole numbers.") from e
    if s1 < 0 or s2 < 0:
        raise InvalidResultError("Scores cannot be negative.")
    if s1 == s2:
        raise InvalidResultError("Scores cannot be tied.")
    higher = match.participant1_id if s1 > s2 else match.participant2_id
    if winner_id != higher:
        raise InvalidResultError(f"Winner of {match.bracket_position} must be the higher scorer ({higher}).")

    match.participant1_score = s1
    match.participant2_score = s2
    match.winner_id = winner_id
    match.completed_at = completed_at
    match.status = MatchStatus.COMPLETED


class ResultEditor:
    """
    Corrects an already recorded result.

    When the winner changes, everything downstream that depended on the old
    winner is invalidated first, then the new winner is advanced normally.

    Policies:
      - descendants: only matches reachable from the edited one through the
        feed graph (its path to the final)
      - later_rounds: every match in a later round, whatever the branch
    """

    def __init__(
        self,
        engine: AdvancementEngine | None = None,
        *,
        policy: CascadePolicy = CascadePolicy.DESCENDANTS,
    ) -> None:
        self._engine = engine or AdvancementEngine()
        self._policy = CascadePolicy(policy)

    @property
    def policy(self) -> CascadePolicy:
        return self._policy

    def edit(
        self,
        bracket: BracketSnapshot,
        match_id: str,
        *,
        participant1_score: int,
        participant2_score: int,
        winner_id: str,
        completed_at: datetime,
    ) -> EditOutcome:
        match = bracket.match_by_id(match_id)
        if match is None:
            raise ResolutionError(f"Match {match_id} is not part of this bracket.")

        old_winner = match.winner_id if match.status == MatchStatus.COMPLETED else None

        # Graph must reflect the bracket as it was played.
        affected = self.affected_matches(bracket, match)

        apply_result(
            match,
            participant1_score=participant1_score,
            participant2_score=participant2_score,
            winner_id=winner_id,
            completed_at=completed_at,
        )
        out = EditOutcome(match_id=match_id, old_winner_id=old_winner, new_winner_id=winner_id)
        out.changed_ids.add(match_id)

        if old_winner == winner_id:
            return out

        if old_winner is not None:
            self._invalidate(affected, match.round_number, old_winner, out)
            log.info(
                "Edited %s: winner %s -> %s, reset %d downstream match(es) (%s)",
                match.bracket_position,
                old_winner,
                winner_id,
                len(out.reset_ids),
                self._policy.value,
            )

        adv = self._engine.advance(bracket, match_id)
        out.advancement = adv
        out.changed_ids |= adv.changed_ids
        return out

    def affected_matches(self, bracket: BracketSnapshot, match: Match) -> list[Match]:
        if self._policy == CascadePolicy.LATER_ROUNDS:
            ms = [m for m in bracket.matches if m.round_number > match.round_number]
        else:
            edges = feed_graph(bracket)
            ms = []
            seen: set[str] = set()
            cur = edges.get(match.match_id)
            while cur is not None and cur not in seen:
                seen.add(cur)
                m = bracket.match_by_id(cur)
                if m is None:
                    break
                ms.append(m)
                cur = edges.get(cur)
        ms.sort(key=lambda m: (m.round_number, m.match_number))
        return ms

    def _invalidate(self, affected: list[Match], edited_round: int, old_winner: str, out: EditOutcome) -> None:
        # participant id -> round after which its placements are stale
        stale: dict[str, int] = {old_winner: edited_round}

        for m in affected:
            touched = False
            for slot, pid in ((1, m.participant1_id), (2, m.participant2_id)):
                if pid is not None and pid in stale and m.round_number > stale[pid]:
                    m.set_slot(slot, None)
                    touched = True

            if m.status == MatchStatus.COMPLETED or m.has_result:
                prev_winner = m.winner_id
                m.clear_result()
                out.reset_ids.add(m.match_id)
                touched = True
                if prev_winner is not None and prev_winner not in stale:
                    stale[prev_winner] = m.round_number
            elif touched:
                m.recompute_status()

            if touched:
                out.changed_ids.add(m.match_id)
