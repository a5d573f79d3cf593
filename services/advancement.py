# services/advancement.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from domain.enums import MatchStatus, PlacementMode
from domain.errors import InvalidResultError, ResolutionError
from domain.models import BracketSnapshot, Match

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Placement:
    match_id: str
    slot: int
    participant_id: str


@dataclass
class AdvancementResult:
    source_match_id: str
    mode: Optional[PlacementMode] = None
    placement: Optional[Placement] = None
    changed_ids: set[str] = field(default_factory=set)
    tournament_complete: bool = False


def detect_mode(current: list[Match], nxt: list[Match]) -> PlacementMode:
    """
    Seeded top-up when the next round already holds someone who never played
    in the current round (a safe seed placed by the generator).
    """
    played = {pid for m in current for pid in m.slots if pid is not None}
    for m in nxt:
        for pid in m.slots:
            if pid is not None and pid not in played:
                return PlacementMode.SEEDED_TOP_UP
    return PlacementMode.STANDARD_PAIRING


def feed_targets(current: list[Match], nxt: list[Match]) -> tuple[PlacementMode, dict[str, tuple[Match, int]]]:
    """
    Maps every current-round match id to the (next-round match, slot) its
    winner goes to. Both lists must be sorted by match_number.

    Seeded top-up: a winner already sitting in an open slot stays there.
    Remaining winners fill the empty open slots in match order, walking the
    current round in match order and skipping matches that have no winner
    yet. Matches still undecided are projected onto whatever open slots are
    left, in the same order. Safe seeds are never part of the mapping.

    Standard pairing: matches (2k-1, 2k) feed match k, slot 1 and slot 2.
    """
    mode = detect_mode(current, nxt)
    targets: dict[str, tuple[Match, int]] = {}

    if mode == PlacementMode.SEEDED_TOP_UP:
        played = {pid for m in current for pid in m.slots if pid is not None}
        open_slots: list[tuple[Match, int]] = []
        seated: dict[str, tuple[Match, int]] = {}
        for m in nxt:
            for slot, pid in ((1, m.participant1_id), (2, m.participant2_id)):
                if pid is None or pid in played:
                    open_slots.append((m, slot))
                    if pid is not None:
                        seated.setdefault(pid, (m, slot))

        taken: set[tuple[str, int]] = set()
        for m in current:
            if m.winner_id is not None and m.winner_id in seated:
                dest, slot = seated[m.winner_id]
                targets[m.match_id] = (dest, slot)
                taken.add((dest.match_id, slot))

        free = [(dest, slot) for dest, slot in open_slots if (dest.match_id, slot) not in taken]
        decided = [m for m in current if m.match_id not in targets and m.winner_id is not None]
        undecided = [m for m in current if m.match_id not in targets and m.winner_id is None]
        for m, target in zip(decided + undecided, free):
            targets[m.match_id] = target
        return mode, targets

    for idx, m in enumerate(current):
        k = idx // 2
        if k < len(nxt):
            targets[m.match_id] = (nxt[k], 1 + idx % 2)
    return mode, targets


def feed_graph(bracket: BracketSnapshot) -> dict[str, str]:
    """match_id -> id of the next-round match it feeds (final has no entry)."""
    edges: dict[str, str] = {}
    rounds = bracket.round_numbers()
    for r, r_next in zip(rounds, rounds[1:]):
        if r_next != r + 1:
            break
        _mode, targets = feed_targets(bracket.round(r), bracket.round(r_next))
        for source_id, (dest, _slot) in targets.items():
            edges[source_id] = dest.match_id
    return edges


class AdvancementEngine:
    """
    Moves one completed match's winner into the next round.

    Works in place on a BracketSnapshot the caller owns (normally a clone) and
    reports which matches changed; the caller persists them in one write.
    Only the immediately following round is touched.
    """

    def advance(self, bracket: BracketSnapshot, match_id: str) -> AdvancementResult:
        source = bracket.match_by_id(match_id)
        if source is None:
            raise ResolutionError(f"Match {match_id} is not part of this bracket.")
        if source.status != MatchStatus.COMPLETED or source.winner_id is None:
            raise InvalidResultError(f"Match {source.bracket_position} has no recorded winner.")
        if not source.holds(source.winner_id):
            raise InvalidResultError(f"Winner of {source.bracket_position} is not one of its participants.")

        result = AdvancementResult(source_match_id=match_id)

        current = bracket.round(source.round_number)
        final_round = bracket.final_round()
        if source.round_number == final_round:
            if len(current) != 1:
                raise ResolutionError(f"Last round {final_round} has {len(current)} matches, expected 1.")
            result.tournament_complete = True
            log.info("Final %s decided: winner %s", source.bracket_position, source.winner_id)
            return result

        nxt = bracket.round(source.round_number + 1)
        if not nxt:
            raise ResolutionError(f"No round follows round {source.round_number}.")

        mode, targets = feed_targets(current, nxt)
        target = targets.get(source.match_id)
        if target is None:
            raise ResolutionError(f"Cannot resolve the next-round slot for {source.bracket_position}.")
        dest, dest_slot = target
        winner = source.winner_id
        result.mode = mode

        # Stale placements of this winner elsewhere in the next round.
        for m in nxt:
            for slot, pid in ((1, m.participant1_id), (2, m.participant2_id)):
                if pid != winner or (m is dest and slot == dest_slot):
                    continue
                m.set_slot(slot, None)
                m.clear_result()
                result.changed_ids.add(m.match_id)
                log.debug("Cleared stale %s from %s slot %d", winner, m.bracket_position, slot)

        occupant = dest.participant1_id if dest_slot == 1 else dest.participant2_id
        if occupant != winner:
            dest.set_slot(dest_slot, winner)
            dest.clear_result()
            result.changed_ids.add(dest.match_id)
        elif dest.status != MatchStatus.COMPLETED:
            before = dest.status
            dest.recompute_status()
            if dest.status != before:
                result.changed_ids.add(dest.match_id)

        result.placement = Placement(match_id=dest.match_id, slot=dest_slot, participant_id=winner)
        log.debug(
            "%s winner %s -> %s slot %d (%s)",
            source.bracket_position,
            winner,
            dest.bracket_position,
            dest_slot,
            mode.value,
        )
        return result
