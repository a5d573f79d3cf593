# services/cache.py
from __future__ import annotations

import logging
from typing import Optional

from domain.models import BracketSnapshot, Match

log = logging.getLogger(__name__)


def _match_key(m: Match) -> tuple:
    return (
        m.stage,
        m.round_number,
        m.match_number,
        m.participant1_id,
        m.participant2_id,
        m.participant1_score,
        m.participant2_score,
        m.winner_id,
        m.status,
    )


def diff_matches(old: list[Match], new: list[Match]) -> set[str]:
    """Ids of matches added, removed or changed between two lists."""
    before = {m.match_id: _match_key(m) for m in old}
    after = {m.match_id: _match_key(m) for m in new}
    changed = set(before) ^ set(after)
    for match_id in set(before) & set(after):
        if before[match_id] != after[match_id]:
            changed.add(match_id)
    return changed


class BracketCache:
    """
    Read-through cache of bracket snapshots keyed by tournament id.
    The store stays the source of truth; entries are replaced after every
    successful write and can be reconciled with sync.
    """

    def __init__(self) -> None:
        self._entries: dict[str, BracketSnapshot] = {}

    def __contains__(self, tournament_id: str) -> bool:
        return tournament_id in self._entries

    def get(self, tournament_id: str) -> Optional[BracketSnapshot]:
        snap = self._entries.get(tournament_id)
        return snap.clone() if snap is not None else None

    def put(self, snapshot: BracketSnapshot) -> None:
        self._entries[snapshot.tournament.tournament_id] = snapshot.clone()

    def invalidate(self, tournament_id: str) -> None:
        self._entries.pop(tournament_id, None)

    def reconcile(self, fresh: BracketSnapshot) -> set[str]:
        """
        Replace the cached entry with a fresh store read and return the ids of
        matches that differed. Without a cached entry every match counts.
        """
        tid = fresh.tournament.tournament_id
        cached = self._entries.get(tid)
        changed = diff_matches(cached.matches if cached else [], fresh.matches)
        self.put(fresh)
        if changed:
            log.info("Cache for tournament %s was stale: %d match(es) differ", tid, len(changed))
        return changed
