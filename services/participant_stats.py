# services/participant_stats.py
from __future__ import annotations

from domain.enums import MatchStatus
from domain.models import BracketSnapshot


def recompute_participant_stats(bracket: BracketSnapshot) -> None:
    """
    Rebuild wins/losses/points/eliminated_round for every participant from
    the completed matches (in place). Counters are derived, never patched,
    so an edited or reset result can't leave them behind.
    """
    stats = {
        p.participant_id: {"wins": 0, "losses": 0, "points_for": 0, "points_against": 0, "eliminated_round": None}
        for p in bracket.participants
    }

    for m in bracket.matches:
        if m.status != MatchStatus.COMPLETED or m.winner_id is None:
            continue
        s1 = int(m.participant1_score or 0)
        s2 = int(m.participant2_score or 0)
        for pid, own, other in ((m.participant1_id, s1, s2), (m.participant2_id, s2, s1)):
            st = stats.get(pid) if pid is not None else None
            if st is None:
                continue
            st["points_for"] += own
            st["points_against"] += other
            if pid == m.winner_id:
                st["wins"] += 1
            else:
                st["losses"] += 1
                st["eliminated_round"] = m.round_number

    for p in bracket.participants:
        st = stats[p.participant_id]
        p.wins = st["wins"]
        p.losses = st["losses"]
        p.points_for = st["points_for"]
        p.points_against = st["points_against"]
        p.eliminated_round = st["eliminated_round"]
