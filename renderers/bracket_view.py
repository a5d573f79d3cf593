# renderers/bracket_view.py
from __future__ import annotations

from typing import Optional

from domain.enums import MatchStage, MatchStatus
from domain.models import BracketSnapshot, Match, Participant, round_name


def _pad(s: str, width: int) -> str:
    s = s or ""
    if len(s) > width:
        return s[: max(0, width - 1)] + "…" if width >= 2 else s[:width]
    return s + (" " * (width - len(s)))


def _label(p: Optional[Participant], *, name_width: int) -> str:
    if p is None:
        return _pad("TBD", name_width)
    return _pad(f"[{p.seed_number}] {p.display_name}", name_width)


def _status_mark(m: Match, names: dict[str, str]) -> str:
    if m.status == MatchStatus.COMPLETED:
        w = names.get(m.winner_id or "", m.winner_id or "?")
        return f"✅ {m.participant1_score}-{m.participant2_score} W:{w}"
    if m.status == MatchStatus.SCHEDULED:
        return "⏳"
    return "•"


def round_title(bracket: BracketSnapshot, round_number: int) -> str:
    ms = bracket.round(round_number)
    if ms and ms[0].stage == MatchStage.PRE_ROUND:
        return round_name(0, pre_round=True)
    return round_name(2 * len(ms))


class BracketView:
    """
    Text bracket renderer for Discord (monospace), one block per round.
    """

    def __init__(self, *, name_width: int = 20) -> None:
        self._name_width = int(name_width)

    def render(self, bracket: BracketSnapshot, *, title: str | None = None, max_lines: int = 55) -> str:
        by_id = {p.participant_id: p for p in bracket.participants}
        names = {p.participant_id: p.display_name for p in bracket.participants}

        lines: list[str] = [f"=== {title or bracket.tournament.name} ===", ""]
        if not bracket.matches:
            lines.append("(no matches yet)")

        for r in bracket.round_numbers():
            lines.append(f"Round {r} - {round_title(bracket, r)}:")
            for m in bracket.round(r):
                left = _label(by_id.get(m.participant1_id or ""), name_width=self._name_width)
                right = _label(by_id.get(m.participant2_id or ""), name_width=self._name_width)
                lines.append(f"  {_pad(m.bracket_position, 6)} {left} vs {right}  {_status_mark(m, names)}")
            lines.append("")

        # Keep the tail when trimming; the later rounds matter most.
        if len(lines) > max_lines:
            head = lines[:6]
            tail = lines[-(max_lines - 8) :]
            lines = head + ["...", ""] + tail

        return "```text\n" + "\n".join(lines).rstrip() + "\n```"
