# renderers/standings_view.py
from __future__ import annotations

from typing import Sequence

from domain.models import Participant


def _pad(s: str, width: int) -> str:
    s = s or ""
    if len(s) > width:
        return s[: max(0, width - 1)] + "…" if width >= 2 else s[:width]
    return s + (" " * (width - len(s)))


class StandingsView:
    """
    Participant table for Discord: seed, name, W/L, points for/against and
    the round a participant went out in.
    """

    def __init__(self, *, name_width: int = 18, max_rows: int = 32) -> None:
        self._name_width = int(name_width)
        self._max_rows = int(max_rows)

    def render(self, participants: Sequence[Participant], *, title: str = "Standings") -> str:
        # still alive first, then by how far they went, then by seed
        rows = sorted(
            participants,
            key=lambda p: (
                p.eliminated_round is not None,
                -(p.eliminated_round or 0),
                -p.wins,
                p.seed_number,
            ),
        )[: self._max_rows]

        num_w = 4
        lines = [f"=== {title} ==="]
        lines.append(
            f"{_pad('Seed', 5)}{_pad('Name', self._name_width)} "
            f"{_pad('W', num_w)}{_pad('L', num_w)}{_pad('PF', num_w + 1)}{_pad('PA', num_w + 1)}Out"
        )
        lines.append("-" * (5 + self._name_width + 1 + num_w * 2 + (num_w + 1) * 2 + 4))
        for p in rows:
            out = f"R{p.eliminated_round}" if p.eliminated_round is not None else "-"
            lines.append(
                f"{_pad(str(p.seed_number), 5)}{_pad(p.display_name, self._name_width)} "
                f"{_pad(str(p.wins), num_w)}{_pad(str(p.losses), num_w)}"
                f"{_pad(str(p.points_for), num_w + 1)}{_pad(str(p.points_against), num_w + 1)}{out}"
            )
        if not rows:
            lines.append("(no participants)")
        return "```text\n" + "\n".join(lines) + "\n```"
