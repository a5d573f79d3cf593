# renderers/bracket_diagram.py
from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from domain.enums import MatchStatus
from domain.models import BracketSnapshot, Match, Participant
from renderers.bracket_view import round_title
from services.advancement import feed_graph


@dataclass(frozen=True)
class DiagramStyle:
    margin: int = 36
    header_h: int = 40
    box_w: int = 300
    box_h: int = 72
    h_gap: int = 80
    v_gap: int = 18
    scale: float = 1.0

    bg: tuple[int, int, int] = (18, 20, 26)
    text: tuple[int, int, int] = (236, 236, 240)
    subtle: tuple[int, int, int] = (150, 156, 170)
    box_fill: tuple[int, int, int] = (34, 38, 48)
    box_border: tuple[int, int, int] = (90, 98, 116)
    line: tuple[int, int, int] = (80, 86, 100)
    winner: tuple[int, int, int] = (46, 204, 113)

    font_size: int = 18
    font_size_small: int = 14


class BracketDiagramRenderer:
    """
    PNG bracket: one column per round, connectors drawn along the feed graph
    (so pre-round winners connect to the slot they actually fill).
    """

    def __init__(self, style: DiagramStyle | None = None, font_path: Optional[str] = None) -> None:
        self.style = style or DiagramStyle()
        self.font_path = font_path

    def _font(self, size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
        names = [self.font_path] if self.font_path else []
        names += ["DejaVuSans.ttf", "DejaVuSansMono.ttf", "Arial.ttf"]
        for name in names:
            try:
                return ImageFont.truetype(name, size)
            except OSError:
                continue
        return ImageFont.load_default()

    def layout(self, bracket: BracketSnapshot) -> dict[str, tuple[int, int]]:
        """match_id -> logical (x, y) of the match box's top-left corner."""
        st = self.style
        edges = feed_graph(bracket)
        feeders: dict[str, list[str]] = {}
        for src, dst in edges.items():
            feeders.setdefault(dst, []).append(src)

        xy: dict[str, tuple[int, int]] = {}
        for col, r in enumerate(bracket.round_numbers()):
            x = st.margin + col * (st.box_w + st.h_gap)
            prev_bottom = st.margin + st.header_h - st.v_gap
            for i, m in enumerate(bracket.round(r)):
                srcs = [xy[s] for s in feeders.get(m.match_id, []) if s in xy]
                if srcs:
                    y = sum(p[1] for p in srcs) // len(srcs)
                else:
                    y = st.margin + st.header_h + i * (st.box_h + st.v_gap)
                y = max(y, prev_bottom + st.v_gap)
                xy[m.match_id] = (x, y)
                prev_bottom = y + st.box_h
        return xy

    def render_png(self, bracket: BracketSnapshot, *, title: str | None = None) -> bytes:
        st = self.style
        s = float(st.scale or 1.0)

        def S(v: int) -> int:
            return int(v * s)

        xy = self.layout(bracket)
        max_x = max((p[0] for p in xy.values()), default=st.margin)
        max_y = max((p[1] for p in xy.values()), default=st.margin)
        width = S(max_x + st.box_w + st.margin)
        height = S(max_y + st.box_h + st.margin)

        img = Image.new("RGB", (max(2, width), max(2, height)), st.bg)
        draw = ImageDraw.Draw(img)
        f_main = self._font(max(10, S(st.font_size)))
        f_small = self._font(max(8, S(st.font_size_small)))

        if title:
            draw.text((S(st.margin), S(8)), title, font=f_main, fill=st.text)

        for col, r in enumerate(bracket.round_numbers()):
            x = st.margin + col * (st.box_w + st.h_gap)
            draw.text((S(x), S(st.margin + 6)), round_title(bracket, r), font=f_small, fill=st.subtle)

        for src, dst in feed_graph(bracket).items():
            if src not in xy or dst not in xy:
                continue
            sx, sy = xy[src]
            dx, dy = xy[dst]
            a = (S(sx + st.box_w), S(sy + st.box_h // 2))
            b = (S(dx), S(dy + st.box_h // 2))
            mid = (a[0] + b[0]) // 2
            draw.line([a, (mid, a[1]), (mid, b[1]), b], fill=st.line, width=max(2, S(2)))

        by_id = {p.participant_id: p for p in bracket.participants}
        for m in bracket.matches:
            if m.match_id in xy:
                self._draw_match(draw, m, xy[m.match_id], by_id, S, f_main, f_small)

        buf = BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()

    def _draw_match(self, draw, m: Match, at: tuple[int, int], by_id: dict[str, Participant], S, f_main, f_small) -> None:
        st = self.style
        x, y = at
        draw.rectangle(
            [S(x), S(y), S(x + st.box_w), S(y + st.box_h)],
            fill=st.box_fill,
            outline=st.box_border,
            width=max(1, S(2)),
        )
        draw.text((S(x + st.box_w - 54), S(y + 4)), m.bracket_position, font=f_small, fill=st.subtle)

        half = st.box_h // 2
        for i, (pid, score) in enumerate(
            ((m.participant1_id, m.participant1_score), (m.participant2_id, m.participant2_score))
        ):
            p = by_id.get(pid or "")
            label = f"[{p.seed_number}] {p.display_name}" if p else "TBD"
            won = m.status == MatchStatus.COMPLETED and pid is not None and pid == m.winner_id
            color = st.winner if won else (st.text if p else st.subtle)
            ty = y + 8 + i * half
            draw.text((S(x + 10), S(ty)), label[:28], font=f_main, fill=color)
            if score is not None:
                draw.text((S(x + st.box_w - 34), S(ty + 10)), str(score), font=f_main, fill=color)
