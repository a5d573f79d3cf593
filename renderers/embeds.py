# renderers/embeds.py
from __future__ import annotations

from dataclasses import dataclass

import discord

from services.mutation import BracketUpdate


@dataclass(frozen=True)
class EmbedTheme:
    primary: int = 0x3B82F6
    success: int = 0x2ECC71
    warning: int = 0xF1C40F
    danger: int = 0xE74C3C
    neutral: int = 0x5865F2


class Embeds:
    """
    Centralized embed styling so every command looks consistent.
    """

    def __init__(self, *, theme: EmbedTheme | None = None, footer: str = "Bracketbot") -> None:
        self._theme = theme or EmbedTheme()
        self._footer = footer

    def base(self, *, title: str, description: str | None = None, color: int | None = None) -> discord.Embed:
        e = discord.Embed(
            title=title,
            description=description,
            color=color if color is not None else self._theme.primary,
        )
        e.set_footer(text=self._footer)
        return e

    def info(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.neutral)

    def success(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.success)

    def warning(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.warning)

    def error(self, *, title: str, description: str | None = None) -> discord.Embed:
        return self.base(title=title, description=description, color=self._theme.danger)

    def update(self, *, title: str, update: BracketUpdate, positions: dict[str, str] | None = None) -> discord.Embed:
        """Summary of a bracket mutation: what changed and where the winner went."""
        pos = positions or {}
        e = self.success(title=title)
        e.add_field(name="Stage", value=update.stage.value, inline=True)
        e.add_field(name="Matches changed", value=str(update.changed), inline=True)
        if update.placement is not None:
            dest = pos.get(update.placement.match_id, update.placement.match_id)
            e.add_field(name="Advanced to", value=f"`{dest}` slot {update.placement.slot}", inline=True)
        if update.reset_match_ids:
            reset = ", ".join(f"`{pos.get(mid, mid)}`" for mid in update.reset_match_ids)
            e.add_field(name="Reset", value=reset[:1024], inline=False)
        return e
