# main.py
from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

import discord
from discord.ext import commands

from config import load_config
from db.pool import DbPool
from db.schema import ensure_schema

from repositories.tournament_repo import TournamentRepo

from services.bracket_service import BracketService
from services.locks import TournamentLocks
from services.tournament_service import TournamentService

from renderers.embeds import Embeds
from renderers.bracket_view import BracketView
from renderers.bracket_diagram import BracketDiagramRenderer
from renderers.standings_view import StandingsView

from cogs.tournament_cog import setup as setup_tournament_cog


class BracketBot(commands.Bot):
    def __init__(self) -> None:
        self.cfg = load_config()

        intents = discord.Intents.default()
        super().__init__(
            command_prefix=self.cfg.command_prefix,
            intents=intents,
            allowed_mentions=discord.AllowedMentions.none(),
        )

        self.db: Optional[DbPool] = None

    async def setup_hook(self) -> None:
        logging.info("Starting setup_hook...")

        # --- DB ---
        self.db = DbPool()
        await self.db.start(self.cfg.mysql)
        await ensure_schema(self.db.pool)

        # --- Repos ---
        tournament_repo = TournamentRepo(self.db)

        # --- Services ---
        bracket_service = BracketService(
            tournament_repo,
            engine_config=self.cfg.engine,
            locks=TournamentLocks(),
        )
        tournament_service = TournamentService(tournament_repo, bracket_service)
        logging.info(
            "Bracket engine: cascade=%s retries=%d cache=%s",
            self.cfg.engine.cascade_policy.value,
            self.cfg.engine.conflict_retries,
            "on" if self.cfg.engine.cache_enabled else "off",
        )

        # --- Renderers ---
        embeds = Embeds()
        bracket_view = BracketView()
        standings_view = StandingsView()
        diagram = BracketDiagramRenderer()

        # --- Cogs ---
        await setup_tournament_cog(
            self,
            tournament_service=tournament_service,
            bracket_service=bracket_service,
            embeds=embeds,
            bracket_view=bracket_view,
            standings_view=standings_view,
            diagram=diagram,
        )

        # --- Slash sync ---
        if self.cfg.dev_guild_id:
            guild = discord.Object(id=self.cfg.dev_guild_id)
            self.tree.copy_global_to(guild=guild)
            await self.tree.sync(guild=guild)
            logging.info("Slash commands synced to DEV guild %s", self.cfg.dev_guild_id)
        else:
            await self.tree.sync()
            logging.info("Slash commands synced globally")

        logging.info("setup_hook complete.")

    async def close(self) -> None:
        try:
            await super().close()
        finally:
            if self.db:
                await self.db.close()
                self.db = None


async def _run_bot() -> None:
    cfg = load_config()

    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    bot = BracketBot()

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _request_stop(*_args) -> None:
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop)
        except NotImplementedError:
            pass

    async with bot:
        await bot.start(cfg.token)
        await stop_event.wait()
        await bot.close()


def main() -> None:
    asyncio.run(_run_bot())


if __name__ == "__main__":
    main()
