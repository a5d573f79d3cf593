# cogs/tournament_cog.py
from __future__ import annotations

import io
import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from domain.enums import PlayFormat, TournamentStage, TournamentType
from domain.errors import BracketError
from domain.models import BracketSnapshot, Pair, Participant
from renderers.bracket_diagram import BracketDiagramRenderer
from renderers.bracket_view import BracketView
from renderers.embeds import Embeds
from renderers.standings_view import StandingsView
from services.bracket_generator import bracket_structure
from services.bracket_service import BracketService
from services.mutation import BracketUpdate
from services.tournament_service import PlayerEntry, TournamentService

log = logging.getLogger(__name__)


def _positions(bracket: BracketSnapshot) -> dict[str, str]:
    return {m.match_id: m.bracket_position for m in bracket.matches}


def _by_seed(bracket: BracketSnapshot, seed: int) -> Optional[Participant]:
    for p in bracket.participants:
        if p.seed_number == seed:
            return p
    return None


def _parse_seed_list(raw: str) -> list[int]:
    out: list[int] = []
    for part in (raw or "").replace(" ", ",").split(","):
        if not part:
            continue
        try:
            out.append(int(part))
        except ValueError:
            raise ValueError(f"Not a seed number: {part!r}") from None
    return out


def _winner_slot(score1: int, score2: int) -> int:
    if score1 == score2:
        raise ValueError("Scores cannot be tied.")
    return 1 if score1 > score2 else 2


class TournamentCog(commands.Cog):
    tournament = app_commands.Group(name="tournament", description="Single-elimination brackets.")

    def __init__(
        self,
        bot: commands.Bot,
        *,
        tournament_service: TournamentService,
        bracket_service: BracketService,
        embeds: Embeds,
        bracket_view: BracketView,
        standings_view: StandingsView,
        diagram: BracketDiagramRenderer,
    ) -> None:
        self.bot = bot
        self.tournaments = tournament_service
        self.brackets = bracket_service
        self.embeds = embeds
        self.bracket_view = bracket_view
        self.standings_view = standings_view
        self.diagram = diagram

    # -----------------------------
    # Helpers
    # -----------------------------

    async def _can_manage(self, interaction: discord.Interaction) -> bool:
        if not interaction.guild:
            return False
        if isinstance(interaction.user, discord.Member):
            return interaction.user.guild_permissions.manage_guild or interaction.user.guild_permissions.manage_channels
        return False

    async def _deny(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message("Missing permission to manage tournaments here.", ephemeral=True)

    async def _fail(self, interaction: discord.Interaction, title: str, ex: Exception) -> None:
        await interaction.followup.send(embed=self.embeds.error(title=title, description=str(ex)), ephemeral=True)

    async def _send_update(self, interaction: discord.Interaction, title: str, update: BracketUpdate) -> None:
        snap = await self.brackets.get_snapshot(tournament_id=update.tournament_id)
        await interaction.followup.send(embed=self.embeds.update(title=title, update=update, positions=_positions(snap)))

    async def _report(
        self,
        interaction: discord.Interaction,
        *,
        tournament_id: str,
        match: str,
        score1: int,
        score2: int,
        edit: bool,
    ) -> None:
        m = await self.brackets.find_match(tournament_id=tournament_id, position=match)
        slot = _winner_slot(score1, score2)
        winner_id = m.participant1_id if slot == 1 else m.participant2_id
        if winner_id is None:
            raise ValueError(f"{m.bracket_position} slot {slot} is still empty.")

        call = self.brackets.edit_result if edit else self.brackets.record_result
        update = await call(
            match_id=m.match_id,
            participant1_score=int(score1),
            participant2_score=int(score2),
            winner_id=winner_id,
        )
        title = f"{m.bracket_position} {'edited' if edit else 'reported'}"
        if update.stage == TournamentStage.COMPLETED:
            title += " - tournament complete"
        await self._send_update(interaction, title, update)

    # -----------------------------
    # Setup
    # -----------------------------

    @tournament.command(name="create", description="Create a tournament.")
    @app_commands.describe(name="Tournament name", kind="single or double stage", play_format="singles or doubles")
    @app_commands.choices(
        kind=[
            app_commands.Choice(name="Single stage", value=TournamentType.SINGLE_STAGE.value),
            app_commands.Choice(name="Groups then elimination", value=TournamentType.DOUBLE_STAGE.value),
        ],
        play_format=[
            app_commands.Choice(name="Singles", value=PlayFormat.SINGLES.value),
            app_commands.Choice(name="Doubles", value=PlayFormat.DOUBLES.value),
        ],
    )
    async def create(
        self,
        interaction: discord.Interaction,
        name: str,
        kind: Optional[app_commands.Choice[str]] = None,
        play_format: Optional[app_commands.Choice[str]] = None,
    ) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer()

        try:
            t = await self.tournaments.create_tournament(
                name=name,
                event_id=str(interaction.guild_id) if interaction.guild_id else None,
                tournament_type=TournamentType(kind.value) if kind else TournamentType.SINGLE_STAGE,
                play_format=PlayFormat(play_format.value) if play_format else PlayFormat.SINGLES,
            )
        except (BracketError, ValueError) as ex:
            await self._fail(interaction, "Create failed", ex)
            return

        e = self.embeds.success(
            title="Tournament created",
            description=f"**ID:** `{t.tournament_id}`\n**Name:** {t.name}\n"
            f"**Type:** {t.tournament_type.value}\n**Format:** {t.play_format.value}",
        )
        await interaction.followup.send(embed=e)

    @tournament.command(name="add", description="Add a player (or a pair, for doubles) to the end of the seed order.")
    @app_commands.describe(player="Player to add", partner="Partner (doubles only)")
    async def add(
        self,
        interaction: discord.Interaction,
        tournament_id: str,
        player: discord.Member,
        partner: Optional[discord.Member] = None,
    ) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer(ephemeral=True)

        try:
            if partner is None:
                added = await self.tournaments.add_participants(
                    tournament_id=tournament_id,
                    players=[PlayerEntry(player_id=str(player.id), display_name=player.display_name)],
                )
            else:
                pair = Pair(
                    pair_id=f"{player.id}-{partner.id}",
                    player1_id=str(player.id),
                    player2_id=str(partner.id),
                    player1_name=player.display_name,
                    player2_name=partner.display_name,
                )
                added = await self.tournaments.add_pairs(tournament_id=tournament_id, pairs=[pair])
        except BracketError as ex:
            await self._fail(interaction, "Add failed", ex)
            return

        p = added[0]
        e = self.embeds.success(title="Participant added", description=f"**{p.display_name}** is seed **{p.seed_number}**.")
        await interaction.followup.send(embed=e, ephemeral=True)

    @tournament.command(name="remove", description="Remove a participant by seed number.")
    async def remove(self, interaction: discord.Interaction, tournament_id: str, seed: app_commands.Range[int, 1, 512]) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer(ephemeral=True)

        try:
            snap = await self.brackets.get_snapshot(tournament_id=tournament_id)
            p = _by_seed(snap, int(seed))
            if p is None:
                await interaction.followup.send(
                    embed=self.embeds.error(title="Not found", description=f"No participant with seed {seed}."),
                    ephemeral=True,
                )
                return
            await self.tournaments.remove_participants(tournament_id=tournament_id, participant_ids=[p.participant_id])
        except BracketError as ex:
            await self._fail(interaction, "Remove failed", ex)
            return

        e = self.embeds.success(title="Participant removed", description=f"Removed **{p.display_name}**; seeds below moved up.")
        await interaction.followup.send(embed=e, ephemeral=True)

    @tournament.command(name="seed", description="Reorder seeds, e.g. `3,1,2,4` lists current seeds in their new order.")
    async def seed(self, interaction: discord.Interaction, tournament_id: str, order: str) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer(ephemeral=True)

        try:
            seeds = _parse_seed_list(order)
            snap = await self.brackets.get_snapshot(tournament_id=tournament_id)
            by_seed = {p.seed_number: p.participant_id for p in snap.participants}
            unknown = [s for s in seeds if s not in by_seed]
            if unknown:
                raise ValueError(f"Unknown seed(s): {', '.join(map(str, unknown))}")
            await self.tournaments.reorder_participants(
                tournament_id=tournament_id,
                new_order=[by_seed[s] for s in seeds],
            )
            participants = await self.tournaments.list_participants(tournament_id=tournament_id)
        except (BracketError, ValueError) as ex:
            await self._fail(interaction, "Reseed failed", ex)
            return

        await interaction.followup.send(self.standings_view.render(participants, title="New seed order"), ephemeral=True)

    @tournament.command(name="start-groups", description="Move a groups-then-elimination tournament into its group stage.")
    async def start_groups(self, interaction: discord.Interaction, tournament_id: str) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer()

        try:
            update = await self.tournaments.start_group_stage(tournament_id=tournament_id)
        except BracketError as ex:
            await self._fail(interaction, "Cannot start groups", ex)
            return
        await interaction.followup.send(embed=self.embeds.info(title="Group stage started", description=f"Stage: `{update.stage.value}`"))

    # -----------------------------
    # Bracket
    # -----------------------------

    @tournament.command(name="generate", description="Generate the bracket from the current seed order.")
    async def generate(self, interaction: discord.Interaction, tournament_id: str) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer()

        try:
            await self.brackets.generate_bracket(tournament_id=tournament_id)
            snap = await self.brackets.get_snapshot(tournament_id=tournament_id)
        except BracketError as ex:
            await self._fail(interaction, "Bracket error", ex)
            return
        await interaction.followup.send(self.bracket_view.render(snap))

    @tournament.command(name="regenerate", description="Drop every match and rebuild the bracket from the current seeds.")
    async def regenerate(self, interaction: discord.Interaction, tournament_id: str) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer()

        try:
            await self.tournaments.regenerate_bracket(tournament_id=tournament_id)
            snap = await self.brackets.get_snapshot(tournament_id=tournament_id)
        except BracketError as ex:
            await self._fail(interaction, "Bracket error", ex)
            return
        await interaction.followup.send(self.bracket_view.render(snap, title=f"{snap.tournament.name} (regenerated)"))

    @tournament.command(name="bracket", description="Show the bracket.")
    @app_commands.describe(image="Attach a PNG diagram as well")
    async def bracket(self, interaction: discord.Interaction, tournament_id: str, image: bool = False) -> None:
        await interaction.response.defer()

        try:
            snap = await self.brackets.get_snapshot(tournament_id=tournament_id)
        except BracketError as ex:
            await self._fail(interaction, "Bracket error", ex)
            return

        text = self.bracket_view.render(snap)
        if image and snap.matches:
            png = self.diagram.render_png(snap, title=snap.tournament.name)
            f = discord.File(io.BytesIO(png), filename="bracket.png")
            await interaction.followup.send(text, file=f)
            return
        await interaction.followup.send(text)

    @tournament.command(name="standings", description="Wins, losses and points per participant.")
    async def standings(self, interaction: discord.Interaction, tournament_id: str) -> None:
        await interaction.response.defer()
        try:
            snap = await self.brackets.get_snapshot(tournament_id=tournament_id)
        except BracketError as ex:
            await self._fail(interaction, "Standings error", ex)
            return
        await interaction.followup.send(self.standings_view.render(snap.participants, title=f"{snap.tournament.name} standings"))

    @tournament.command(name="preview", description="Preview the bracket shape for a number of entrants.")
    async def preview(self, interaction: discord.Interaction, entrants: app_commands.Range[int, 2, 512]) -> None:
        n = int(entrants)
        skeletons = self.brackets.preview([f"S{i}" for i in range(1, n + 1)])
        lines = [f"=== {n} entrants: {len(skeletons)} matches ==="]
        for plan in bracket_structure(n):
            lines.append(f"Round {plan.round_number} - {plan.name}: {plan.matches} match(es)")
        first = [s for s in skeletons if s.round_number == 1]
        if first:
            lines.append("")
            lines.append("Round 1 pairings:")
            for s in first:
                lines.append(f"  {s.bracket_position:<6} {s.participant1_id or 'TBD'} vs {s.participant2_id or 'TBD'}")
        await interaction.response.send_message("```text\n" + "\n".join(lines)[:1900] + "\n```", ephemeral=True)

    @tournament.command(name="sync", description="Reload the bracket from the database.")
    async def sync(self, interaction: discord.Interaction, tournament_id: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            diff = await self.brackets.sync_with_store(tournament_id=tournament_id)
        except BracketError as ex:
            await self._fail(interaction, "Sync failed", ex)
            return
        await interaction.followup.send(
            embed=self.embeds.info(title="Synced", description=f"{diff} match(es) differed from the cached copy."),
            ephemeral=True,
        )

    # -----------------------------
    # Results
    # -----------------------------

    @tournament.command(name="report", description="Report a result by bracket position (e.g. R2M1).")
    @app_commands.describe(match="Bracket position like R1M3", score1="Slot 1 score", score2="Slot 2 score; the higher score wins")
    async def report(
        self,
        interaction: discord.Interaction,
        tournament_id: str,
        match: str,
        score1: app_commands.Range[int, 0, 999],
        score2: app_commands.Range[int, 0, 999],
    ) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer()

        try:
            await self._report(
                interaction,
                tournament_id=tournament_id,
                match=match,
                score1=score1,
                score2=score2,
                edit=False,
            )
        except (BracketError, ValueError) as ex:
            await self._fail(interaction, "Report failed", ex)

    @tournament.command(name="edit", description="Correct an earlier result; later rounds are reset as needed.")
    @app_commands.describe(match="Bracket position like R1M3", score1="Slot 1 score", score2="Slot 2 score; the higher score wins")
    async def edit(
        self,
        interaction: discord.Interaction,
        tournament_id: str,
        match: str,
        score1: app_commands.Range[int, 0, 999],
        score2: app_commands.Range[int, 0, 999],
    ) -> None:
        if not await self._can_manage(interaction):
            await self._deny(interaction)
            return
        await interaction.response.defer()

        try:
            await self._report(
                interaction,
                tournament_id=tournament_id,
                match=match,
                score1=score1,
                score2=score2,
                edit=True,
            )
        except (BracketError, ValueError) as ex:
            await self._fail(interaction, "Edit failed", ex)


async def setup(
    bot: commands.Bot,
    *,
    tournament_service: TournamentService,
    bracket_service: BracketService,
    embeds: Embeds,
    bracket_view: BracketView,
    standings_view: StandingsView,
    diagram: BracketDiagramRenderer,
) -> None:
    await bot.add_cog(
        TournamentCog(
            bot,
            tournament_service=tournament_service,
            bracket_service=bracket_service,
            embeds=embeds,
            bracket_view=bracket_view,
            standings_view=standings_view,
            diagram=diagram,
        )
    )
    log.info("TournamentCog loaded")
