"""
chatpulse.bot.cogs.admin — Admin Slash Commands
================================================

Discord slash commands for server admins:
- /reset-stats — wipe the guild's emoji counters, or all analysis data
- /adjust-points — add or remove points from a member
- /grant-coins — credit coins to a member
- /admin-log — recent audited admin actions

All commands require the guild owner, an allow-listed user id or the
configured ``admin_role_id``.  Responses are ephemeral.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from chatpulse.database.engine import run_db
from chatpulse.engine.cache import CacheEvent
from chatpulse.errors import InsufficientFunds, StorageError, UserNotFound, ValidationError
from chatpulse.services.admin_service import (
    CONFIRM_PHRASE,
    get_admin_log,
    is_reset_authorized,
    reset_guild_stats,
    validate_reset_request,
)
from chatpulse.services.embeds import build_reset_embed
from chatpulse.services.points_service import admin_adjust_points, grant_coins

if TYPE_CHECKING:
    from chatpulse.bot.core import ChatPulseBot

logger = logging.getLogger(__name__)


def is_admin():
    """Check that the invoking member may run admin commands."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: ChatPulseBot = interaction.client  # type: ignore[assignment]
        if interaction.guild is None or not interaction.user:
            return False
        role_ids = {role.id for role in getattr(interaction.user, "roles", [])}
        return is_reset_authorized(
            bot.cfg, interaction.user.id, role_ids, interaction.guild.owner_id,
        )
    return app_commands.check(predicate)


class Admin(commands.Cog, name="Admin"):
    """Server administration commands for ChatPulse."""

    def __init__(self, bot: ChatPulseBot) -> None:
        self.bot = bot

    async def cog_app_command_error(
        self,
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            message = "\u274c You don't have permission to use this command."
        else:
            logger.exception("Admin command failed", exc_info=error)
            message = "\u274c Something went wrong. Check the bot logs."
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)

    # -------------------------------------------------------------------
    # /reset-stats
    # -------------------------------------------------------------------
    @app_commands.command(name="reset-stats", description="Reset this server's statistics.")
    @app_commands.describe(
        scope="emoji = emoji counters only; all = every analysis table",
        confirmation=f"Type {CONFIRM_PHRASE} to proceed",
        reason="Why the reset is happening (audit log)",
    )
    @app_commands.choices(scope=[
        app_commands.Choice(name="Emoji counters", value="emoji"),
        app_commands.Choice(name="All statistics", value="all"),
    ])
    @app_commands.guild_only()
    @is_admin()
    async def reset_stats(
        self,
        interaction: discord.Interaction,
        scope: str,
        confirmation: str,
        reason: str | None = None,
    ) -> None:
        try:
            parsed = validate_reset_request(scope, confirmation)
        except ValidationError as exc:
            await interaction.response.send_message(f"\u274c {exc}", ephemeral=True)
            return

        await interaction.response.defer(ephemeral=True)
        try:
            deleted = await run_db(
                reset_guild_stats,
                self.bot.engine,
                interaction.guild.id,
                parsed,
                actor_id=interaction.user.id,
                stats_cache=self.bot.stats_cache,
                reason=reason,
            )
        except StorageError:
            await interaction.followup.send(
                "\u274c The reset failed and nothing was deleted. Try again later.",
                ephemeral=True,
            )
            return

        logger.info(
            "Admin %s reset %s stats in guild %s",
            interaction.user, parsed.value, interaction.guild.id,
        )
        await interaction.followup.send(
            embed=build_reset_embed(parsed.value, deleted, interaction.user.display_name),
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /adjust-points
    # -------------------------------------------------------------------
    @app_commands.command(name="adjust-points", description="Add or remove points from a member.")
    @app_commands.describe(
        member="The member to adjust",
        delta="Points to add (negative to remove)",
        reason="Reason for the adjustment",
    )
    @app_commands.guild_only()
    @is_admin()
    async def adjust_points(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        delta: int,
        reason: str = "Manual admin adjustment",
    ) -> None:
        if delta == 0:
            await interaction.response.send_message(
                "\u274c Please specify a non-zero amount.", ephemeral=True,
            )
            return
        try:
            result = await run_db(
                admin_adjust_points,
                self.bot.engine,
                member.id,
                delta,
                actor_id=interaction.user.id,
                reason=reason,
                guild_id=interaction.guild.id,
                cache=self.bot.cache,
            )
        except UserNotFound:
            await interaction.response.send_message(
                f"\u274c **{member.display_name}** has no activity record yet.", ephemeral=True,
            )
            return
        except InsufficientFunds as exc:
            await interaction.response.send_message(
                f"\u274c **{member.display_name}** only has {exc.available} points.",
                ephemeral=True,
            )
            return
        except ValidationError as exc:
            await interaction.response.send_message(f"\u274c {exc}", ephemeral=True)
            return

        self.bot.stats_cache.publish(CacheEvent.for_user(member.id, interaction.guild.id))
        sign = "+" if delta > 0 else ""
        await interaction.response.send_message(
            f"\u2705 {sign}{delta} points for **{member.display_name}** "
            f"→ {result.total_points:,} (Level {result.new_level}).",
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /grant-coins
    # -------------------------------------------------------------------
    @app_commands.command(name="grant-coins", description="Give coins to a member.")
    @app_commands.describe(
        member="The member to credit",
        amount="Coins to grant",
        reason="Reason for the grant",
    )
    @app_commands.guild_only()
    @is_admin()
    async def grant_coins_cmd(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        amount: app_commands.Range[int, 1],
        reason: str = "Manual admin grant",
    ) -> None:
        try:
            balance = await run_db(
                grant_coins,
                self.bot.engine,
                member.id,
                amount,
                actor_id=interaction.user.id,
                reason=reason,
                guild_id=interaction.guild.id,
            )
        except UserNotFound:
            await interaction.response.send_message(
                f"\u274c **{member.display_name}** has no activity record yet.", ephemeral=True,
            )
            return
        except ValidationError as exc:
            await interaction.response.send_message(f"\u274c {exc}", ephemeral=True)
            return

        await interaction.response.send_message(
            f"\u2705 Granted {amount:,} \U0001fa99 to **{member.display_name}** "
            f"(balance {balance:,}).",
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /admin-log
    # -------------------------------------------------------------------
    @app_commands.command(name="admin-log", description="Recent admin actions on this server.")
    @app_commands.guild_only()
    @is_admin()
    async def admin_log(self, interaction: discord.Interaction) -> None:
        rows = await run_db(get_admin_log, self.bot.engine, interaction.guild.id, 10)
        if not rows:
            await interaction.response.send_message("No admin actions logged yet.", ephemeral=True)
            return
        lines = [
            f"`{row.timestamp:%Y-%m-%d %H:%M}` <@{row.actor_id}> **{row.action_type}** "
            f"{row.target_table}:{row.target_id}" + (f" — {row.reason}" if row.reason else "")
            for row in rows
        ]
        embed = discord.Embed(
            title="\U0001f4dc Admin Log",
            description="\n".join(lines),
            color=discord.Color.dark_grey(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: ChatPulseBot) -> None:
    await bot.add_cog(Admin(bot))
