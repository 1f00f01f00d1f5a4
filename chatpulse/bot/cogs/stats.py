"""
chatpulse.bot.cogs.stats — Member & Guild Statistics Commands
==============================================================

Read-only commands over the analysis tables:

- /profile — points, level, rank and interaction analysis of a member
- /leaderboard — top members by points, level or message count
- /emoji-stats — guild emoji rankings and the custom-emoji report
- /my-emojis — a member's favorite emojis
- /server-stats — guild message totals and content-type distribution
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from chatpulse.database.engine import run_db
from chatpulse.engine.cache import USER_STATS
from chatpulse.errors import UserNotFound
from chatpulse.services.embeds import (
    build_emoji_report_embed,
    build_emoji_stats_embed,
    build_leaderboard_embed,
    build_profile_embed,
    build_user_emoji_embed,
)
from chatpulse.services.emoji_service import (
    generate_emoji_report,
    get_emoji_leaderboard,
    get_guild_emoji_stats,
    get_user_emoji_stats,
)
from chatpulse.services.points_service import (
    count_users,
    get_leaderboard,
    get_user,
    get_user_rank,
)
from chatpulse.services.stats_service import (
    get_guild_message_stats,
    get_message_type_distribution,
    get_top_active_users,
    get_user_detailed_stats,
    refresh_user_stats,
)

if TYPE_CHECKING:
    from chatpulse.bot.core import ChatPulseBot

logger = logging.getLogger(__name__)

_LEADERBOARD_FIELDS = {
    "points": "total_points",
    "level": "level",
    "messages": "total_messages",
}


class Stats(commands.Cog, name="Stats"):
    """Profile, leaderboard and emoji statistics commands."""

    def __init__(self, bot: ChatPulseBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # Sync DB helpers (called via run_db)
    # -------------------------------------------------------------------
    def _get_profile(self, user_id: int, guild_id: int) -> dict | None:
        if get_user(self.bot.engine, user_id) is None:
            return None
        stats_cache = self.bot.stats_cache
        try:
            # Every processed message drops this entry
            if stats_cache.get(stats_cache.key(USER_STATS, guild_id, user_id)) is None:
                refresh_user_stats(self.bot.engine, user_id, guild_id)
            stats = get_user_detailed_stats(
                self.bot.engine, user_id, guild_id,
                cache=self.bot.cache, stats_cache=stats_cache,
            )
        except UserNotFound:
            return None
        return {
            "stats": stats,
            "rank": get_user_rank(self.bot.engine, user_id),
            "total": count_users(self.bot.engine),
        }

    def _get_leaderboard(self, order_by: str, limit: int) -> list[dict]:
        field = _LEADERBOARD_FIELDS[order_by]
        return [
            {
                "name": u.display_name or u.username,
                "value": getattr(u, field),
                "level": u.level,
            }
            for u in get_leaderboard(self.bot.engine, order_by, limit)
        ]

    def _get_server_stats(self, guild_id: int) -> dict:
        return {
            "totals": get_guild_message_stats(self.bot.engine, guild_id),
            "distribution": get_message_type_distribution(self.bot.engine, guild_id),
            "top": get_top_active_users(self.bot.engine, guild_id, limit=5),
        }

    # -------------------------------------------------------------------
    # /profile
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="profile",
        description="View your (or another member's) activity profile.",
    )
    @commands.guild_only()
    @app_commands.describe(member="The member to look up (defaults to you)")
    async def profile(self, ctx: commands.Context, member: discord.Member | None = None) -> None:
        target = member or ctx.author
        data = await run_db(self._get_profile, target.id, ctx.guild.id)

        if data is None:
            await ctx.send(
                f"\U0001f50d **{target.display_name}** hasn't sent any messages yet.",
                ephemeral=True,
            )
            return

        embed = build_profile_embed(
            target.display_name,
            target.display_avatar.url,
            data["stats"],
            data["rank"],
            data["total"],
            footer=self.bot.cfg.community_name,
        )
        await ctx.send(embed=embed)

    # -------------------------------------------------------------------
    # /leaderboard
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="leaderboard",
        description="View the top members by points, level or messages.",
    )
    @app_commands.describe(sort_by="What to rank by")
    @app_commands.choices(sort_by=[
        app_commands.Choice(name="Points", value="points"),
        app_commands.Choice(name="Level", value="level"),
        app_commands.Choice(name="Messages", value="messages"),
    ])
    async def leaderboard(self, ctx: commands.Context, sort_by: str = "points") -> None:
        if sort_by not in _LEADERBOARD_FIELDS:
            await ctx.send("\u274c Sort by points, level or messages.", ephemeral=True)
            return
        limit = self.bot.cache.get_int("leaderboard.size", 10)
        rows = await run_db(self._get_leaderboard, sort_by, limit)

        if not rows:
            await ctx.send(
                "No data yet! Start chatting to appear on the leaderboard.",
                ephemeral=True,
            )
            return

        await ctx.send(embed=build_leaderboard_embed(rows, sort_by, self.bot.cfg.community_name))

    # -------------------------------------------------------------------
    # /emoji-stats
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="emoji-stats",
        description="Server emoji rankings or the custom-emoji report.",
    )
    @commands.guild_only()
    @app_commands.describe(view="Which ranking to show")
    @app_commands.choices(view=[
        app_commands.Choice(name="Most used", value="total"),
        app_commands.Choice(name="Most users", value="unique_users"),
        app_commands.Choice(name="Recently used", value="recent"),
        app_commands.Choice(name="Custom emoji report", value="report"),
    ])
    async def emoji_stats(self, ctx: commands.Context, view: str = "total") -> None:
        guild = ctx.guild
        if not self.bot.cache.get_bool("features.emoji_stats", True):
            await ctx.send("Emoji statistics are disabled on this server.", ephemeral=True)
            return

        if view == "report":
            roster = [e.name for e in guild.emojis]
            report = await run_db(generate_emoji_report, self.bot.engine, guild.id, roster)
            await ctx.send(embed=build_emoji_report_embed(guild.name, report))
            return

        if view == "total":
            rows = await run_db(
                get_guild_emoji_stats, self.bot.engine, guild.id, 10,
                stats_cache=self.bot.stats_cache,
            )
            title = "Most Used Emojis"
        elif view in ("unique_users", "recent"):
            rows = await run_db(get_emoji_leaderboard, self.bot.engine, guild.id, view, 10)
            title = "Most Shared Emojis" if view == "unique_users" else "Recently Used Emojis"
        else:
            await ctx.send("\u274c Unknown view.", ephemeral=True)
            return

        await ctx.send(embed=build_emoji_stats_embed(guild.name, rows, title))

    # -------------------------------------------------------------------
    # /my-emojis
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="my-emojis",
        description="Your (or another member's) favorite emojis on this server.",
    )
    @commands.guild_only()
    @app_commands.describe(member="The member to look up (defaults to you)")
    async def my_emojis(self, ctx: commands.Context, member: discord.Member | None = None) -> None:
        target = member or ctx.author
        stats = await run_db(get_user_emoji_stats, self.bot.engine, target.id, ctx.guild.id)
        embed = build_user_emoji_embed(target.display_name, target.display_avatar.url, stats)
        await ctx.send(embed=embed, ephemeral=member is None)

    # -------------------------------------------------------------------
    # /server-stats
    # -------------------------------------------------------------------
    @commands.hybrid_command(  # type: ignore[arg-type]
        name="server-stats",
        description="Message totals and content mix for this server.",
    )
    @commands.guild_only()
    async def server_stats(self, ctx: commands.Context) -> None:
        data = await run_db(self._get_server_stats, ctx.guild.id)
        totals = data["totals"]

        embed = discord.Embed(
            title=f"\U0001f4c8 {ctx.guild.name} Activity",
            description=(
                f"**{totals['total_messages']:,}** messages from "
                f"**{totals['unique_users']:,}** members"
            ),
            color=discord.Color.blurple(),
        )
        mix = "\n".join(
            f"{name.replace('_', ' ')}: {d['count']:,} ({d['percentage']}%)"
            for name, d in data["distribution"].items()
        )
        embed.add_field(name="Content Mix", value=mix or "No messages yet", inline=True)
        embed.add_field(
            name="Totals",
            value=(
                f"Emojis: {totals['total_emojis']:,}\n"
                f"Links: {totals['total_links']:,}\n"
                f"Images: {totals['total_images']:,}\n"
                f"Points awarded: {totals['total_points_awarded']:,}"
            ),
            inline=True,
        )
        if data["top"]:
            embed.add_field(
                name="Most Active",
                value="\n".join(
                    f"<@{row['user_id']}> — {row['message_count']:,}" for row in data["top"]
                ),
                inline=False,
            )
        embed.set_footer(text=self.bot.cfg.community_name)
        await ctx.send(embed=embed)


async def setup(bot: ChatPulseBot) -> None:
    await bot.add_cog(Stats(bot))
