"""
chatpulse.services.embeds — Discord embed builders
===================================================

All embed construction lives here so cogs only need to supply data —
no layout concerns.
"""

from __future__ import annotations

import discord

from chatpulse.constants import RANK_BADGES, STYLE_LABELS

_TYPE_ICONS = {
    "text_only": "\U0001f4ac",
    "emoji_rich": "\U0001f604",
    "link_share": "\U0001f517",
    "image_upload": "\U0001f5bc\ufe0f",
}


def _rank_prefix(position: int) -> str:
    return RANK_BADGES[position - 1] if 0 < position <= len(RANK_BADGES) else f"**{position}.**"


def _emoji_display(emoji_name: str, emoji_type: str, emoji_id: int | None = None) -> str:
    if emoji_type == "custom" and emoji_id:
        return f"<:{emoji_name}:{emoji_id}>"
    if emoji_type == "custom":
        return f":{emoji_name}:"
    return emoji_name


def _progress_bar(percentage: int, width: int = 10) -> str:
    filled = max(0, min(width, round(percentage / 100 * width)))
    return "█" * filled + "░" * (width - filled)


def build_level_up_embed(
    user_id: int,
    avatar_url: str,
    new_level: int,
    coins_earned: int,
) -> discord.Embed:
    """Level-up celebration with @mention."""
    description = f"<@{user_id}> reached **Level {new_level}**!"
    if coins_earned:
        description += f"\n+{coins_earned} \U0001fa99 coins awarded."
    embed = discord.Embed(
        title="\u26a1 Level Up!",
        description=description,
        color=discord.Color.gold(),
    )
    embed.set_thumbnail(url=avatar_url)
    return embed


def build_profile_embed(
    display_name: str,
    avatar_url: str,
    stats: dict,
    rank: int | None,
    total_users: int,
    footer: str,
) -> discord.Embed:
    """Profile card from :func:`~chatpulse.services.stats_service.get_user_detailed_stats`."""
    user = stats["user"]
    progress = stats["progress"]
    analysis = stats["analysis"]
    activity = stats["activity"]

    embed = discord.Embed(
        title=f"\U0001f4ca {display_name}'s Profile",
        color=discord.Color.blurple(),
    )
    embed.set_thumbnail(url=avatar_url)

    embed.add_field(name="Level", value=str(user["level"]), inline=True)
    embed.add_field(name="Points", value=f"{user['total_points']:,}", inline=True)
    embed.add_field(name="Coins", value=f"\U0001fa99 {user['coins']:,}", inline=True)
    embed.add_field(
        name="Rank",
        value=f"#{rank} of {total_users}" if rank else "Unranked",
        inline=True,
    )
    embed.add_field(name="Messages", value=f"{user['total_messages']:,}", inline=True)
    embed.add_field(
        name="Style",
        value=STYLE_LABELS.get(analysis["interaction_style"], analysis["interaction_style"]),
        inline=True,
    )

    embed.add_field(
        name="Level Progress",
        value=(
            f"{_progress_bar(progress['percentage'])} "
            f"{progress['current']}/{progress['required']} ({progress['percentage']}%)"
        ),
        inline=False,
    )

    breakdown = " | ".join(
        f"{_TYPE_ICONS.get(name, '')} {count}" for name, count in activity["counts"].items()
    )
    embed.add_field(name="Message Mix", value=breakdown or "No messages yet", inline=False)
    embed.add_field(
        name="Analysis",
        value=(
            f"Activity: **{analysis['activity_level'].replace('_', ' ')}**\n"
            f"Diversity: {analysis['content_diversity']}% | "
            f"Engagement: {analysis['engagement_score']}"
        ),
        inline=False,
    )
    embed.set_footer(text=footer)
    return embed


def build_leaderboard_embed(rows: list[dict], order_by: str, footer: str) -> discord.Embed:
    """Points / level / messages leaderboard.

    Each row carries ``name``, ``value`` and ``level``.
    """
    label = {"points": "points", "level": "level", "messages": "messages"}.get(order_by, order_by)
    lines = [
        f"{_rank_prefix(i)} **{r['name']}** — {r['value']:,} {label} (Lv. {r['level']})"
        for i, r in enumerate(rows, 1)
    ]
    embed = discord.Embed(
        title=f"\U0001f3c6 Leaderboard — Top {len(rows)} by {label}",
        description="\n".join(lines),
        color=discord.Color.gold(),
    )
    embed.set_footer(text=footer)
    return embed


def build_emoji_stats_embed(guild_name: str, rows: list[dict], title: str) -> discord.Embed:
    """Guild emoji ranking (rows from the emoji service reads)."""
    lines = [
        f"{_rank_prefix(i)} {_emoji_display(r['emoji_name'], r['emoji_type'], r.get('emoji_id'))}"
        f" — {r['total_usage']:,} uses by {r['unique_users']} "
        f"{'member' if r['unique_users'] == 1 else 'members'}"
        for i, r in enumerate(rows, 1)
    ]
    embed = discord.Embed(
        title=f"\U0001f604 {title}",
        description="\n".join(lines) or "No emoji usage recorded yet.",
        color=discord.Color.orange(),
    )
    embed.set_footer(text=guild_name)
    return embed


def build_user_emoji_embed(display_name: str, avatar_url: str, stats: dict) -> discord.Embed:
    """A member's favorite emojis and diversity figures."""
    lines = [
        f"{_rank_prefix(i)} {_emoji_display(f['emoji_name'], f['emoji_type'], f['emoji_id'])}"
        f" — {f['usage_count']:,}"
        for i, f in enumerate(stats["favorites"], 1)
    ]
    embed = discord.Embed(
        title=f"\U0001f604 {display_name}'s Emojis",
        description="\n".join(lines) or "No emojis used yet.",
        color=discord.Color.orange(),
    )
    embed.set_thumbnail(url=avatar_url)
    embed.add_field(name="Unique", value=str(stats["unique_emojis"]), inline=True)
    embed.add_field(name="Total", value=f"{stats['total_usage']:,}", inline=True)
    embed.add_field(name="Avg / emoji", value=str(stats["avg_usage_per_emoji"]), inline=True)
    return embed


def build_emoji_report_embed(guild_name: str, report: dict) -> discord.Embed:
    """Custom-emoji roster health report."""
    usage = report["usage"]
    embed = discord.Embed(
        title="\U0001f4cb Emoji Report",
        description=(
            f"**{usage['used_emojis']}/{usage['total_custom_emojis']}** custom emojis used "
            f"({usage['usage_rate']}%)"
        ),
        color=discord.Color.teal(),
    )
    if report["popular_emojis"]:
        embed.add_field(
            name="Popular",
            value="\n".join(
                f"{_emoji_display(e['emoji_name'], e['emoji_type'], e.get('emoji_id'))}"
                f" — {e['total_usage']:,}"
                for e in report["popular_emojis"]
            ),
            inline=True,
        )
    if report["unused_emojis"]:
        embed.add_field(
            name=f"Unused ({usage['unused_emojis']})",
            value=", ".join(f":{name}:" for name in report["unused_emojis"]),
            inline=True,
        )
    for rec in report["recommendations"]:
        embed.add_field(
            name=f"\U0001f4a1 {rec['type'].title()} ({rec['priority']})",
            value=rec["message"],
            inline=False,
        )
    embed.set_footer(text=guild_name)
    return embed


def build_reset_embed(scope: str, deleted: dict[str, int], actor_name: str) -> discord.Embed:
    """Confirmation shown to the admin after a guild reset."""
    lines = [f"`{table}`: {count:,} rows" for table, count in deleted.items()]
    embed = discord.Embed(
        title=f"\U0001f9f9 Statistics Reset ({scope})",
        description="\n".join(lines),
        color=discord.Color.red(),
    )
    embed.set_footer(text=f"Reset by {actor_name}")
    return embed
