"""
ChatPulse — Message Activity, Points & Emoji Statistics for Discord
====================================================================
Watches every guild message, classifies what it contains, awards
quality-weighted points, levels and coins, and keeps per-user / per-guild
emoji usage counters and interaction-style aggregates.

Package layout::

    chatpulse/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Leveling formula, regexes, presentation constants
    ├── errors.py          # Typed failure taxonomy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (users, records, emoji usage, …)
    │   └── seed.py        # Default gameplay settings
    ├── engine/
    │   ├── events.py      # MessageEvent envelope + attachment info
    │   ├── content.py     # Content classifier (emoji / link / image)
    │   ├── quality.py     # Quality score + reward multiplier
    │   ├── anti_gaming.py # Cooldown gate + redelivery guard
    │   ├── style.py       # Interaction-style classifier
    │   └── cache.py       # Settings cache + read-aggregate cache
    ├── services/
    │   ├── message_service.py  # Per-message pipeline + record sink
    │   ├── points_service.py   # Points & leveling ledger
    │   ├── emoji_service.py    # Emoji usage aggregator + reads
    │   ├── stats_service.py    # Per-guild user aggregates
    │   ├── admin_service.py    # Audited resets
    │   ├── retention_service.py
    │   ├── announcement_service.py  # Level-up announcements
    │   └── embeds.py           # Discord embed builders
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        └── cogs/
            ├── messages.py  # on_message → pipeline
            ├── stats.py     # /profile, /leaderboard, /emoji-stats, /server-stats
            ├── admin.py     # /reset-stats, /adjust-points, /grant-coins, /admin-log
            └── tasks.py     # retention + pruning loops
"""

__version__ = "0.1.0"
