"""
Crucible — Community Challenges for Discord
============================================
Runs one-time and recurring challenges inside a Discord server, collects
submissions, tallies votes into a points ledger, awards badge roles and
mirrors everything on a small web dashboard.

Package layout::

    crucible/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Shared presentation constants
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── cron.py        # Cron validation + next-fire calculation
    │   ├── badges.py      # Pure badge threshold selection
    │   └── periods.py     # Leaderboard period → cutoff
    ├── services/
    │   ├── errors.py          # Error taxonomy
    │   ├── settings_service.py
    │   ├── points_service.py  # Ledger, balances, leaderboards, ranks
    │   ├── badge_service.py   # Badge roles + post-commit evaluation
    │   ├── challenge_service.py
    │   ├── submission_service.py
    │   ├── vote_service.py    # Toggle voting
    │   ├── profile_service.py
    │   ├── scheduler.py       # Recurring challenge scheduler
    │   ├── discord_gateway.py # Discord implementations of collaborators
    │   └── embeds.py
    ├── bot/
    │   ├── core.py        # Bot subclass, cog loader, scheduler wiring
    │   ├── checks.py      # Admin check + interaction helpers
    │   └── cogs/          # Slash commands and reaction listeners
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine/config/JWT admin dependencies
        └── routes/        # Public + admin REST endpoints
"""

__version__ = "0.1.0"
