"""
crucible.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for **infrastructure-only** settings (Discord
identity, admin role, scheduler tuning).  Point values and the vote emoji
are per-guild and live in the ``guild_settings`` table.

Usage::

    from crucible.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.guild_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CrucibleConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    bot_prefix: str
    guild_id: int  # Primary guild snowflake (dashboard scope)

    # Dashboard
    dashboard_port: int

    # Admin
    admin_role_id: int  # Discord role required for admin commands

    # Optional
    announce_channel_id: int | None = None
    scheduler_resync_minutes: int = 15
    external_timeout_seconds: float = 30.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> CrucibleConfig:
    """Read *path* and return a :class:`CrucibleConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    return CrucibleConfig(
        community_name=raw["community_name"],
        bot_prefix=raw.get("bot_prefix", "!"),
        guild_id=int(raw["guild_id"]),
        dashboard_port=int(raw.get("dashboard_port", 8000)),
        admin_role_id=int(raw["admin_role_id"]),
        announce_channel_id=(
            int(raw["announce_channel_id"]) if raw.get("announce_channel_id") else None
        ),
        scheduler_resync_minutes=int(raw.get("scheduler_resync_minutes", 15)),
        external_timeout_seconds=float(raw.get("external_timeout_seconds", 30.0)),
    )
