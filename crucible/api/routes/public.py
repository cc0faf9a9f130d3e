"""
crucible.api.routes.public — Read-only public endpoints
========================================================

Snowflake ids are serialized as strings so JavaScript clients don't lose
precision.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from crucible.api.deps import get_engine, get_guild_id
from crucible.constants import DEFAULT_LEADERBOARD_LIMIT, MAX_LEADERBOARD_LIMIT
from crucible.database.models import Challenge, Submission
from crucible.engine.periods import resolve_period
from crucible.services import challenge_service, points_service, submission_service
from crucible.services.profile_service import get_profile

router = APIRouter(tags=["public"])

EngineDep = Annotated[Engine, Depends(get_engine)]
GuildDep = Annotated[int, Depends(get_guild_id)]


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------
def _sid(value: int | None) -> str | None:
    return str(value) if value is not None else None


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def challenge_dict(c: Challenge) -> dict:
    return {
        "id": c.id,
        "guild_id": _sid(c.guild_id),
        "title": c.title,
        "description": c.description,
        "type": c.type,
        "created_by": _sid(c.created_by),
        "starts_at": _iso(c.starts_at),
        "ends_at": _iso(c.ends_at),
        "channel_id": _sid(c.channel_id),
        "message_id": _sid(c.message_id),
        "thread_id": _sid(c.thread_id),
        "is_active": c.is_active,
        "is_template": c.is_template,
        "cron_schedule": c.cron_schedule,
        "created_at": _iso(c.created_at),
    }


def submission_dict(s: Submission) -> dict:
    return {
        "id": s.id,
        "challenge_id": s.challenge_id,
        "user_id": _sid(s.user_id),
        "username": s.username,
        "content_text": s.content_text,
        "attachment_url": s.attachment_url,
        "link_url": s.link_url,
        "votes": s.votes,
        "message_id": _sid(s.message_id),
        "created_at": _iso(s.created_at),
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("/status")
def get_status(engine: EngineDep, guild_id: GuildDep):
    return {
        "ok": True,
        "guild_id": str(guild_id),
        "active_challenges": len(challenge_service.list_active_challenges(engine, guild_id)),
        "recurring_templates": len(challenge_service.list_templates(engine, guild_id)),
    }


@router.get("/challenges")
def list_challenges(engine: EngineDep, guild_id: GuildDep):
    """Open challenges, newest first."""
    return [challenge_dict(c) for c in challenge_service.list_active_challenges(engine, guild_id)]


@router.get("/challenges/{challenge_id}")
def get_challenge(challenge_id: int, engine: EngineDep, guild_id: GuildDep):
    challenge = challenge_service.get_challenge(engine, challenge_id, guild_id=guild_id)
    data = challenge_dict(challenge)
    data["submission_count"] = challenge_service.count_submissions(engine, challenge_id)
    return data


@router.get("/challenges/{challenge_id}/submissions")
def list_submissions(challenge_id: int, engine: EngineDep, guild_id: GuildDep):
    challenge_service.get_challenge(engine, challenge_id, guild_id=guild_id)
    return [
        submission_dict(s) for s in submission_service.list_for_challenge(engine, challenge_id)
    ]


@router.get("/leaderboard")
def get_leaderboard(
    engine: EngineDep,
    guild_id: GuildDep,
    period: str = "all-time",
    limit: int = Query(DEFAULT_LEADERBOARD_LIMIT, ge=1, le=MAX_LEADERBOARD_LIMIT),
):
    resolved = resolve_period(period)
    entries = points_service.get_leaderboard(engine, guild_id, limit, resolved)
    return {
        "period": resolved.value,
        "entries": [
            {"rank": i + 1, "user_id": str(e.user_id), "points": e.points}
            for i, e in enumerate(entries)
        ],
    }


@router.get("/users/{user_id}")
def get_user_profile(user_id: int, engine: EngineDep, guild_id: GuildDep):
    return get_profile(engine, guild_id, user_id).to_dict()
