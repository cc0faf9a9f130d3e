"""
crucible.api.routes.admin — Admin endpoints (JWT‑protected)
============================================================

The API process has no Discord connection.  Mutations here commit to the
database only: badge roles are not granted on adjustments made through the
dashboard (the next award in the bot catches up), challenges created here
are not announced, and recurring templates are picked up by the bot's
scheduler on its next resync.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from crucible.api.deps import (
    admin_operator_id,
    get_current_admin,
    get_engine,
    get_guild_id,
)
from crucible.api.routes.public import challenge_dict, submission_dict
from crucible.services import (
    badge_service,
    challenge_service,
    points_service,
    settings_service,
    submission_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

EngineDep = Annotated[Engine, Depends(get_engine)]
GuildDep = Annotated[int, Depends(get_guild_id)]
AdminDep = Annotated[dict, Depends(get_current_admin)]


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ChallengeCreate(BaseModel):
    title: str
    description: str = ""
    type: str
    channel_id: int | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    cron_schedule: str | None = None


class WinnerPick(BaseModel):
    winner_id: int
    bonus_points: int = Field(5, ge=1)


class SettingsUpdate(BaseModel):
    points_per_submission: int | None = None
    points_per_vote: int | None = None
    vote_emoji: str | None = None


class BadgeCreate(BaseModel):
    role_id: int
    points_required: int


class PointsAdjust(BaseModel):
    user_id: int
    amount: int


def _badge_dict(b) -> dict:
    return {"id": b.id, "role_id": str(b.role_id), "points_required": b.points_required}


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------
@router.get("/templates")
def list_templates(engine: EngineDep, guild_id: GuildDep, admin: AdminDep):
    return [
        challenge_dict(t)
        for t in challenge_service.list_templates(engine, guild_id, include_cancelled=True)
    ]


@router.post("/challenges", status_code=201)
def create_challenge(body: ChallengeCreate, engine: EngineDep, guild_id: GuildDep, admin: AdminDep):
    challenge = challenge_service.create_challenge(
        engine,
        guild_id=guild_id,
        title=body.title,
        description=body.description,
        type=body.type,
        created_by=admin_operator_id(admin),
        channel_id=body.channel_id,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        is_template=body.cron_schedule is not None,
        cron_schedule=body.cron_schedule,
    )
    return {"ok": True, "challenge": challenge_dict(challenge)}


@router.post("/challenges/{challenge_id}/close")
def close_challenge(challenge_id: int, engine: EngineDep, guild_id: GuildDep, admin: AdminDep):
    challenge = challenge_service.close_challenge(engine, challenge_id, guild_id=guild_id)
    logger.info("Challenge #%d closed via dashboard by %s", challenge_id, admin.get("sub"))
    return {"ok": True, "challenge": challenge_dict(challenge)}


@router.post("/challenges/{challenge_id}/winner")
def pick_winner(
    challenge_id: int, body: WinnerPick, engine: EngineDep, guild_id: GuildDep, admin: AdminDep
):
    result = challenge_service.select_winner(
        engine,
        challenge_id,
        guild_id=guild_id,
        winner_id=body.winner_id,
        bonus_points=body.bonus_points,
        operator_id=admin_operator_id(admin),
    )
    return {
        "ok": True,
        "challenge": challenge_dict(result.challenge),
        "winner_id": str(result.winner_id),
        "bonus": result.bonus,
        "balance": result.balance,
    }


@router.delete("/challenges/{challenge_id}")
def delete_challenge(
    challenge_id: int,
    engine: EngineDep,
    guild_id: GuildDep,
    admin: AdminDep,
    reverse_points: bool = Query(False),
):
    summary = challenge_service.delete_challenge(
        engine, challenge_id, guild_id=guild_id, reverse_points=reverse_points
    )
    logger.info(
        "Challenge #%d deleted via dashboard by %s (reverse_points=%s)",
        challenge_id, admin.get("sub"), reverse_points,
    )
    return {
        "ok": True,
        "challenge_id": summary.challenge_id,
        "was_template": summary.was_template,
        "submissions_deleted": summary.submissions_deleted,
        "reversed_points": {str(k): v for k, v in summary.reversed_points.items()},
    }


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------
@router.delete("/submissions/{submission_id}")
def delete_submission(submission_id: int, engine: EngineDep, guild_id: GuildDep, admin: AdminDep):
    deletion = submission_service.delete_submission(engine, submission_id, guild_id=guild_id)
    return {
        "ok": True,
        "submission": submission_dict(deletion.submission),
        "author_balance": deletion.balance,
    }


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@router.get("/settings")
def get_settings(engine: EngineDep, guild_id: GuildDep, admin: AdminDep):
    return settings_service.get_guild_settings(engine, guild_id).to_dict()


@router.patch("/settings")
def update_settings(body: SettingsUpdate, engine: EngineDep, guild_id: GuildDep, admin: AdminDep):
    snapshot = settings_service.update_guild_settings(
        engine,
        guild_id,
        points_per_submission=body.points_per_submission,
        points_per_vote=body.points_per_vote,
        vote_emoji=body.vote_emoji,
    )
    return {"ok": True, "settings": snapshot.to_dict()}


# ---------------------------------------------------------------------------
# Badge roles
# ---------------------------------------------------------------------------
@router.get("/badges")
def list_badges(engine: EngineDep, guild_id: GuildDep, admin: AdminDep):
    return [_badge_dict(b) for b in badge_service.list_badge_roles(engine, guild_id)]


@router.post("/badges", status_code=201)
def add_badge(body: BadgeCreate, engine: EngineDep, guild_id: GuildDep, admin: AdminDep):
    badge = badge_service.add_badge_role(
        engine, guild_id=guild_id, role_id=body.role_id, points_required=body.points_required
    )
    return {"ok": True, "badge": _badge_dict(badge)}


@router.delete("/badges/{badge_id}")
def remove_badge(badge_id: int, engine: EngineDep, guild_id: GuildDep, admin: AdminDep):
    badge = badge_service.remove_badge_role(engine, badge_id, guild_id=guild_id)
    return {"ok": True, "badge": _badge_dict(badge)}


# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------
@router.post("/points/adjust")
def adjust_points(body: PointsAdjust, engine: EngineDep, guild_id: GuildDep, admin: AdminDep):
    balance = points_service.adjust_points(
        engine, guild_id, body.user_id, body.amount, operator_id=admin_operator_id(admin)
    )
    return {"ok": True, "user_id": str(body.user_id), "balance": balance}


@router.post("/points/recalculate/{user_id}")
def recalculate(user_id: int, engine: EngineDep, guild_id: GuildDep, admin: AdminDep):
    balance = points_service.recalculate(engine, guild_id, user_id)
    return {"ok": True, "user_id": str(user_id), "balance": balance}


@router.get("/points/history/{user_id}")
def point_history(
    user_id: int,
    engine: EngineDep,
    guild_id: GuildDep,
    admin: AdminDep,
    limit: int = Query(20, ge=1, le=100),
):
    rows = points_service.get_point_history(engine, guild_id, user_id, limit)
    return [
        {
            "id": r.id,
            "amount": r.amount,
            "reason": r.reason,
            "related_id": r.related_id,
            "operator_id": str(r.operator_id) if r.operator_id is not None else None,
            "created_at": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]
