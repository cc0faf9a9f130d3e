"""
crucible.services.badge_service — Badge Roles & Threshold Awards
=================================================================

Badge roles are Discord roles granted automatically once a member's balance
reaches a configured threshold.  CRUD for the ``badge_roles`` table lives
here, along with :func:`evaluate_badges`, the post-commit step every point
award runs.

Evaluation talks to Discord through an injected :class:`RoleGranter`, so it
is a best-effort sync: every failure is caught, logged and reported in the
returned :class:`BadgeEvaluation`, and never reaches the point award that
triggered it.  Badges are never revoked when a balance drops.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError

from crucible.database.engine import get_session, run_db
from crucible.database.models import BadgeRole
from crucible.engine.badges import BadgeThreshold, roles_to_grant
from crucible.services.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_EXTERNAL_TIMEOUT = 30.0


class RoleGranter(Protocol):
    """Chat-platform capability used to hand out badge roles."""

    async def member_role_ids(self, guild_id: int, user_id: int) -> set[int] | None:
        """Role ids the member holds, or None if the member is gone."""
        ...

    async def grant_role(self, guild_id: int, user_id: int, role_id: int) -> None:
        ...


@dataclass(slots=True)
class BadgeEvaluation:
    """Outcome of a best-effort badge sync."""

    granted: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def add_badge_role(
    engine: Engine, *, guild_id: int, role_id: int, points_required: int
) -> BadgeRole:
    """Register a badge role.  A role can only be a badge once per guild."""
    if isinstance(points_required, bool) or not isinstance(points_required, int):
        raise ValidationError("Points required must be a whole number.")
    if points_required < 0:
        raise ValidationError("Points required cannot be negative.")

    with get_session(engine) as session:
        existing = session.scalar(
            select(BadgeRole).where(
                BadgeRole.guild_id == guild_id, BadgeRole.role_id == role_id
            )
        )
        if existing is not None:
            raise ConflictError("That role is already configured as a badge.")

        badge = BadgeRole(
            guild_id=guild_id, role_id=role_id, points_required=points_required
        )
        session.add(badge)
        try:
            session.flush()
        except IntegrityError:
            raise ConflictError("That role is already configured as a badge.") from None
        session.expunge(badge)

    logger.info(
        "Badge role %d added to guild %d at %d points",
        role_id, guild_id, points_required,
    )
    return badge


def list_badge_roles(engine: Engine, guild_id: int) -> list[BadgeRole]:
    """Badge roles for a guild, ascending by threshold."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(BadgeRole)
            .where(BadgeRole.guild_id == guild_id)
            .order_by(BadgeRole.points_required, BadgeRole.id)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def remove_badge_role(engine: Engine, badge_id: int, *, guild_id: int) -> BadgeRole:
    """Delete a badge role by id, scoped to *guild_id*."""
    with get_session(engine) as session:
        badge = session.get(BadgeRole, badge_id)
        if badge is None or badge.guild_id != guild_id:
            raise NotFoundError(f"No badge role with ID {badge_id} exists in this server.")
        session.delete(badge)
        session.flush()
        session.expunge(badge)

    logger.info("Badge role %d removed from guild %d", badge.role_id, guild_id)
    return badge


def get_badge_thresholds(engine: Engine, guild_id: int) -> list[BadgeThreshold]:
    return [
        BadgeThreshold(role_id=b.role_id, points_required=b.points_required)
        for b in list_badge_roles(engine, guild_id)
    ]


# ---------------------------------------------------------------------------
# Evaluation (post-commit, best effort)
# ---------------------------------------------------------------------------

async def evaluate_badges(
    engine: Engine,
    granter: RoleGranter | None,
    guild_id: int,
    user_id: int,
    balance: int,
    *,
    timeout: float = DEFAULT_EXTERNAL_TIMEOUT,
) -> BadgeEvaluation:
    """Grant every badge whose threshold *balance* meets.  Never raises."""
    result = BadgeEvaluation()
    if granter is None:
        return result

    try:
        thresholds = await run_db(get_badge_thresholds, engine, guild_id)
        if not thresholds:
            return result

        held = await asyncio.wait_for(
            granter.member_role_ids(guild_id, user_id), timeout
        )
        if held is None:
            logger.info(
                "Badge check skipped: user %d is no longer in guild %d",
                user_id, guild_id,
            )
            return result

        for role_id in roles_to_grant(thresholds, balance, held):
            try:
                await asyncio.wait_for(
                    granter.grant_role(guild_id, user_id, role_id), timeout
                )
                result.granted.append(role_id)
                logger.info(
                    "Granted badge role %d to user %d in guild %d (balance %d)",
                    role_id, user_id, guild_id, balance,
                )
            except Exception:
                result.failed.append(role_id)
                logger.exception(
                    "Failed to grant badge role %d to user %d in guild %d",
                    role_id, user_id, guild_id,
                )
    except Exception as exc:
        result.error = str(exc) or exc.__class__.__name__
        logger.exception(
            "Badge evaluation failed for user %d in guild %d", user_id, guild_id
        )
    return result
