"""
crucible.services.profile_service — Member profile aggregate
=============================================================

Balance, all-time rank, submission count and recent entries for one member,
read in a single session so the numbers agree with each other.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import Engine, func, select

from crucible.database.engine import get_session
from crucible.database.models import Submission
from crucible.services.points_service import RankInfo, rank_in_session, read_balance


@dataclass(slots=True)
class UserProfile:
    guild_id: int
    user_id: int
    balance: int = 0
    rank: RankInfo | None = None
    submission_count: int = 0
    recent_submissions: list[Submission] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "guild_id": str(self.guild_id),
            "user_id": str(self.user_id),
            "points": self.balance,
            "rank": self.rank.rank if self.rank else None,
            "total_ranked": self.rank.total if self.rank else None,
            "submission_count": self.submission_count,
            "recent_submissions": [
                {
                    "id": s.id,
                    "challenge_id": s.challenge_id,
                    "votes": s.votes,
                    "created_at": s.created_at.isoformat() if s.created_at else None,
                }
                for s in self.recent_submissions
            ],
        }


def get_profile(engine: Engine, guild_id: int, user_id: int, *, recent: int = 5) -> UserProfile:
    profile = UserProfile(guild_id=guild_id, user_id=user_id)
    with get_session(engine) as session:
        profile.balance = read_balance(session, guild_id, user_id)
        profile.rank = rank_in_session(session, guild_id, user_id)
        profile.submission_count = session.scalar(
            select(func.count(Submission.id)).where(
                Submission.guild_id == guild_id, Submission.user_id == user_id
            )
        ) or 0
        rows = session.scalars(
            select(Submission)
            .where(Submission.guild_id == guild_id, Submission.user_id == user_id)
            .order_by(Submission.created_at.desc(), Submission.id.desc())
            .limit(recent)
        ).all()
        for r in rows:
            session.expunge(r)
        profile.recent_submissions = list(rows)
    return profile
