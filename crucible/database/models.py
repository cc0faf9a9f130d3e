"""
crucible.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- challenges       — Concrete challenges and recurring templates
- submissions      — User entries, cascade with their challenge
- submission_votes — One row per (submission, voter); PK is the vote guard
- points           — Materialized running balance per (guild, user)
- point_logs       — Append-only ledger; source of truth for awards
- guild_settings   — Per-guild point values and vote emoji
- badge_roles      — Point thresholds that grant a Discord role
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Crucible ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PointReason(enum.StrEnum):
    """Closed set of reasons a ledger entry may carry."""
    SUBMISSION = "SUBMISSION"
    VOTE_RECEIVED = "VOTE_RECEIVED"
    WINNER_BONUS = "WINNER_BONUS"
    ADMIN_ADD = "ADMIN_ADD"
    ADMIN_REMOVE = "ADMIN_REMOVE"
    SUBMISSION_DELETED = "SUBMISSION_DELETED"


# ---------------------------------------------------------------------------
# Challenges — concrete instances and recurring templates share one shape
# ---------------------------------------------------------------------------
class Challenge(Base):
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    created_by: Mapped[int | None] = mapped_column(BigInteger, default=None)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    channel_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    message_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    thread_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_template: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cron_schedule: Mapped[str | None] = mapped_column(String(100), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    submissions: Mapped[list[Submission]] = relationship(
        back_populates="challenge", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_challenges_guild_active", "guild_id", "is_active", "is_template"),
    )

    def __repr__(self) -> str:
        kind = "template" if self.is_template else "challenge"
        return f"<Challenge id={self.id} {kind} title={self.title!r} active={self.is_active}>"


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------
class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False
    )
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    channel_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    message_id: Mapped[int | None] = mapped_column(BigInteger, unique=True, default=None)
    thread_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    content_text: Mapped[str | None] = mapped_column(Text, default=None)
    attachment_url: Mapped[str | None] = mapped_column(String(500), default=None)
    link_url: Mapped[str | None] = mapped_column(String(500), default=None)
    votes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    challenge: Mapped[Challenge] = relationship(back_populates="submissions")
    vote_rows: Mapped[list[Vote]] = relationship(
        back_populates="submission", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_submissions_guild_user", "guild_id", "user_id"),
        Index("ix_submissions_challenge", "challenge_id"),
    )

    def __repr__(self) -> str:
        return f"<Submission id={self.id} challenge={self.challenge_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# Votes — the composite PK is the storage-level double-vote guard
# ---------------------------------------------------------------------------
class Vote(Base):
    __tablename__ = "submission_votes"

    submission_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("submissions.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    submission: Mapped[Submission] = relationship(back_populates="vote_rows")

    __table_args__ = (
        Index("ix_submission_votes_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Vote submission={self.submission_id} voter={self.user_id}>"


# ---------------------------------------------------------------------------
# Points — cached running balance, derived from point_logs
# ---------------------------------------------------------------------------
class PointBalance(Base):
    __tablename__ = "points"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("ix_points_guild_points", "guild_id", "points"),
    )

    def __repr__(self) -> str:
        return f"<PointBalance guild={self.guild_id} user={self.user_id} points={self.points}>"


# ---------------------------------------------------------------------------
# PointLog — append-only ledger
# ---------------------------------------------------------------------------
class PointLog(Base):
    __tablename__ = "point_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(30), nullable=False)
    related_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    operator_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_point_logs_guild_time", "guild_id", "created_at"),
        Index("ix_point_logs_guild_user", "guild_id", "user_id"),
        Index("ix_point_logs_related", "guild_id", "related_id"),
    )

    def __repr__(self) -> str:
        return f"<PointLog id={self.id} user={self.user_id} {self.amount:+d} {self.reason}>"


# ---------------------------------------------------------------------------
# GuildSettings — per-guild singleton
# ---------------------------------------------------------------------------
class GuildSettings(Base):
    __tablename__ = "guild_settings"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    points_per_submission: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    points_per_vote: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    vote_emoji: Mapped[str] = mapped_column(String(64), default="\U0001f44d", nullable=False)

    def __repr__(self) -> str:
        return f"<GuildSettings guild={self.guild_id}>"


# ---------------------------------------------------------------------------
# BadgeRole — role granted once a balance crosses a threshold
# ---------------------------------------------------------------------------
class BadgeRole(Base):
    __tablename__ = "badge_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    role_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    points_required: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("guild_id", "role_id", name="uq_badge_roles_guild_role"),
    )

    def __repr__(self) -> str:
        return f"<BadgeRole id={self.id} role={self.role_id} at={self.points_required}>"
