"""Initial Crucible schema

Revision ID: 0b5e3c7d9a21
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0b5e3c7d9a21"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "challenges",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("created_by", sa.BigInteger(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("channel_id", sa.BigInteger(), nullable=True),
        sa.Column("message_id", sa.BigInteger(), nullable=True),
        sa.Column("thread_id", sa.BigInteger(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_template", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cron_schedule", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_challenges_guild_active", "challenges", ["guild_id", "is_active", "is_template"]
    )

    op.create_table(
        "submissions",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "challenge_id",
            sa.Integer(),
            sa.ForeignKey("challenges.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("channel_id", sa.BigInteger(), nullable=True),
        sa.Column("message_id", sa.BigInteger(), nullable=True, unique=True),
        sa.Column("thread_id", sa.BigInteger(), nullable=True),
        sa.Column("content_text", sa.Text(), nullable=True),
        sa.Column("attachment_url", sa.String(500), nullable=True),
        sa.Column("link_url", sa.String(500), nullable=True),
        sa.Column("votes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_submissions_guild_user", "submissions", ["guild_id", "user_id"])
    op.create_index("ix_submissions_challenge", "submissions", ["challenge_id"])

    op.create_table(
        "submission_votes",
        sa.Column(
            "submission_id",
            sa.Integer(),
            sa.ForeignKey("submissions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.BigInteger(), primary_key=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_submission_votes_user", "submission_votes", ["user_id"])

    op.create_table(
        "points",
        sa.Column("guild_id", sa.BigInteger(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), primary_key=True),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_points_guild_points", "points", ["guild_id", "points"])

    op.create_table(
        "point_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(30), nullable=False),
        sa.Column("related_id", sa.BigInteger(), nullable=True),
        sa.Column("operator_id", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_point_logs_guild_time", "point_logs", ["guild_id", "created_at"])
    op.create_index("ix_point_logs_guild_user", "point_logs", ["guild_id", "user_id"])
    op.create_index("ix_point_logs_related", "point_logs", ["guild_id", "related_id"])

    op.create_table(
        "guild_settings",
        sa.Column("guild_id", sa.BigInteger(), primary_key=True),
        sa.Column("points_per_submission", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("points_per_vote", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("vote_emoji", sa.String(64), nullable=False, server_default="\U0001f44d"),
    )

    op.create_table(
        "badge_roles",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("guild_id", sa.BigInteger(), nullable=False),
        sa.Column("role_id", sa.BigInteger(), nullable=False),
        sa.Column("points_required", sa.Integer(), nullable=False),
        sa.UniqueConstraint("guild_id", "role_id", name="uq_badge_roles_guild_role"),
    )


def downgrade() -> None:
    op.drop_table("badge_roles")
    op.drop_table("guild_settings")
    op.drop_index("ix_point_logs_related", table_name="point_logs")
    op.drop_index("ix_point_logs_guild_user", table_name="point_logs")
    op.drop_index("ix_point_logs_guild_time", table_name="point_logs")
    op.drop_table("point_logs")
    op.drop_index("ix_points_guild_points", table_name="points")
    op.drop_table("points")
    op.drop_index("ix_submission_votes_user", table_name="submission_votes")
    op.drop_table("submission_votes")
    op.drop_index("ix_submissions_challenge", table_name="submissions")
    op.drop_index("ix_submissions_guild_user", table_name="submissions")
    op.drop_table("submissions")
    op.drop_index("ix_challenges_guild_active", table_name="challenges")
    op.drop_table("challenges")
