"""
crucible.services.submission_service — Submissions
===================================================

Recording a submission and awarding ``points_per_submission`` happen in the
same transaction.  Admin deletion removes the row (votes cascade) and then
recalculates the author's balance from scratch, because the historical
ledger rows for the deleted entry are kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError

from crucible.database.engine import get_session
from crucible.database.models import Challenge, PointReason, Submission
from crucible.services.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from crucible.services.points_service import apply_delta_in_session, recalculate_in_session
from crucible.services.settings_service import load_settings

logger = logging.getLogger(__name__)

_UNSET = object()


@dataclass(slots=True)
class SubmissionResult:
    submission: Submission
    points_awarded: int
    balance: int


@dataclass(slots=True)
class SubmissionDeletion:
    submission: Submission
    balance: int


def _has_content(text: str | None, attachment_url: str | None, link_url: str | None) -> bool:
    return any(v and v.strip() for v in (text, attachment_url, link_url))


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

def create_submission(
    engine: Engine,
    *,
    challenge_id: int,
    guild_id: int,
    user_id: int,
    username: str,
    channel_id: int | None = None,
    message_id: int | None = None,
    thread_id: int | None = None,
    content_text: str | None = None,
    attachment_url: str | None = None,
    link_url: str | None = None,
) -> SubmissionResult:
    """Record an entry and award submission points atomically."""
    if not _has_content(content_text, attachment_url, link_url):
        raise ValidationError(
            "You must provide at least one of the following: text, link, or attachment."
        )

    with get_session(engine) as session:
        challenge = session.get(Challenge, challenge_id)
        if challenge is None or challenge.guild_id != guild_id:
            raise NotFoundError(f"Challenge #{challenge_id} was not found.")
        if challenge.is_template:
            raise ConflictError("Recurring templates do not accept submissions.")
        if not challenge.is_active:
            raise ConflictError(f"Challenge #{challenge_id} is no longer active.")

        submission = Submission(
            challenge_id=challenge_id,
            guild_id=guild_id,
            user_id=user_id,
            username=username,
            channel_id=channel_id,
            message_id=message_id,
            thread_id=thread_id,
            content_text=_clean(content_text),
            attachment_url=_clean(attachment_url),
            link_url=_clean(link_url),
            votes=0,
        )
        session.add(submission)
        try:
            session.flush()
        except IntegrityError:
            raise ConflictError("That message is already registered as a submission.") from None

        award = load_settings(session, guild_id).points_per_submission
        balance = apply_delta_in_session(
            session, guild_id, user_id, award, PointReason.SUBMISSION,
            related_id=challenge_id,
        )
        session.refresh(submission)
        session.expunge(submission)

    logger.info(
        "Submission #%d by %d on challenge #%d (+%d points)",
        submission.id, user_id, challenge_id, award,
    )
    return SubmissionResult(submission=submission, points_awarded=award, balance=balance)


def attach_submission_message(
    engine: Engine,
    submission_id: int,
    *,
    message_id: int,
    channel_id: int | None = None,
    thread_id: int | None = None,
) -> bool:
    with get_session(engine) as session:
        submission = session.get(Submission, submission_id)
        if submission is None:
            return False
        submission.message_id = message_id
        if channel_id is not None:
            submission.channel_id = channel_id
        if thread_id is not None:
            submission.thread_id = thread_id
        try:
            session.flush()
        except IntegrityError:
            raise ConflictError("That message is already registered as a submission.") from None
        return True


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_submission(engine: Engine, submission_id: int, *, guild_id: int | None = None) -> Submission:
    with get_session(engine) as session:
        submission = session.get(Submission, submission_id)
        if submission is None or (guild_id is not None and submission.guild_id != guild_id):
            raise NotFoundError(f"No submission with ID {submission_id} was found.")
        session.expunge(submission)
        return submission


def get_submission_by_message(engine: Engine, message_id: int) -> Submission | None:
    with get_session(engine) as session:
        submission = session.scalar(
            select(Submission).where(Submission.message_id == message_id)
        )
        if submission is not None:
            session.expunge(submission)
        return submission


def list_for_challenge(engine: Engine, challenge_id: int) -> list[Submission]:
    """Submissions of a challenge, most voted first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Submission)
            .where(Submission.challenge_id == challenge_id)
            .order_by(Submission.votes.desc(), Submission.id)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


# ---------------------------------------------------------------------------
# Edit / delete
# ---------------------------------------------------------------------------

def edit_submission(
    engine: Engine,
    submission_id: int,
    *,
    editor_id: int,
    content_text: str | None | object = _UNSET,
    link_url: str | None | object = _UNSET,
    attachment_url: str | None | object = _UNSET,
) -> Submission:
    """Owner-only partial edit.  Omitted fields are left untouched."""
    with get_session(engine) as session:
        submission = session.get(Submission, submission_id)
        if submission is None:
            raise NotFoundError(f"No submission with ID {submission_id} was found.")
        if submission.user_id != editor_id:
            raise AuthorizationError("You can only edit your own submissions.")

        text = submission.content_text if content_text is _UNSET else _clean(content_text)
        link = submission.link_url if link_url is _UNSET else _clean(link_url)
        attachment = (
            submission.attachment_url if attachment_url is _UNSET else _clean(attachment_url)
        )
        if not _has_content(text, attachment, link):
            raise ValidationError("A submission must keep at least some content.")

        submission.content_text = text
        submission.link_url = link
        submission.attachment_url = attachment
        session.flush()
        session.expunge(submission)

    logger.info("Submission #%d edited by %d", submission_id, editor_id)
    return submission


def delete_submission(
    engine: Engine, submission_id: int, *, guild_id: int
) -> SubmissionDeletion:
    """Admin delete; the author's balance is recalculated afterwards."""
    with get_session(engine) as session:
        submission = session.get(Submission, submission_id)
        if submission is None or submission.guild_id != guild_id:
            raise NotFoundError(
                f"No submission with ID `{submission_id}` was found in this server."
            )
        author_id = submission.user_id
        session.delete(submission)
        session.flush()
        session.expunge(submission)
        balance = recalculate_in_session(session, guild_id, author_id)

    logger.info(
        "Submission #%d deleted; user %d recalculated to %d points",
        submission_id, author_id, balance,
    )
    return SubmissionDeletion(submission=submission, balance=balance)
