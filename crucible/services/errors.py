"""
crucible.services.errors — Caller-facing error taxonomy
========================================================

Every service raises one of these for an expected failure.  Each carries a
human-readable message and a stable ``kind`` the bot and the API use to
pick a response.  Storage failures (``SQLAlchemyError``) are not wrapped and
propagate as internal errors.
"""

from __future__ import annotations


class CrucibleError(Exception):
    """Base exception for expected, caller-facing failures."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CrucibleError):
    """Bad input: invalid cron string, missing content, unknown reason."""

    kind = "validation"


class ConflictError(CrucibleError):
    """The request clashes with current state; nothing was changed."""

    kind = "conflict"


class SelfVoteError(ConflictError):
    """A user tried to vote for their own submission."""

    kind = "self_vote"


class DuplicateVoteError(ConflictError):
    """A concurrent request already recorded this vote."""

    kind = "duplicate_vote"


class NotFoundError(CrucibleError):
    """Unknown challenge, submission or badge id."""

    kind = "not_found"


class AuthorizationError(CrucibleError):
    """The caller may not perform this operation."""

    kind = "forbidden"
