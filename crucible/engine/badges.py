"""
crucible.engine.badges — Badge Threshold Selection
===================================================

Pure calculation: given the configured thresholds, a balance and the roles
a member already holds, decide which roles to grant.  Badges are a
one-way ratchet, so nothing here ever returns a role to revoke.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class BadgeThreshold:
    role_id: int
    points_required: int


def roles_to_grant(
    thresholds: Iterable[BadgeThreshold],
    balance: int,
    held_role_ids: Iterable[int],
) -> list[int]:
    """Role ids whose threshold *balance* meets and which are not yet held.

    Returned in ascending threshold order so lower badges are granted first.
    """
    held = set(held_role_ids)
    earned = sorted(
        (t for t in thresholds if balance >= t.points_required and t.role_id not in held),
        key=lambda t: (t.points_required, t.role_id),
    )
    return [t.role_id for t in earned]
