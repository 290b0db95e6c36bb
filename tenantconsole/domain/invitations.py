"""Invitation bookkeeping for users created through the invite flow."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum


class InvitationStatus(str, Enum):
    pending = "pending"
    expired = "expired"
    accepted = "accepted"
    none = "none"


@dataclass(slots=True)
class Invitation:
    """Row projection of ``user_invites``; one row per invited email."""

    email: str
    invited_at: datetime
    accepted_at: datetime | None = None


def is_invitation_expired(
    invited_at: datetime, *, ttl: timedelta, now: datetime | None = None
) -> bool:
    """Return ``True`` once ``ttl`` has elapsed since the invitation was sent."""
    now = now or datetime.now(timezone.utc)
    return now - invited_at >= ttl


def invitation_status(
    invitation: Invitation | None, *, ttl: timedelta, now: datetime | None = None
) -> InvitationStatus:
    if invitation is None:
        return InvitationStatus.none
    if invitation.accepted_at is not None:
        return InvitationStatus.accepted
    if is_invitation_expired(invitation.invited_at, ttl=ttl, now=now):
        return InvitationStatus.expired
    return InvitationStatus.pending
