"""Shared schema exports."""

from .auth import SessionPayload, UserPayload
from .profile import ProfileRow

__all__ = [
    "ProfileRow",
    "SessionPayload",
    "UserPayload",
]
