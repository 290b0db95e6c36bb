from __future__ import annotations


class UserNotFound(ValueError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"user {user_id} not found")
        self.user_id = user_id


class PermissionDenied(ValueError):
    pass


class InvitationRejected(ValueError):
    """The hosted auth service refused to send an invitation."""
