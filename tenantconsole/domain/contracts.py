"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class InviteUserInput:
    """Validated inputs required to invite a user into the console."""

    email: str
    full_name: str
    role: str
    tenant_id: str | None = None
    title: str | None = None


@dataclass(slots=True)
class DeleteUserInput:
    user_id: str
    auth_user_id: str | None = None
