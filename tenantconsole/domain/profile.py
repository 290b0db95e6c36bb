from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    superadmin = "superadmin"
    tenant_admin = "tenant_admin"
    tenant_user = "tenant_user"


TENANT_SCOPED_ROLES = frozenset({Role.tenant_admin.value, Role.tenant_user.value})


@dataclass(slots=True)
class Profile:
    """Application-level user record stored in the ``users`` table.

    ``role`` is kept as the raw string read from storage so that rows which
    break the role/tenant contract are still surfaced unchanged.
    """

    id: str
    email: str
    name: str
    role: str
    auth_user_id: str | None = None
    tenant_id: str | None = None
    title: str | None = None
    created_at: datetime | None = None
    last_loggedin_at: datetime | None = None
    auth_created: bool = False

    @property
    def is_superadmin(self) -> bool:
        return self.role == Role.superadmin.value

    @property
    def has_accepted_invitation(self) -> bool:
        """True once the user finished the invite flow or has signed in at least once."""
        return self.auth_created or self.last_loggedin_at is not None

    def effective_tenant_id(self, selected_tenant_id: str | None = None) -> str | None:
        """Return the tenant this profile is currently acting within.

        Superadmins act within whichever tenant they selected; everybody
        else is pinned to their own tenant.
        """
        if self.is_superadmin:
            return selected_tenant_id
        return self.tenant_id


ROLE_LABELS = {
    Role.superadmin.value: "Super Admin",
    Role.tenant_admin.value: "Tenant Admin",
    Role.tenant_user.value: "Tenant User",
}


def format_role(role: str) -> str:
    return ROLE_LABELS.get(role, role)


def validate_role_assignment(role: str, tenant_id: str | None) -> None:
    """Raise ``ValueError`` when a role/tenant pair breaks the profile contract."""
    if role not in {r.value for r in Role}:
        raise ValueError(f"unknown role: {role}")
    if role in TENANT_SCOPED_ROLES and not tenant_id:
        raise ValueError(f"role {role} requires a tenant")
