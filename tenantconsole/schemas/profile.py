"""Row models for the ``users`` table as returned by the REST data API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from ..domain.profile import Profile


class ProfileRow(BaseModel):
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

    def to_domain(self) -> Profile:
        return Profile(
            id=self.id,
            email=self.email,
            name=self.name,
            role=self.role,
            auth_user_id=self.auth_user_id,
            tenant_id=self.tenant_id,
            title=self.title,
            created_at=self.created_at,
            last_loggedin_at=self.last_loggedin_at,
            auth_created=self.auth_created,
        )
