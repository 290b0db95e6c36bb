"""Wire models for the hosted auth service's session and user payloads."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field

from ..session.models import Identity, Session


class UserPayload(BaseModel):
    id: str
    email: str | None = None
    user_metadata: dict[str, Any] = Field(default_factory=dict)

    def to_identity(self) -> Identity:
        return Identity(id=self.id, email=self.email, metadata=dict(self.user_metadata))


class SessionPayload(BaseModel):
    """Token grant response, also used as the persisted session format."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    expires_in: int | None = None
    expires_at: int | None = None
    user: UserPayload

    def to_session(self) -> Session:
        expires_at = self.expires_at
        if expires_at is None and self.expires_in is not None:
            expires_at = int(time.time()) + self.expires_in
        return Session(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            expires_at=expires_at,
            identity=self.user.to_identity(),
        )

    @classmethod
    def from_session(cls, session: Session) -> "SessionPayload":
        identity = session.identity
        return cls(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_at=session.expires_at,
            user=UserPayload(id=identity.id, email=identity.email, user_metadata=identity.metadata),
        )
