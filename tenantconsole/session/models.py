from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AuthEvent(str, Enum):
    """Event kinds pushed by the hosted auth client to its subscribers."""

    signed_in = "SIGNED_IN"
    signed_out = "SIGNED_OUT"
    token_refreshed = "TOKEN_REFRESHED"
    user_updated = "USER_UPDATED"


@dataclass(frozen=True, slots=True)
class Identity:
    """Authenticated principal as issued by the auth service."""

    id: str
    email: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def display_name(self) -> str | None:
        name = self.metadata.get("name")
        return name or None


@dataclass(frozen=True, slots=True)
class Session:
    access_token: str
    refresh_token: str | None
    expires_at: int | None
    identity: Identity

    def is_expired(self, now: float | None = None, leeway: int = 10) -> bool:
        if self.expires_at is None:
            return False
        now = time.time() if now is None else now
        return self.expires_at - leeway <= now
