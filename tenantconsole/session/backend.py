"""Collaborator interfaces the session tracker depends on."""

from __future__ import annotations

from typing import Callable, Protocol

from ..domain.profile import Profile
from .models import AuthEvent, Identity, Session

AuthCallback = Callable[[AuthEvent, "Session | None"], None]


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class AuthBackend(Protocol):
    """Client surface of the hosted auth/database service."""

    async def get_cached_session(self) -> Session | None: ...

    async def confirm_identity(self) -> Identity: ...

    def subscribe(self, callback: AuthCallback) -> Subscription: ...

    async def fetch_profile(self, auth_user_id: str) -> Profile | None: ...


class LastLoginRecorder(Protocol):
    async def record_last_login(self, profile_id: str) -> bool: ...
