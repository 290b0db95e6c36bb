"""Async client for the hosted auth service (``/auth/v1``) and its data API (``/rest/v1``)."""

from __future__ import annotations

import logging

import httpx

from ..config import Settings
from ..domain.profile import Profile
from ..gateway.errors import AuthServiceError, error_from_response
from ..schemas import ProfileRow, SessionPayload, UserPayload
from .backend import AuthCallback
from .models import AuthEvent, Identity, Session
from .storage import MemorySessionStorage, SessionStorage

logger = logging.getLogger(__name__)


class _Subscription:
    def __init__(self, listeners: list[AuthCallback], callback: AuthCallback) -> None:
        self._listeners = listeners
        self._callback = callback

    def unsubscribe(self) -> None:
        if self._callback in self._listeners:
            self._listeners.remove(self._callback)


class HostedAuthClient:
    """Session-aware client that broadcasts auth events to subscribers."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        anon_key: str,
        storage: SessionStorage | None = None,
        *,
        owns_client: bool = False,
    ) -> None:
        self._http = http_client
        self._anon_key = anon_key
        self._storage = storage or MemorySessionStorage()
        self._owns_client = owns_client
        self._listeners: list[AuthCallback] = []

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        storage: SessionStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "HostedAuthClient":
        http_client = httpx.AsyncClient(
            base_url=settings.hosted_auth_url,
            timeout=httpx.Timeout(10.0, connect=5.0),
            transport=transport,
        )
        return cls(http_client, settings.hosted_auth_anon_key, storage, owns_client=True)

    def current_session(self) -> Session | None:
        return self._storage.load()

    def current_access_token(self) -> str | None:
        session = self._storage.load()
        return session.access_token if session is not None else None

    def subscribe(self, callback: AuthCallback) -> _Subscription:
        self._listeners.append(callback)
        return _Subscription(self._listeners, callback)

    async def get_cached_session(self) -> Session | None:
        """Return the stored session, refreshing it first when it has expired."""
        session = self._storage.load()
        if session is None or not session.is_expired():
            return session
        if not session.refresh_token:
            self._drop_session("stored session expired without a refresh token")
            return None
        try:
            return await self._refresh(session.refresh_token)
        except AuthServiceError as exc:
            self._drop_session(f"session refresh refused: {exc.message}")
            return None

    async def confirm_identity(self) -> Identity:
        """Ask the auth service who the stored access token belongs to."""
        session = self._storage.load()
        if session is None:
            raise AuthServiceError("no stored session")
        response = await self._http.get(
            "/auth/v1/user", headers=self._headers(session.access_token)
        )
        if response.status_code != 200:
            raise error_from_response(response, AuthServiceError)
        return UserPayload.model_validate(response.json()).to_identity()

    async def fetch_profile(self, auth_user_id: str) -> Profile | None:
        response = await self._http.get(
            "/rest/v1/users",
            params={"select": "*", "auth_user_id": f"eq.{auth_user_id}", "limit": "1"},
            headers=self._headers(self.current_access_token()),
        )
        if response.status_code != 200:
            raise error_from_response(response)
        rows = response.json()
        if not rows:
            return None
        return ProfileRow.model_validate(rows[0]).to_domain()

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        response = await self._http.post(
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._headers(),
        )
        if response.status_code != 200:
            raise error_from_response(response, AuthServiceError)
        session = SessionPayload.model_validate(response.json()).to_session()
        self._storage.save(session)
        self._emit(AuthEvent.signed_in, session)
        return session

    async def refresh_session(self) -> Session:
        session = self._storage.load()
        if session is None or not session.refresh_token:
            raise AuthServiceError("no refreshable session")
        return await self._refresh(session.refresh_token)

    async def sign_out(self) -> None:
        """Revoke the session remotely when possible and always forget it locally."""
        session = self._storage.load()
        if session is not None:
            try:
                response = await self._http.post(
                    "/auth/v1/logout", headers=self._headers(session.access_token)
                )
                if not response.is_success:
                    logger.warning("remote sign-out returned %s", response.status_code)
            except httpx.HTTPError as exc:
                logger.warning("remote sign-out failed: %s", exc)
        self._storage.clear()
        self._emit(AuthEvent.signed_out, None)

    async def aclose(self) -> None:
        self._listeners.clear()
        if self._owns_client:
            await self._http.aclose()

    async def _refresh(self, refresh_token: str) -> Session:
        response = await self._http.post(
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
            headers=self._headers(),
        )
        if response.status_code != 200:
            raise error_from_response(response, AuthServiceError)
        session = SessionPayload.model_validate(response.json()).to_session()
        self._storage.save(session)
        self._emit(AuthEvent.token_refreshed, session)
        return session

    def _drop_session(self, reason: str) -> None:
        logger.info("%s; signing out", reason)
        self._storage.clear()
        self._emit(AuthEvent.signed_out, None)

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {access_token or self._anon_key}",
        }

    def _emit(self, event: AuthEvent, session: Session | None) -> None:
        for callback in list(self._listeners):
            try:
                callback(event, session)
            except Exception:
                logger.exception("auth event subscriber failed on %s", event.value)
