"""Tests for the hosted auth client, session storage and last-login notifier."""

from __future__ import annotations

import asyncio
import json
import time

import httpx
import pytest

from tenantconsole.config import Settings
from tenantconsole.gateway.errors import AuthServiceError, HostedServiceError
from tenantconsole.session.client import HostedAuthClient
from tenantconsole.session.last_login import LastLoginNotifier
from tenantconsole.session.models import AuthEvent, Identity, Session
from tenantconsole.session.runtime import console_session
from tenantconsole.session.storage import FileSessionStorage, MemorySessionStorage

ANON_KEY = "anon-key"


def _user_json(user_id: str = "auth-1", email: str = "ada@example.com") -> dict:
    return {"id": user_id, "email": email, "user_metadata": {"name": "Ada"}}


def _grant_json(access_token: str = "access-1", refresh_token: str = "refresh-1") -> dict:
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": 3600,
        "user": _user_json(),
    }


def _session(expires_at: int | None = None, refresh_token: str | None = "refresh-0") -> Session:
    return Session(
        access_token="access-0",
        refresh_token=refresh_token,
        expires_at=expires_at,
        identity=Identity(id="auth-1", email="ada@example.com"),
    )


class Recorder:
    """Mock transport handler that records requests and replays canned responses."""

    def __init__(self, routes: dict[tuple[str, str], httpx.Response]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"message": "no route"})
        canned = self.routes[key]
        return httpx.Response(canned.status_code, headers=canned.headers, content=canned.content)


def _client(recorder: Recorder, storage=None) -> HostedAuthClient:
    http = httpx.AsyncClient(base_url="http://auth.test", transport=httpx.MockTransport(recorder))
    return HostedAuthClient(http, ANON_KEY, storage or MemorySessionStorage(), owns_client=True)


@pytest.mark.asyncio
async def test_sign_in_stores_session_and_emits_signed_in() -> None:
    recorder = Recorder({("POST", "/auth/v1/token"): httpx.Response(200, json=_grant_json())})
    client = _client(recorder)
    events = []
    client.subscribe(lambda event, session: events.append((event, session)))

    session = await client.sign_in_with_password("ada@example.com", "secret")

    assert session.identity.id == "auth-1"
    assert session.identity.display_name == "Ada"
    assert session.expires_at is not None and session.expires_at > time.time()
    assert client.current_access_token() == "access-1"
    assert events == [(AuthEvent.signed_in, session)]
    request = recorder.requests[0]
    assert request.url.params["grant_type"] == "password"
    assert request.headers["apikey"] == ANON_KEY
    assert json.loads(request.content) == {"email": "ada@example.com", "password": "secret"}
    await client.aclose()


@pytest.mark.asyncio
async def test_sign_in_failure_raises_with_service_message() -> None:
    recorder = Recorder(
        {("POST", "/auth/v1/token"): httpx.Response(400, json={"error_description": "Invalid login credentials"})}
    )
    client = _client(recorder)

    with pytest.raises(AuthServiceError) as excinfo:
        await client.sign_in_with_password("ada@example.com", "wrong")

    assert excinfo.value.status_code == 400
    assert excinfo.value.message == "Invalid login credentials"
    assert client.current_session() is None
    await client.aclose()


@pytest.mark.asyncio
async def test_cached_session_returned_without_network() -> None:
    recorder = Recorder({})
    stored = _session(expires_at=int(time.time()) + 600)
    client = _client(recorder, MemorySessionStorage(stored))

    assert await client.get_cached_session() == stored
    assert recorder.requests == []
    await client.aclose()


@pytest.mark.asyncio
async def test_expired_cached_session_is_refreshed() -> None:
    recorder = Recorder(
        {("POST", "/auth/v1/token"): httpx.Response(200, json=_grant_json("access-2", "refresh-2"))}
    )
    client = _client(recorder, MemorySessionStorage(_session(expires_at=int(time.time()) - 5)))
    events = []
    client.subscribe(lambda event, session: events.append(event))

    session = await client.get_cached_session()

    assert session is not None and session.access_token == "access-2"
    assert events == [AuthEvent.token_refreshed]
    assert recorder.requests[0].url.params["grant_type"] == "refresh_token"
    assert json.loads(recorder.requests[0].content) == {"refresh_token": "refresh-0"}
    await client.aclose()


@pytest.mark.asyncio
async def test_refused_refresh_signs_out() -> None:
    recorder = Recorder(
        {("POST", "/auth/v1/token"): httpx.Response(400, json={"msg": "Invalid Refresh Token"})}
    )
    storage = MemorySessionStorage(_session(expires_at=int(time.time()) - 5))
    client = _client(recorder, storage)
    events = []
    client.subscribe(lambda event, session: events.append((event, session)))

    assert await client.get_cached_session() is None
    assert storage.load() is None
    assert events == [(AuthEvent.signed_out, None)]
    await client.aclose()


@pytest.mark.asyncio
async def test_confirm_identity_uses_stored_token() -> None:
    recorder = Recorder({("GET", "/auth/v1/user"): httpx.Response(200, json=_user_json())})
    client = _client(recorder, MemorySessionStorage(_session()))

    identity = await client.confirm_identity()

    assert identity == Identity(id="auth-1", email="ada@example.com")
    assert recorder.requests[0].headers["authorization"] == "Bearer access-0"
    await client.aclose()


@pytest.mark.asyncio
async def test_confirm_identity_without_session_raises() -> None:
    client = _client(Recorder({}))
    with pytest.raises(AuthServiceError):
        await client.confirm_identity()
    await client.aclose()


@pytest.mark.asyncio
async def test_confirm_identity_rejected_token_raises() -> None:
    recorder = Recorder({("GET", "/auth/v1/user"): httpx.Response(401, json={"msg": "invalid JWT"})})
    client = _client(recorder, MemorySessionStorage(_session()))
    with pytest.raises(AuthServiceError, match="invalid JWT"):
        await client.confirm_identity()
    await client.aclose()


@pytest.mark.asyncio
async def test_fetch_profile_maps_row() -> None:
    row = {
        "id": "user-1",
        "auth_user_id": "auth-1",
        "email": "ada@example.com",
        "name": "Ada",
        "role": "tenant_admin",
        "tenant_id": "tenant-9",
        "title": "CISO",
        "created_at": "2024-01-02T03:04:05+00:00",
        "extra_column": "ignored",
    }
    recorder = Recorder({("GET", "/rest/v1/users"): httpx.Response(200, json=[row])})
    client = _client(recorder, MemorySessionStorage(_session()))

    profile = await client.fetch_profile("auth-1")

    assert profile is not None
    assert profile.id == "user-1"
    assert profile.role == "tenant_admin"
    assert profile.tenant_id == "tenant-9"
    assert recorder.requests[0].url.params["auth_user_id"] == "eq.auth-1"
    assert recorder.requests[0].headers["authorization"] == "Bearer access-0"
    await client.aclose()


@pytest.mark.asyncio
async def test_fetch_profile_returns_none_when_missing() -> None:
    recorder = Recorder({("GET", "/rest/v1/users"): httpx.Response(200, json=[])})
    client = _client(recorder)

    assert await client.fetch_profile("auth-unknown") is None
    assert recorder.requests[0].headers["authorization"] == f"Bearer {ANON_KEY}"
    await client.aclose()


@pytest.mark.asyncio
async def test_fetch_profile_error_raises() -> None:
    recorder = Recorder({("GET", "/rest/v1/users"): httpx.Response(500, json={"message": "boom"})})
    client = _client(recorder)
    with pytest.raises(HostedServiceError, match="boom"):
        await client.fetch_profile("auth-1")
    await client.aclose()


@pytest.mark.asyncio
async def test_sign_out_clears_session_even_if_remote_fails() -> None:
    recorder = Recorder({("POST", "/auth/v1/logout"): httpx.Response(500)})
    storage = MemorySessionStorage(_session())
    client = _client(recorder, storage)
    events = []
    subscription = client.subscribe(lambda event, session: events.append(event))

    await client.sign_out()

    assert storage.load() is None
    assert events == [AuthEvent.signed_out]

    subscription.unsubscribe()
    await client.sign_out()
    assert events == [AuthEvent.signed_out]
    await client.aclose()


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_others() -> None:
    recorder = Recorder({("POST", "/auth/v1/token"): httpx.Response(200, json=_grant_json())})
    client = _client(recorder)
    seen = []

    def broken(event, session):
        raise RuntimeError("listener bug")

    client.subscribe(broken)
    client.subscribe(lambda event, session: seen.append(event))

    await client.sign_in_with_password("ada@example.com", "secret")

    assert seen == [AuthEvent.signed_in]
    await client.aclose()


def test_file_storage_round_trips_session(tmp_path) -> None:
    storage = FileSessionStorage(tmp_path / "state" / "session.json")
    session = Session(
        access_token="a",
        refresh_token="r",
        expires_at=1_900_000_000,
        identity=Identity(id="auth-1", email="ada@example.com", metadata={"name": "Ada"}),
    )

    storage.save(session)
    loaded = storage.load()

    assert loaded == session
    assert loaded.identity.metadata == {"name": "Ada"}
    assert (storage.path.stat().st_mode & 0o777) == 0o600

    storage.clear()
    assert storage.load() is None
    storage.clear()


def test_file_storage_ignores_corrupt_file(tmp_path) -> None:
    path = tmp_path / "session.json"
    path.write_text("{not json", encoding="utf-8")
    assert FileSessionStorage(path).load() is None


@pytest.mark.asyncio
async def test_last_login_notifier_posts_user_id_with_bearer() -> None:
    recorder = Recorder({("POST", "/v1/users/last-login"): httpx.Response(200, json={"ok": True})})
    http = httpx.AsyncClient(base_url="http://console.test", transport=httpx.MockTransport(recorder))
    notifier = LastLoginNotifier(http, lambda: "access-9")

    assert await notifier.record_last_login("user-1") is True

    request = recorder.requests[0]
    assert json.loads(request.content) == {"userId": "user-1"}
    assert request.headers["authorization"] == "Bearer access-9"
    await http.aclose()


@pytest.mark.asyncio
async def test_last_login_notifier_reports_rejection() -> None:
    recorder = Recorder({("POST", "/v1/users/last-login"): httpx.Response(500, json={"detail": "x"})})
    http = httpx.AsyncClient(base_url="http://console.test", transport=httpx.MockTransport(recorder))
    notifier = LastLoginNotifier(http, lambda: None)

    assert await notifier.record_last_login("user-1") is False
    assert "authorization" not in recorder.requests[0].headers
    await http.aclose()


@pytest.mark.asyncio
async def test_console_session_wires_sign_in_through_to_last_login() -> None:
    profile_row = {
        "id": "user-1",
        "auth_user_id": "auth-1",
        "email": "ada@example.com",
        "name": "Ada",
        "role": "tenant_user",
        "tenant_id": "tenant-1",
    }
    auth = Recorder(
        {
            ("POST", "/auth/v1/token"): httpx.Response(200, json=_grant_json()),
            ("GET", "/auth/v1/user"): httpx.Response(401, json={"msg": "no session"}),
            ("GET", "/rest/v1/users"): httpx.Response(200, json=[profile_row]),
        }
    )
    console = Recorder({("POST", "/v1/users/last-login"): httpx.Response(200, json={"ok": True})})
    settings = Settings(
        hosted_auth_url="http://auth.test",
        console_api_url="http://console.test",
        session_lookup_timeout=0.2,
        identity_lookup_timeout=0.2,
        auth_bootstrap_timeout=0.5,
    )

    async with console_session(
        settings,
        auth_transport=httpx.MockTransport(auth),
        console_transport=httpx.MockTransport(console),
    ) as tracker:
        state = await tracker.store.wait_initialized(timeout=2)
        assert state.identity is None

        await tracker.backend.sign_in_with_password("ada@example.com", "secret")
        for _ in range(20):
            if console.requests:
                break
            await asyncio.sleep(0.01)

        assert tracker.store.state.identity.id == "auth-1"
        assert tracker.store.state.profile.id == "user-1"

    assert len(console.requests) == 1
    assert json.loads(console.requests[0].content) == {"userId": "user-1"}
    assert console.requests[0].headers["authorization"] == "Bearer access-1"
