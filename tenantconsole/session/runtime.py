"""Application-root wiring for the client-side session machinery."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx

from ..config import Settings, get_settings
from .client import HostedAuthClient
from .last_login import LastLoginNotifier
from .storage import SessionStorage
from .store import AuthStateStore
from .tracker import BootstrapTimeouts, SessionTracker


@asynccontextmanager
async def console_session(
    settings: Settings | None = None,
    storage: SessionStorage | None = None,
    *,
    auth_transport: httpx.AsyncBaseTransport | None = None,
    console_transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[SessionTracker]:
    """Create the auth client, state store and tracker, and tear them down on exit."""
    settings = settings or get_settings()
    client = HostedAuthClient.from_settings(settings, storage, transport=auth_transport)
    console_http = httpx.AsyncClient(
        base_url=settings.console_api_url,
        timeout=httpx.Timeout(10.0, connect=5.0),
        transport=console_transport,
    )
    store = AuthStateStore()
    tracker = SessionTracker(
        client,
        LastLoginNotifier(console_http, client.current_access_token),
        store,
        BootstrapTimeouts.from_settings(settings),
    )
    try:
        await tracker.start()
        yield tracker
    finally:
        await tracker.stop()
        store.close()
        await client.aclose()
        await console_http.aclose()
