"""Session bootstrap and auth state tracking for console clients.

The tracker drives an :class:`~tenantconsole.session.store.AuthStateStore`
through ``uninitialized -> loading -> initialized`` on start-up and keeps it
in sync with auth events afterwards. Lookups never raise into the caller:
timeouts and failures both resolve to an anonymous state.

Profile fetches and the last-login ping run as detached tasks. They are
best-effort and non-blocking; their failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Coroutine

from ..config import Settings
from ..domain.profile import Profile
from .backend import AuthBackend, LastLoginRecorder, Subscription
from .models import AuthEvent, Identity, Session
from .race import first_settled
from .store import AuthStateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BootstrapTimeouts:
    """Bounds, in seconds, applied while resolving the initial identity."""

    cached_session: float = 2.0
    confirm_identity: float = 2.0
    overall: float = 3.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "BootstrapTimeouts":
        return cls(
            cached_session=settings.session_lookup_timeout,
            confirm_identity=settings.identity_lookup_timeout,
            overall=settings.auth_bootstrap_timeout,
        )


class SessionTracker:
    """Keeps an auth state store consistent with the hosted auth service."""

    def __init__(
        self,
        backend: AuthBackend,
        notifier: LastLoginRecorder,
        store: AuthStateStore,
        timeouts: BootstrapTimeouts | None = None,
    ) -> None:
        self._backend = backend
        self._notifier = notifier
        self._store = store
        self._timeouts = timeouts or BootstrapTimeouts()
        self._running = False
        self._subscription: Subscription | None = None
        self._watchdog: asyncio.TimerHandle | None = None
        self._bootstrap_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        # identity id the last-login ping was sent for; None means unlatched
        self._last_login_identity: str | None = None
        # bumped per auth event; a bootstrap that started before an event is stale
        self._event_seq = 0

    @property
    def backend(self) -> AuthBackend:
        return self._backend

    @property
    def store(self) -> AuthStateStore:
        return self._store

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_login_recorded(self) -> bool:
        return self._last_login_identity is not None

    async def start(self) -> None:
        """Kick off the initial check and subscribe to auth events.

        Returns immediately; await ``store.wait_initialized()`` for the
        settled state.
        """
        if self._running:
            raise RuntimeError("session tracker already started")
        self._running = True
        loop = asyncio.get_running_loop()
        self._watchdog = loop.call_later(self._timeouts.overall, self._on_bootstrap_timeout)
        self._bootstrap_task = asyncio.create_task(self._bootstrap(self._event_seq))
        self._subscription = self._backend.subscribe(self._on_auth_event)

    async def stop(self) -> None:
        """Stop listening, cancel pending timers and detached work."""
        if not self._running:
            return
        self._running = False
        self._cancel_watchdog()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        pending = list(self._tasks)
        if self._bootstrap_task is not None:
            pending.append(self._bootstrap_task)
            self._bootstrap_task = None
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()

    async def __aenter__(self) -> "SessionTracker":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def _bootstrap(self, event_seq: int) -> None:
        identity = await self._resolve_identity()
        if not self._running:
            return
        self._cancel_watchdog()
        if self._event_seq != event_seq:
            logger.debug("discarding bootstrap result, auth events arrived while it ran")
            return
        self._apply_identity(identity)
        if identity is not None:
            self._spawn(self._refresh_profile(identity))

    async def _resolve_identity(self) -> Identity | None:
        cached = await first_settled(
            self._backend.get_cached_session(), timeout=self._timeouts.cached_session
        )
        if cached.ok and cached.value is not None:
            return cached.value.identity
        if cached.timed_out:
            logger.info(
                "cached session lookup timed out after %.1fs, confirming identity directly",
                self._timeouts.cached_session,
            )
        elif cached.error is not None:
            logger.info("cached session lookup failed, confirming identity directly: %s", cached.error)

        confirmed = await first_settled(
            self._backend.confirm_identity(), timeout=self._timeouts.confirm_identity
        )
        if confirmed.ok:
            return confirmed.value
        if confirmed.timed_out:
            logger.warning(
                "identity confirmation timed out after %.1fs", self._timeouts.confirm_identity
            )
        else:
            logger.warning("identity confirmation failed: %s", confirmed.error)
        return None

    def _on_bootstrap_timeout(self) -> None:
        self._watchdog = None
        if not self._running or self._store.state.initialized:
            return
        logger.warning(
            "auth check exceeded %.1fs, initializing with no user", self._timeouts.overall
        )
        self._store.update(identity=None, profile=None, loading=False, initialized=True)

    def _on_auth_event(self, event: AuthEvent, session: Session | None) -> None:
        if not self._running:
            return
        self._event_seq += 1
        identity = session.identity if session is not None else None
        logger.debug("auth event %s (identity=%s)", event.value, identity.id if identity else None)

        self._apply_identity(identity)

        if event is AuthEvent.signed_out or identity is None:
            self._last_login_identity = None
        if identity is None:
            return
        self._spawn(self._refresh_profile(identity, record_login=event is AuthEvent.signed_in))

    def _apply_identity(self, identity: Identity | None) -> None:
        changes: dict[str, Any] = {"identity": identity, "loading": False, "initialized": True}
        current = self._store.state.identity
        if identity is None or current is None or current.id != identity.id:
            changes["profile"] = None
        self._store.update(**changes)

    async def _refresh_profile(self, identity: Identity, record_login: bool = False) -> None:
        try:
            profile = await self._backend.fetch_profile(identity.id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("error fetching profile for identity %s", identity.id)
            profile = None

        if not self._running or not self._is_current(identity):
            logger.debug("discarding stale profile for identity %s", identity.id)
            return
        self._store.update(profile=profile)

        if record_login and profile is not None:
            self._record_last_login_once(identity, profile)

    def _record_last_login_once(self, identity: Identity, profile: Profile) -> None:
        if self._last_login_identity == identity.id:
            return
        self._last_login_identity = identity.id
        self._spawn(self._record_last_login(profile.id))

    async def _record_last_login(self, profile_id: str) -> None:
        try:
            ok = await self._notifier.record_last_login(profile_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("error updating last login for profile %s", profile_id)
            return
        if not ok:
            logger.warning("last login update rejected for profile %s", profile_id)

    def _is_current(self, identity: Identity) -> bool:
        current = self._store.state.identity
        return current is not None and current.id == identity.id

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
