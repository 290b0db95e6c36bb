"""Explicitly owned container for the console's authentication state."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable

from ..domain.profile import Profile
from .models import Identity

logger = logging.getLogger(__name__)

StateListener = Callable[["AuthState"], None]


@dataclass(frozen=True, slots=True)
class AuthState:
    """Snapshot consumed by route guards and UI components."""

    identity: Identity | None = None
    profile: Profile | None = None
    loading: bool = True
    initialized: bool = False
    display_name: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.identity is not None

    def effective_tenant_id(self, selected_tenant_id: str | None = None) -> str | None:
        if self.profile is None:
            return None
        return self.profile.effective_tenant_id(selected_tenant_id)


class AuthStateStore:
    """Holds the current :class:`AuthState` and notifies listeners on change.

    Created at the application root and handed to whoever needs it; there is
    no module-level instance. Updates replace the snapshot wholesale.
    """

    def __init__(self, initial: AuthState | None = None) -> None:
        self._state = initial or AuthState()
        self._listeners: list[StateListener] = []
        self._initialized = asyncio.Event()
        self._closed = False
        if self._state.initialized:
            self._initialized.set()

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def update(self, **changes) -> AuthState:
        """Merge ``changes`` into the current snapshot and publish the result."""
        if self._closed:
            logger.debug("ignoring auth state update on closed store: %s", sorted(changes))
            return self._state
        if "identity" in changes and "display_name" not in changes:
            identity = changes["identity"]
            changes["display_name"] = identity.display_name if identity is not None else None
        self._state = dataclasses.replace(self._state, **changes)
        if self._state.initialized:
            self._initialized.set()
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("auth state listener failed")
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_initialized(self, timeout: float | None = None) -> AuthState:
        """Block until the state is initialized, raising ``TimeoutError`` past ``timeout``."""
        await asyncio.wait_for(self._initialized.wait(), timeout)
        return self._state

    def close(self) -> None:
        self._closed = True
        self._listeners.clear()
