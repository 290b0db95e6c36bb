"""Client-side session bootstrap and auth state tracking."""

from .models import AuthEvent, Identity, Session
from .race import Settled, first_settled
from .store import AuthState, AuthStateStore
from .tracker import BootstrapTimeouts, SessionTracker

__all__ = [
    "AuthEvent",
    "AuthState",
    "AuthStateStore",
    "BootstrapTimeouts",
    "Identity",
    "Session",
    "SessionTracker",
    "Settled",
    "first_settled",
]
