"""Navigation decisions derived from the auth state."""

from __future__ import annotations

from dataclasses import dataclass

from .store import AuthState

AUTH_PREFIX = "/auth"
SIGN_IN_PATH = "/auth/signin"
DASHBOARD_PATH = "/dashboard"


@dataclass(frozen=True, slots=True)
class NavigationDecision:
    render: bool
    redirect_to: str | None = None
    remember_path: str | None = None
    clear_remembered: bool = False
    loading: bool = False


def resolve_navigation(
    state: AuthState, pathname: str | None, stored_redirect: str | None = None
) -> NavigationDecision:
    """Decide whether ``pathname`` may render for ``state`` and where to send the user otherwise.

    Signed-in users are kept off the auth pages and bounced to the path they
    originally asked for (``stored_redirect``) or the dashboard. Anonymous
    users may only see auth pages; the path they tried is handed back as
    ``remember_path`` so it can be restored after sign-in.
    """
    if not state.initialized or state.loading:
        return NavigationDecision(render=False, loading=True)

    pathname = pathname or ""
    on_auth_route = pathname.startswith(AUTH_PREFIX)

    if state.authenticated:
        if on_auth_route:
            if stored_redirect:
                return NavigationDecision(
                    render=False, redirect_to=stored_redirect, clear_remembered=True
                )
            return NavigationDecision(render=False, redirect_to=DASHBOARD_PATH)
        if pathname == "/":
            # the root page may flash while the redirect happens
            return NavigationDecision(render=True, redirect_to=DASHBOARD_PATH)
        return NavigationDecision(render=True)

    if on_auth_route:
        return NavigationDecision(render=True)
    remember = pathname if pathname and pathname != "/" else None
    return NavigationDecision(
        render=pathname == "/", redirect_to=SIGN_IN_PATH, remember_path=remember
    )
