from __future__ import annotations

import httpx


class HostedServiceError(Exception):
    """The hosted auth/database service rejected a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthServiceError(HostedServiceError):
    """Raised by session-level auth calls (no session, bad token, refused grant)."""


def error_from_response(
    response: httpx.Response, error_cls: type[HostedServiceError] = HostedServiceError
) -> HostedServiceError:
    """Build an error from a non-2xx response, preferring the service's own message."""
    message = f"hosted service returned {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("msg", "error_description", "message", "error"):
            if body.get(key):
                message = str(body[key])
                break
    return error_cls(message, status_code=response.status_code)
