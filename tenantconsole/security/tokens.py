"""Verification of access tokens minted by the hosted auth service."""

from __future__ import annotations

from typing import Any

import jwt

from ..config import get_settings


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a hosted-auth JWT returning its claims.

    Parameters
    ----------
    token:
        Bearer token taken from the ``Authorization`` header.

    Returns
    -------
    dict[str, Any]
        The verified claims; ``sub`` holds the auth user id.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is malformed, expired, signed with another
        secret or issued for another audience.
    """

    settings = get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        audience=settings.jwt_audience,
        options={"require": ["sub", "exp"]},
    )


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
