"""Service-role client for the hosted auth service's admin endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from .errors import error_from_response

logger = logging.getLogger(__name__)


class AuthAdminGateway:
    """Invites, looks up and deletes auth users using the service-role key.

    Every call raises :class:`~tenantconsole.gateway.errors.HostedServiceError`
    when the service answers with a non-2xx status.
    """

    def __init__(self, http_client: httpx.Client, service_key: str) -> None:
        self._http = http_client
        self._headers = {"apikey": service_key, "Authorization": f"Bearer {service_key}"}

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.BaseTransport | None = None
    ) -> "AuthAdminGateway":
        http_client = httpx.Client(
            base_url=settings.hosted_auth_url,
            timeout=httpx.Timeout(15.0, connect=5.0),
            transport=transport,
        )
        return cls(http_client, settings.hosted_auth_service_key)

    def invite_user_by_email(self, email: str, *, data: dict[str, Any], redirect_to: str) -> str:
        """Create an invited auth user and return its id; the service mails the invite."""
        response = self._http.post(
            "/auth/v1/invite",
            params={"redirect_to": redirect_to},
            json={"email": email, "data": data},
            headers=self._headers,
        )
        if not response.is_success:
            raise error_from_response(response)
        user_id = response.json().get("id")
        if not user_id:
            raise error_from_response(response)
        logger.info("invited auth user %s", user_id)
        return user_id

    def get_user(self, auth_user_id: str) -> dict[str, Any] | None:
        response = self._http.get(f"/auth/v1/admin/users/{auth_user_id}", headers=self._headers)
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise error_from_response(response)
        return response.json()

    def delete_user(self, auth_user_id: str) -> None:
        response = self._http.delete(f"/auth/v1/admin/users/{auth_user_id}", headers=self._headers)
        if not response.is_success:
            raise error_from_response(response)
        logger.info("deleted auth user %s", auth_user_id)

    def close(self) -> None:
        self._http.close()
