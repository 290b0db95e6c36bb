from __future__ import annotations

import logging
from typing import Callable

import httpx

logger = logging.getLogger(__name__)


class LastLoginNotifier:
    """Posts last-login pings to the console API on behalf of the signed-in user."""

    path = "/v1/users/last-login"

    def __init__(
        self, http_client: httpx.AsyncClient, token_provider: Callable[[], str | None]
    ) -> None:
        self._http = http_client
        self._token_provider = token_provider

    async def record_last_login(self, profile_id: str) -> bool:
        """Return whether the console accepted the update; the body is ignored."""
        headers: dict[str, str] = {}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        response = await self._http.post(self.path, json={"userId": profile_id}, headers=headers)
        if not response.is_success:
            logger.debug("last login update for %s returned %s", profile_id, response.status_code)
        return response.is_success
