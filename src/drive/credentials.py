from __future__ import annotations

import asyncio
import time

import httpx
from loguru import logger

from src.errors import CredentialError
from src.settings import OAuthSettings


class GoogleCredentials:
    """Access tokens minted from a long-lived OAuth2 refresh token.

    The cached token is shared by every in-flight request. Refreshing happens
    under a lock, so callers that arrive while a refresh is running wait for
    it and reuse its token instead of starting their own.
    """

    def __init__(self, settings: OAuthSettings, http: httpx.AsyncClient) -> None:
        self._settings = settings
        self._http = http
        self._lock = asyncio.Lock()
        self._token: str | None = None
        self._expires_at: float = 0.0

    def configured(self) -> bool:
        return bool(
            self._settings.client_id
            and self._settings.client_secret
            and self._settings.refresh_token
        )

    async def get_access_token(self) -> str:
        if self._fresh():
            assert self._token is not None
            return self._token

        async with self._lock:
            # another caller may have refreshed while we waited
            if self._fresh():
                assert self._token is not None
                return self._token
            await self._refresh()
            assert self._token is not None
            return self._token

    def _fresh(self) -> bool:
        return self._token is not None and time.monotonic() < self._expires_at

    async def _refresh(self) -> None:
        if not self.configured():
            raise CredentialError("Could not obtain access token: OAuth client is not configured")

        try:
            response = await self._http.post(
                self._settings.token_url,
                data={
                    "grant_type": "refresh_token",
                    "client_id": self._settings.client_id,
                    "client_secret": self._settings.client_secret,
                    "refresh_token": self._settings.refresh_token,
                },
            )
        except httpx.HTTPError as exc:
            raise CredentialError(f"Could not obtain access token: {exc}") from exc

        if response.status_code != 200:
            logger.error(
                f"Token endpoint responded with {response.status_code}: {response.text}"
            )
            raise CredentialError(
                f"Could not obtain access token: token endpoint returned {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise CredentialError("Could not obtain access token: malformed response") from exc

        token = payload.get("access_token")
        if not token:
            raise CredentialError("Could not obtain access token")

        expires_in = float(payload.get("expires_in") or 3600)
        self._token = token
        self._expires_at = time.monotonic() + max(
            expires_in - self._settings.refresh_margin, 0.0
        )
        logger.debug(f"Refreshed Drive access token, valid for {int(expires_in)}s")
