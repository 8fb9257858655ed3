"""Bearer token holder with optional refresh-before-expiry."""

import time
from typing import Callable, Optional

import httpx
import structlog

from .exceptions import AuthRefreshFailed

logger = structlog.get_logger()

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Refresh this many seconds before the token actually expires
EXPIRY_MARGIN_SECONDS = 60


class TokenRefresher:
    """Hands out a bearer token, exchanging the refresh token when needed.

    Refresh is only attempted when a refresh token, client id and client
    secret are all configured; otherwise the static access token is used
    as-is. An unknown expiry counts as expired.
    """

    def __init__(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        token_url: str = GOOGLE_TOKEN_URL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._clock = clock
        self._expires_at: Optional[float] = None

    @property
    def can_refresh(self) -> bool:
        return bool(self._refresh_token and self._client_id and self._client_secret)

    @property
    def expires_at(self) -> Optional[float]:
        return self._expires_at

    def needs_refresh(self) -> bool:
        if not self.can_refresh:
            return False
        if self._expires_at is None:
            return True
        return self._clock() >= self._expires_at - EXPIRY_MARGIN_SECONDS

    async def get_token(self, http: httpx.AsyncClient) -> str:
        """Return a usable access token, refreshing first if it is stale."""
        if self.needs_refresh():
            await self._refresh(http)
        return self._access_token

    async def _refresh(self, http: httpx.AsyncClient) -> None:
        try:
            response = await http.post(
                self._token_url,
                data={
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "refresh_token": self._refresh_token,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as exc:
            raise AuthRefreshFailed(f"Token refresh request failed: {exc}") from exc

        if response.is_error:
            raise AuthRefreshFailed(
                f"Failed to refresh access token ({response.status_code}): "
                f"{response.text}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise AuthRefreshFailed("Token endpoint returned invalid JSON") from exc

        if not isinstance(data, dict) or not data.get("access_token"):
            raise AuthRefreshFailed("Token endpoint response has no access_token")

        self._access_token = data["access_token"]
        expires_in = data.get("expires_in")
        if expires_in:
            self._expires_at = self._clock() + float(expires_in)
        logger.info("Access token refreshed", expires_in=expires_in)
