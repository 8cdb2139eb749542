"""
Bearer credential providers for the content API.

The slideshow only ever asks for a token immediately before a request and
treats ``None`` as "not connected".
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import requests

from .errors import AuthenticationError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
REFRESH_MARGIN = 60  # seconds before expiry at which a token is refreshed
REQUEST_TIMEOUT = 10


class TokenBroker(ABC):

    @abstractmethod
    def get_access_token(self) -> Optional[str]:
        """Return a usable token, refreshing if needed, or None."""

    @abstractmethod
    def is_authenticated(self) -> bool:
        ...


class StaticTokenBroker(TokenBroker):
    """Serves a fixed token, e.g. one supplied through the environment."""

    def __init__(self, token: Optional[str] = None) -> None:
        self._token = token or None

    def set_token(self, token: Optional[str]) -> None:
        self._token = token or None

    def get_access_token(self) -> Optional[str]:
        return self._token

    def is_authenticated(self) -> bool:
        return self._token is not None


class OAuthTokenBroker(TokenBroker):
    """
    Refresh-token based broker.

    Keeps the last access token and its expiry. When the token is expired or
    within REFRESH_MARGIN seconds of expiring, a refresh is performed against
    the token endpoint. If the provider rejects the refresh token, the stored
    credentials are invalidated and the broker reports unauthenticated until
    new tokens are supplied.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        refresh_token: Optional[str] = None,
        *,
        token_url: str = DEFAULT_TOKEN_URL,
        user_agent: str = "python:slideshow-core:v0.1.0",
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.user_agent = user_agent
        self.session = session or requests.Session()
        self.timeout = timeout
        self._clock = clock

        self.refresh_token: Optional[str] = refresh_token
        self.access_token: Optional[str] = None
        self.expires_at: float = 0.0

    def store_tokens(self, token_data: Dict[str, Any]) -> None:
        """Remember a token response from the authorisation code exchange or a refresh."""
        self.access_token = token_data.get("access_token")
        # Providers may omit the refresh token on refresh; keep the old one.
        self.refresh_token = token_data.get("refresh_token") or self.refresh_token
        expires_in = float(token_data.get("expires_in") or 0)
        self.expires_at = self._clock() + expires_in
        logger.info(f"Stored content token, expires in {expires_in:.0f} seconds")

    def invalidate(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.expires_at = 0.0

    def is_authenticated(self) -> bool:
        return self.refresh_token is not None or self._token_is_fresh()

    def _token_is_fresh(self) -> bool:
        return self.access_token is not None and self._clock() < self.expires_at - REFRESH_MARGIN

    def get_access_token(self) -> Optional[str]:
        if self._token_is_fresh():
            return self.access_token

        if not self.refresh_token:
            return None

        try:
            self._refresh()
        except AuthenticationError as exc:
            logger.error(f"Token refresh rejected, clearing stored credentials: {exc}")
            self.invalidate()
            return None
        except requests.RequestException as exc:
            logger.warning(f"Token refresh failed: {exc}")
            return None

        return self.access_token

    def _refresh(self) -> None:
        response = self.session.post(
            self.token_url,
            data={"grant_type": "refresh_token", "refresh_token": self.refresh_token},
            auth=(self.client_id, self.client_secret),
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
        )

        if response.status_code in (400, 401, 403):
            raise AuthenticationError(f"Refresh rejected: {response.status_code}")
        if response.status_code != 200:
            raise requests.HTTPError(f"Refresh failed: {response.status_code}", response=response)

        try:
            token_data = response.json()
        except ValueError as exc:
            raise requests.RequestException("Invalid token response") from exc

        if not isinstance(token_data, dict) or not token_data.get("access_token"):
            raise AuthenticationError("Token response did not contain an access token")

        self.store_tokens(token_data)
