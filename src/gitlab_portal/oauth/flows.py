"""OAuth 2.0 Authorization Code flow against GitLab.

Builds the authorization URL and talks to the provider's token and
userinfo endpoints.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from gitlab_portal.logging_config import get_logger
from gitlab_portal.security import AuthError, AuthErrorReason, mask_sensitive_data

logger = get_logger(__name__)

# Default HTTP timeout for OAuth requests
DEFAULT_TIMEOUT = 30.0

# Tokens count as expired this many seconds before their real expiry
TOKEN_EXPIRY_MARGIN = 5

# GitLab access tokens live for two hours
DEFAULT_EXPIRES_IN = 7200


@dataclass
class TokenRecord:
    """OAuth token record kept in the session.

    Attributes:
        access_token: Short-lived bearer credential
        refresh_token: Long-lived renewal credential
        created_at: Issue time in epoch seconds
        expires_in: Lifetime in seconds
    """

    access_token: str
    refresh_token: str | None
    created_at: int
    expires_in: int
    token_type: str = "Bearer"
    scope: str | None = None

    @property
    def expires_at(self) -> int:
        return self.created_at + self.expires_in

    def is_expired(self, now: float | None = None) -> bool:
        """Check expiry with a small safety margin.

        Args:
            now: Current time in epoch seconds (defaults to time.time())
        """
        if now is None:
            now = time.time()
        return now >= self.expires_at - TOKEN_EXPIRY_MARGIN

    @classmethod
    def from_token_response(
        cls,
        response: dict[str, Any],
        now: float | None = None,
    ) -> TokenRecord:
        """Create a TokenRecord from a token endpoint response.

        GitLab reports created_at itself; the local clock is used only
        when it is missing.

        Args:
            response: Token endpoint response
            now: Fallback issue time in epoch seconds

        Returns:
            TokenRecord instance
        """
        created_at = response.get("created_at")
        if created_at is None:
            created_at = time.time() if now is None else now

        return cls(
            access_token=response["access_token"],
            refresh_token=response.get("refresh_token"),
            created_at=int(created_at),
            expires_in=int(response.get("expires_in", DEFAULT_EXPIRES_IN)),
            token_type=response.get("token_type", "Bearer"),
            scope=response.get("scope"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenRecord:
        return cls(
            access_token=str(data["access_token"]),
            refresh_token=data.get("refresh_token"),
            created_at=int(data["created_at"]),
            expires_in=int(data["expires_in"]),
            token_type=str(data.get("token_type", "Bearer")),
            scope=data.get("scope"),
        )


class OAuth2AuthorizationCodeFlow:
    """OAuth 2.0 Authorization Code flow.

    Stateless with respect to users: the state token and the resulting
    token records live in the caller's session.
    """

    def __init__(
        self,
        authorization_url: str,
        token_url: str,
        client_id: str,
        client_secret: str | None,
        redirect_uri: str,
        scope: str,
        userinfo_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Set up the flow for one registered GitLab application.

        http_client is used as given and never closed here; without it
        a client with timeout is created on first use.
        """
        self.authorization_url = authorization_url
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.userinfo_url = userinfo_url
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Return the HTTP client, creating it on first use."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client unless it was injected."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def create_authorization_url(self, state: str) -> str:
        """Build the provider authorization URL.

        Args:
            state: Per-login token echoed back on the callback

        Returns:
            Authorization URL to redirect the user to
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "state": state,
            "scope": self.scope,
        }

        logger.debug("Created authorization URL for client %s", self.client_id)
        return f"{self.authorization_url}?{urlencode(params)}"

    async def _post_token_request(
        self,
        data: dict[str, str],
        failure_reason: AuthErrorReason,
        now: float | None,
    ) -> TokenRecord:
        client = await self._get_client()

        data = {
            **data,
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret

        logger.debug("Token request: %s", mask_sensitive_data(data))

        try:
            response = await client.post(
                self.token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error("Token request to %s failed: %s", self.token_url, e)
            raise AuthError(failure_reason, f"Token request error: {e}") from e

        if not response.is_success:
            logger.error(
                "Token request failed: %s %s - %s",
                response.status_code,
                response.reason_phrase,
                response.text,
            )
            raise AuthError(
                failure_reason,
                f"Token request failed: {response.status_code}",
            )

        try:
            return TokenRecord.from_token_response(response.json(), now=now)
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Malformed token response: %s", e)
            raise AuthError(failure_reason, f"Malformed token response: {e}") from e

    async def exchange_code_for_tokens(
        self,
        code: str,
        now: float | None = None,
    ) -> TokenRecord:
        """Exchange an authorization code for a token record.

        Args:
            code: Authorization code from callback
            now: Fallback issue time when the response has no created_at

        Returns:
            TokenRecord with access and refresh tokens

        Raises:
            AuthError: exchange_failed on non-2xx or transport errors
        """
        logger.debug("Exchanging authorization code for tokens")
        record = await self._post_token_request(
            {"grant_type": "authorization_code", "code": code},
            "exchange_failed",
            now,
        )
        logger.info("Exchanged code for tokens (scope: %s)", record.scope or "N/A")
        return record

    async def refresh_access_token(
        self,
        refresh_token: str,
        now: float | None = None,
    ) -> TokenRecord:
        """Use a refresh token to obtain a new token record.

        The returned record replaces the old one wholesale.

        Raises:
            AuthError: refresh_failed on non-2xx or transport errors
        """
        logger.debug("Refreshing access token")
        record = await self._post_token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            "refresh_failed",
            now,
        )
        logger.info("Refreshed access token")
        return record

    async def get_user_info(self, access_token: str) -> dict[str, Any]:
        """Fetch the user profile from the userinfo endpoint.

        Raises:
            AuthError: exchange_failed if the endpoint is missing or fails
        """
        if not self.userinfo_url:
            raise AuthError("exchange_failed", "Userinfo endpoint not configured")

        client = await self._get_client()

        try:
            response = await client.get(
                self.userinfo_url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
            response.raise_for_status()
            user_data: dict[str, Any] = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Userinfo fetch failed: %s %s",
                e.response.status_code,
                e.response.reason_phrase,
            )
            raise AuthError(
                "exchange_failed", f"Userinfo fetch failed: {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Userinfo fetch error: %s", e)
            raise AuthError("exchange_failed", f"Userinfo fetch error: {e}") from e

        logger.debug("Retrieved user info for: %s", user_data.get("username", "unknown"))
        return user_data
