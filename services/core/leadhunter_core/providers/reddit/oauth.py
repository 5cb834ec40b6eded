"""Reddit OAuth token endpoint client.

Only the refresh grant is needed at runtime: tenants connect their
account elsewhere and the stored refresh token is exchanged for fresh
access tokens by the credential manager.

Usage:
    client = RedditOAuthClient(client_id, client_secret, user_agent)
    tokens = await client.refresh_access_token(refresh_token)
    tokens.access_token, tokens.expires_in
"""

from dataclasses import dataclass
from typing import Optional

import httpx


class OAuthError(Exception):
    """Raised when the token endpoint refuses a refresh."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class TokenResponse:
    """Parsed token endpoint response."""

    access_token: str
    expires_in: int
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


class RedditOAuthClient:
    """Client for Reddit's OAuth2 token endpoint."""

    TOKEN_URL = "https://www.reddit.com/api/v1/access_token"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        user_agent: str,
        timeout: float = 20.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.user_agent = user_agent
        self.timeout = timeout

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Refresh an access token using a refresh token.

        Raises:
            OAuthError: If the refresh is rejected or the endpoint is unreachable.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.TOKEN_URL,
                    data={
                        "grant_type": "refresh_token",
                        "refresh_token": refresh_token,
                    },
                    auth=(self.client_id, self.client_secret),
                    headers={"User-Agent": self.user_agent},
                )
        except httpx.HTTPError as e:
            raise OAuthError(f"Token refresh request failed: {e}") from e

        if response.status_code != 200:
            try:
                error_msg = response.json().get("error", "Unknown error")
            except ValueError:
                error_msg = response.text[:200]
            raise OAuthError(f"Token refresh failed: {error_msg}", response.status_code)

        data = response.json()
        if "access_token" not in data:
            raise OAuthError(f"Token refresh failed: {data.get('error', 'no access_token')}")

        return TokenResponse(
            access_token=data["access_token"],
            expires_in=int(data.get("expires_in", 3600)),
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
        )
