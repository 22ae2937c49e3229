"""Google OAuth: sign-in URL, code exchange, profile and token refresh."""

import logging
import time
from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import urlencode

import httpx

from prdoc.config import Settings
from prdoc.errors import UpstreamError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

SCOPES = [
    "openid",
    "email",
    "profile",
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/documents",
]

_DEFAULT_EXPIRES_IN = 3600


@dataclass(frozen=True)
class RefreshedToken:
    access_token: str
    expires_at: int
    refresh_token: str


@dataclass(frozen=True)
class RefreshFailure:
    """Refresh did not produce a token.

    ``rejected`` means Google answered with an error (usually a revoked or
    expired grant, so the user must consent again). ``network`` means the
    token endpoint could not be reached and a later attempt may succeed.
    """

    reason: Literal["rejected", "network"]
    status_code: int | None = None
    error: str | None = None


RefreshResult = RefreshedToken | RefreshFailure


class GoogleOAuthClient:
    """Thin client over the Google OAuth 2.0 endpoints."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def redirect_uri(self) -> str:
        return f"{self._settings.base_url.rstrip('/')}/api/auth/callback/google"

    def build_authorize_url(self, state: str) -> str:
        params = {
            "client_id": self._settings.google_client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Exchange an authorization code for tokens.

        Returns the raw token response with ``expires_at`` (epoch seconds) added.
        """
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self._settings.google_client_id,
                    "client_secret": self._settings.google_client_secret.get_secret_value(),
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": self.redirect_uri,
                },
            )

        if response.status_code != 200:
            logger.error("Google token exchange failed: %s", response.text[:500])
            raise UpstreamError("Google sign-in failed", status_code=400, provider="google")

        data = response.json()
        data["expires_at"] = int(time.time()) + int(data.get("expires_in", _DEFAULT_EXPIRES_IN))
        return data

    async def fetch_userinfo(self, access_token: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )

        if response.status_code != 200:
            logger.error("Google userinfo request failed: %d", response.status_code)
            raise UpstreamError("Failed to fetch Google profile", status_code=400, provider="google")
        return response.json()

    async def refresh_access_token(self, refresh_token: str) -> RefreshResult:
        """Mint a new access token from a refresh token.

        Never raises. Google does not always rotate refresh tokens, so when
        the response omits one the token that was passed in is kept.
        """
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "client_id": self._settings.google_client_id,
                        "client_secret": self._settings.google_client_secret.get_secret_value(),
                        "grant_type": "refresh_token",
                        "refresh_token": refresh_token,
                    },
                )
        except httpx.HTTPError as e:
            logger.error("Error refreshing Google token: %s", type(e).__name__)
            return RefreshFailure(reason="network")

        if response.status_code < 200 or response.status_code >= 300:
            error = None
            try:
                error = response.json().get("error")
            except ValueError:
                pass
            logger.error("Failed to refresh Google token: %d %s", response.status_code, error)
            return RefreshFailure(reason="rejected", status_code=response.status_code, error=error)

        data = response.json()
        access_token = data.get("access_token")
        if not access_token:
            logger.error("Google refresh response missing access_token")
            return RefreshFailure(reason="rejected", status_code=response.status_code, error="missing_access_token")

        return RefreshedToken(
            access_token=access_token,
            expires_at=int(time.time()) + int(data.get("expires_in", _DEFAULT_EXPIRES_IN)),
            refresh_token=data.get("refresh_token") or refresh_token,
        )


def get_google_oauth_client(settings: Settings) -> GoogleOAuthClient:
    return GoogleOAuthClient(settings)
