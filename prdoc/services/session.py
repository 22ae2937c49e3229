"""Stateless session handling.

The session is a JWT signed with python-jose and sealed with the cookie
crypto box before it is written to ``pr-doc-session``. There is no
server-side session table: every request decodes the cookie, runs the token
callback, and the middleware re-issues it.
"""

import logging
import time
from dataclasses import dataclass
from typing import Literal

from jose import JWTError, jwt
from nacl.exceptions import CryptoError
from pydantic import ValidationError

from prdoc.config import Settings
from prdoc.schemas.auth import SessionToken, SessionUser, SessionView
from prdoc.services.credentials import REFRESH_ERROR, ResolutionContext, google_from_refresh
from prdoc.services.crypto_service import get_crypto_service
from prdoc.services.google_oauth import GoogleOAuthClient
from prdoc.services.token_store import OAUTH_KINDS, TokenKind, TokenStore

logger = logging.getLogger(__name__)

SESSION_COOKIE = "pr-doc-session"


@dataclass(frozen=True)
class LinkedAccount:
    """Tokens handed back by a provider at the end of an OAuth sign-in."""

    provider: Literal["github", "google"]
    access_token: str
    refresh_token: str | None = None
    expires_at: int | None = None


class SessionManager:
    """Encode and decode the session cookie value."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._crypto = get_crypto_service(settings)

    @property
    def max_age(self) -> int:
        return self._settings.session_max_age_days * 24 * 60 * 60

    def encode(self, token: SessionToken) -> str:
        now = int(time.time())
        payload = token.model_dump(exclude_none=True)
        payload.update({"iat": now, "exp": now + self.max_age})
        signed = jwt.encode(
            payload,
            self._settings.session_secret.get_secret_value(),
            algorithm=self._settings.session_algorithm,
        )
        return self._crypto.encrypt(signed)

    def decode(self, value: str | None) -> SessionToken | None:
        """Return the session, or None when the cookie is absent, expired or forged."""
        if not value:
            return None
        try:
            signed = self._crypto.decrypt(value)
            payload = jwt.decode(
                signed,
                self._settings.session_secret.get_secret_value(),
                algorithms=[self._settings.session_algorithm],
            )
            return SessionToken.model_validate(payload)
        except (CryptoError, ValueError, JWTError, ValidationError) as e:
            logger.info("Ignoring invalid session cookie: %s", type(e).__name__)
            return None


def _capture_account(token: SessionToken, store: TokenStore, account: LinkedAccount) -> None:
    if account.provider == "github":
        token.access_token = account.access_token
        store.set(TokenKind.GITHUB_OAUTH, account.access_token)
        return

    token.google_access_token = account.access_token
    token.google_token_expiry = account.expires_at
    token.error = None
    store.set(TokenKind.GOOGLE_ACCESS, account.access_token)
    if account.refresh_token:
        token.google_refresh_token = account.refresh_token
        store.set(TokenKind.GOOGLE_REFRESH, account.refresh_token)


async def run_token_callback(
    token: SessionToken,
    store: TokenStore,
    settings: Settings,
    refresher: GoogleOAuthClient,
    account: LinkedAccount | None = None,
) -> SessionToken:
    """Reconcile the session token with the token store.

    Runs on every session materialization. A freshly linked account is
    written to both sides; otherwise missing session fields are restored
    from cookies. Afterwards the Google access token is checked: the cookie
    copy (1 hour lifetime) is authoritative, and when it has expired the
    refresh token is used to mint a new one.
    """
    token = token.model_copy()

    if account is not None:
        _capture_account(token, store, account)

    if not token.access_token:
        github_token = store.get(TokenKind.GITHUB_OAUTH)
        if github_token:
            token.access_token = github_token

    if not token.google_refresh_token:
        refresh_token = store.get(TokenKind.GOOGLE_REFRESH)
        if refresh_token:
            token.google_refresh_token = refresh_token

    google_token = store.get(TokenKind.GOOGLE_ACCESS)
    if google_token:
        token.google_access_token = google_token
        return token

    if token.google_refresh_token:
        # The session copy outlives the 1 hour cookie, so it is stale here
        token.google_access_token = None
        # A failure recorded on an earlier request does not block this attempt
        token.error = None
        ctx = ResolutionContext(settings=settings, store=store, session=token, refresher=refresher)
        resolution = await google_from_refresh(ctx)
        if resolution.present:
            store.apply(list(resolution.writes))
            token.google_access_token = resolution.credential.value
            token.google_token_expiry = resolution.credential.expires_at
            token.google_refresh_token = resolution.credential.refresh_token
        else:
            token.error = REFRESH_ERROR

    return token


def project_session(token: SessionToken) -> SessionView:
    """Session callback: the fields exposed to the browser."""
    return SessionView(
        user=SessionUser(id=token.sub, name=token.name, email=token.email, image=token.image),
        accessToken=token.access_token,
        googleAccessToken=token.google_access_token,
        error=token.error,
    )


def sign_out(store: TokenStore) -> None:
    """Sign-out event: drop OAuth tokens, keep the user's PAT."""
    for kind in OAUTH_KINDS:
        store.delete(kind)
