"""Credential resolution for GitHub and Google.

Each provider has an ordered list of strategies. They are tried in order and
the first one that yields a credential wins; a strategy that finds nothing
returns ``ABSENT``. Google resolution may refresh the access token, in which
case the cookie updates are returned as ``writes`` rather than applied, so
the algorithm can be exercised without a live request.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from prdoc.config import Settings
from prdoc.errors import GitHubAuthRequiredError, GoogleAuthRequiredError, MissingCredentialsError
from prdoc.metrics import github_token_source_total, google_token_refresh_total
from prdoc.schemas.auth import SessionToken
from prdoc.services.google_oauth import GoogleOAuthClient, RefreshedToken
from prdoc.services.token_store import StoreWrite, TokenKind, TokenStore

logger = logging.getLogger(__name__)

# Set on the session when the token callback's refresh failed this request
REFRESH_ERROR = "RefreshAccessTokenError"


class CredentialKind(str, enum.Enum):
    GITHUB_OAUTH = "github_oauth"
    GITHUB_PAT = "github_pat"
    GOOGLE_OAUTH = "google_oauth"


@dataclass(frozen=True)
class Credential:
    kind: CredentialKind
    value: str
    expires_at: int | None = None
    refresh_token: str | None = None


@dataclass(frozen=True)
class Resolution:
    credential: Credential | None = None
    source: str | None = None
    writes: tuple[StoreWrite, ...] = ()

    @property
    def present(self) -> bool:
        return self.credential is not None


ABSENT = Resolution()


@dataclass
class ResolutionContext:
    settings: Settings
    store: TokenStore
    session: SessionToken | None = None
    refresher: GoogleOAuthClient | None = None


@dataclass(frozen=True)
class CredentialCheck:
    valid: bool
    missing: list[str] = field(default_factory=list)


Strategy = Callable[[ResolutionContext], Awaitable[Resolution]]


# --- GitHub ---


async def github_from_pat(ctx: ResolutionContext) -> Resolution:
    pat = ctx.store.get(TokenKind.GITHUB_PAT)
    if not pat:
        return ABSENT
    return Resolution(Credential(CredentialKind.GITHUB_PAT, pat), source="pat")


async def github_from_session(ctx: ResolutionContext) -> Resolution:
    if ctx.session is None or not ctx.session.access_token:
        return ABSENT
    return Resolution(Credential(CredentialKind.GITHUB_OAUTH, ctx.session.access_token), source="session")


async def github_from_settings(ctx: ResolutionContext) -> Resolution:
    token = ctx.settings.github_token.get_secret_value()
    if not token:
        return ABSENT
    logger.warning("Using fallback GITHUB_TOKEN from environment; this path is deprecated, connect GitHub instead")
    return Resolution(Credential(CredentialKind.GITHUB_OAUTH, token), source="env")


GITHUB_STRATEGIES: tuple[Strategy, ...] = (github_from_pat, github_from_session, github_from_settings)


# --- Google ---


async def google_from_session(ctx: ResolutionContext) -> Resolution:
    if ctx.session is None or not ctx.session.google_access_token:
        return ABSENT
    credential = Credential(
        CredentialKind.GOOGLE_OAUTH,
        ctx.session.google_access_token,
        expires_at=ctx.session.google_token_expiry,
        refresh_token=ctx.session.google_refresh_token,
    )
    return Resolution(credential, source="session")


async def google_from_cookie(ctx: ResolutionContext) -> Resolution:
    token = ctx.store.get(TokenKind.GOOGLE_ACCESS)
    if not token:
        return ABSENT
    return Resolution(Credential(CredentialKind.GOOGLE_OAUTH, token), source="cookie")


async def google_from_refresh(ctx: ResolutionContext) -> Resolution:
    if ctx.session is not None and ctx.session.error == REFRESH_ERROR:
        logger.debug("Google refresh already failed for this request; not retrying")
        return ABSENT
    refresh_token = ctx.store.get(TokenKind.GOOGLE_REFRESH)
    if not refresh_token and ctx.session is not None:
        refresh_token = ctx.session.google_refresh_token
    if not refresh_token or ctx.refresher is None:
        return ABSENT

    logger.info("Attempting to refresh expired Google token")
    result = await ctx.refresher.refresh_access_token(refresh_token)
    if not isinstance(result, RefreshedToken):
        google_token_refresh_total.labels(outcome=result.reason).inc()
        logger.warning("Google token refresh failed (%s); user must reconnect Google Drive", result.reason)
        return ABSENT

    google_token_refresh_total.labels(outcome="success").inc()
    logger.info("Google token refreshed successfully")
    credential = Credential(
        CredentialKind.GOOGLE_OAUTH,
        result.access_token,
        expires_at=result.expires_at,
        refresh_token=result.refresh_token,
    )
    writes = (
        StoreWrite(TokenKind.GOOGLE_ACCESS, result.access_token, TokenKind.GOOGLE_ACCESS.max_age),
        StoreWrite(TokenKind.GOOGLE_REFRESH, result.refresh_token, TokenKind.GOOGLE_REFRESH.max_age),
    )
    return Resolution(credential, source="refresh", writes=writes)


GOOGLE_STRATEGIES: tuple[Strategy, ...] = (google_from_session, google_from_cookie, google_from_refresh)


async def resolve(strategies: tuple[Strategy, ...], ctx: ResolutionContext) -> Resolution:
    for strategy in strategies:
        resolution = await strategy(ctx)
        if resolution.present:
            return resolution
    return ABSENT


async def resolve_github_credential(ctx: ResolutionContext) -> Resolution:
    return await resolve(GITHUB_STRATEGIES, ctx)


async def resolve_google_credential(ctx: ResolutionContext) -> Resolution:
    """Resolve a Google access token without touching the response.

    Cookie writes produced by a refresh are returned in ``writes``; the
    caller applies them.
    """
    return await resolve(GOOGLE_STRATEGIES, ctx)


class CredentialResolver:
    """Request-scoped facade used by routes."""

    def __init__(
        self,
        settings: Settings,
        store: TokenStore,
        session: SessionToken | None,
        refresher: GoogleOAuthClient,
    ) -> None:
        self._ctx = ResolutionContext(settings=settings, store=store, session=session, refresher=refresher)
        self._google: Resolution | None = None

    async def github_token(self) -> str | None:
        resolution = await resolve_github_credential(self._ctx)
        if not resolution.present:
            return None
        github_token_source_total.labels(source=resolution.source).inc()
        return resolution.credential.value

    async def google_token(self) -> str | None:
        """Resolve the Google token once per request; later calls reuse the result."""
        if self._google is None:
            self._google = await resolve_google_credential(self._ctx)
            if self._google.writes:
                self._ctx.store.apply(list(self._google.writes))
        if not self._google.present:
            return None
        return self._google.credential.value

    def google_connected(self) -> bool:
        """True when the user linked Google at some point, even if the token is now unusable."""
        session = self._ctx.session
        if session is not None and (session.google_refresh_token or session.error == REFRESH_ERROR):
            return True
        return self._ctx.store.has(TokenKind.GOOGLE_REFRESH)

    async def publishing_token(self) -> str | None:
        """Google token for Drive uploads.

        None means the user never connected Google, which lets the publisher
        use the legacy service account. A connected user whose token cannot be
        refreshed gets ``GoogleAuthRequiredError`` instead of a silent switch
        to the service account's Drive.
        """
        token = await self.google_token()
        if token:
            return token
        if self.google_connected():
            raise GoogleAuthRequiredError("Google authentication expired. Please reconnect Google Drive.")
        return None

    async def require_github_token(self) -> str:
        token = await self.github_token()
        if not token:
            raise GitHubAuthRequiredError()
        return token

    async def require_google_token(self) -> str:
        token = await self.google_token()
        if not token:
            raise GoogleAuthRequiredError()
        return token

    async def has_required_credentials(self, github: bool = False, google: bool = False) -> CredentialCheck:
        missing: list[str] = []
        if github and not await self.github_token():
            missing.append("GitHub")
        if google and not await self.google_token():
            missing.append("Google Drive")
        return CredentialCheck(valid=not missing, missing=missing)

    async def require_credentials(self, github: bool = False, google: bool = False) -> None:
        check = await self.has_required_credentials(github=github, google=google)
        if not check.valid:
            raise MissingCredentialsError(check.missing)
