"""Cookie-backed token store.

All provider tokens that must outlive a single session materialization live
in sealed, http-only cookies. Nothing else in the code base touches these
cookies directly.
"""

import enum
import logging
from dataclasses import dataclass

from nacl.exceptions import CryptoError
from starlette.requests import Request
from starlette.responses import Response

from prdoc.config import Settings
from prdoc.services.crypto_service import get_crypto_service

logger = logging.getLogger(__name__)

_DAY = 24 * 60 * 60


class TokenKind(str, enum.Enum):
    GITHUB_OAUTH = "github_oauth"
    GITHUB_PAT = "github_pat"
    GOOGLE_ACCESS = "google_access"
    GOOGLE_REFRESH = "google_refresh"

    @property
    def cookie_name(self) -> str:
        return _COOKIE_NAMES[self]

    @property
    def max_age(self) -> int:
        return _MAX_AGES[self]


_COOKIE_NAMES: dict[TokenKind, str] = {
    TokenKind.GITHUB_OAUTH: "pr-doc-github-token",
    TokenKind.GITHUB_PAT: "pr-doc-github-pat",
    TokenKind.GOOGLE_ACCESS: "pr-doc-google-token",
    TokenKind.GOOGLE_REFRESH: "pr-doc-google-refresh",
}

_MAX_AGES: dict[TokenKind, int] = {
    TokenKind.GITHUB_OAUTH: 30 * _DAY,
    TokenKind.GITHUB_PAT: 365 * _DAY,
    TokenKind.GOOGLE_ACCESS: 60 * 60,
    TokenKind.GOOGLE_REFRESH: 30 * _DAY,
}

# Cleared on sign-out. The PAT is user-managed and survives.
OAUTH_KINDS = (TokenKind.GITHUB_OAUTH, TokenKind.GOOGLE_ACCESS, TokenKind.GOOGLE_REFRESH)


@dataclass(frozen=True)
class StoreWrite:
    """A deferred cookie mutation. ``value=None`` means delete."""

    kind: TokenKind
    value: str | None
    ttl: int | None = None


class TokenStore:
    """get/set/delete over sealed cookies.

    Reads come from the request cookies, overlaid with anything written
    earlier in the same request. Writes go to the bound response when there
    is one and are otherwise kept until ``flush`` is called with the outgoing
    response. A store with no request (outside a request context) reads as
    empty and never raises.
    """

    def __init__(
        self,
        settings: Settings,
        request: Request | None = None,
        response: Response | None = None,
    ) -> None:
        self._settings = settings
        self._request = request
        self._response = response
        self._crypto = get_crypto_service(settings)
        self._pending: dict[TokenKind, StoreWrite] = {}

    @property
    def pending_writes(self) -> list[StoreWrite]:
        return list(self._pending.values())

    def get(self, kind: TokenKind) -> str | None:
        if kind in self._pending:
            return self._pending[kind].value
        try:
            raw = self._request.cookies.get(kind.cookie_name)
        except AttributeError:
            logger.debug("Token store read outside request context: %s", kind.value)
            return None
        if not raw:
            return None
        try:
            return self._crypto.decrypt(raw)
        except (CryptoError, ValueError):
            logger.info("Discarding unreadable %s cookie", kind.value)
            return None

    def has(self, kind: TokenKind) -> bool:
        return bool(self.get(kind))

    def set(self, kind: TokenKind, value: str, ttl: int | None = None) -> None:
        self._record(StoreWrite(kind=kind, value=value, ttl=ttl or kind.max_age))

    def delete(self, kind: TokenKind) -> None:
        self._record(StoreWrite(kind=kind, value=None))

    def apply(self, writes: list[StoreWrite]) -> None:
        """Apply side effects produced by pure resolution functions."""
        for write in writes:
            self._record(write)

    def flush(self, response: Response) -> None:
        """Write every pending mutation onto ``response``."""
        for write in self._pending.values():
            self._write_cookie(response, write)

    def _record(self, write: StoreWrite) -> None:
        self._pending[write.kind] = write
        if self._response is None:
            return
        try:
            self._write_cookie(self._response, write)
        except (AttributeError, RuntimeError) as e:
            logger.debug("Token store write failed for %s: %s", write.kind.value, e)

    def _write_cookie(self, response: Response, write: StoreWrite) -> None:
        if write.value is None:
            response.delete_cookie(
                write.kind.cookie_name,
                path="/",
                secure=self._settings.is_production,
                httponly=True,
                samesite="lax",
            )
            return
        response.set_cookie(
            write.kind.cookie_name,
            self._crypto.encrypt(write.value),
            max_age=write.ttl or write.kind.max_age,
            path="/",
            secure=self._settings.is_production,
            httponly=True,
            samesite="lax",
        )
