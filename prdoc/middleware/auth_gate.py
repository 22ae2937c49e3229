"""Session materialization and route gating."""

import logging
from typing import Callable
from urllib.parse import quote

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response

from prdoc.config import Settings
from prdoc.middleware.error_handler import internal_error_response
from prdoc.services.google_oauth import get_google_oauth_client
from prdoc.services.session import SESSION_COOKIE, SessionManager, run_token_callback
from prdoc.services.token_store import TokenStore

logger = logging.getLogger(__name__)

SIGNIN_PATH = "/auth/signin"

# Reachable without a session. /api/auth/pat checks the session itself.
PUBLIC_PREFIXES = (SIGNIN_PATH, "/auth/error", "/api/auth/")

# Not touched by the gate at all.
UNGATED_PATHS = ("/health", "/metrics", "/docs", "/redoc", "/openapi.json")


def is_public_path(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in PUBLIC_PREFIXES)


def is_api_path(path: str) -> bool:
    return path == "/api" or path.startswith("/api/")


def signin_redirect_url(path: str) -> str:
    return f"{SIGNIN_PATH}?callbackUrl={quote(path, safe='/')}"


class AuthGateMiddleware(BaseHTTPMiddleware):
    """Decode the session, reconcile tokens, and gate protected routes.

    Every gated request gets a ``TokenStore`` and the decoded session on
    ``request.state``. Routes may replace ``request.state.session`` (sign-in)
    or set it to None (sign-out); the session cookie is re-issued or
    cleared accordingly, and pending token cookies are written, before the
    response leaves.
    """

    def __init__(self, app, settings: Settings) -> None:
        super().__init__(app)
        self._settings = settings
        self._sessions = SessionManager(settings)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in UNGATED_PATHS:
            return await call_next(request)

        store = TokenStore(self._settings, request)
        request.state.token_store = store

        had_cookie = SESSION_COOKIE in request.cookies
        session = self._sessions.decode(request.cookies.get(SESSION_COOKIE))
        if session is not None:
            session = await run_token_callback(
                session,
                store,
                self._settings,
                get_google_oauth_client(self._settings),
            )
        request.state.session = session

        if session is None and not is_public_path(path):
            if is_api_path(path):
                response: Response = JSONResponse(status_code=401, content={"error": "Unauthorized"})
            else:
                response = RedirectResponse(signin_redirect_url(path), status_code=307)
        else:
            try:
                response = await call_next(request)
            except Exception as exc:
                # Token cookies refreshed earlier in the request are still written
                response = internal_error_response(exc)

        store.flush(response)
        session = getattr(request.state, "session", None)
        if session is not None:
            response.set_cookie(
                SESSION_COOKIE,
                self._sessions.encode(session),
                max_age=self._sessions.max_age,
                path="/",
                secure=self._settings.is_production,
                httponly=True,
                samesite="lax",
            )
        elif had_cookie:
            response.delete_cookie(SESSION_COOKIE, path="/")
        return response
