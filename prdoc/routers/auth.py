"""Authentication routes: GitHub and Google OAuth sign-in, session, sign-out."""

import json
import logging
import secrets
from typing import Literal

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from nacl.exceptions import CryptoError

from prdoc.config import Settings, get_settings
from prdoc.dependencies import get_session, get_token_store
from prdoc.errors import UpstreamError
from prdoc.schemas.auth import SessionToken
from prdoc.services.crypto_service import get_crypto_service
from prdoc.services.github_service import get_github_oauth_client
from prdoc.services.google_oauth import get_google_oauth_client
from prdoc.services.session import LinkedAccount, project_session, run_token_callback, sign_out
from prdoc.services.token_store import TokenStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])

Provider = Literal["github", "google"]

STATE_COOKIE = "pr-doc-oauth-state"
# OAuth state TTL: 10 minutes
_STATE_TTL = 600


def safe_callback_url(url: str | None) -> str:
    """Only allow same-site relative paths as post-login targets."""
    if not url or not url.startswith("/") or url.startswith("//"):
        return "/"
    return url


def _oauth_client(provider: Provider, settings: Settings):
    if provider == "github":
        return get_github_oauth_client(settings)
    return get_google_oauth_client(settings)


def _error_redirect(error: str) -> RedirectResponse:
    response = RedirectResponse(f"/auth/error?error={error}", status_code=302)
    response.delete_cookie(STATE_COOKIE, path="/")
    return response


def _pop_state(request: Request, settings: Settings) -> dict | None:
    raw = request.cookies.get(STATE_COOKIE)
    if not raw:
        return None
    try:
        return json.loads(get_crypto_service(settings).decrypt(raw))
    except (CryptoError, ValueError):
        return None


async def _link_account(provider: Provider, code: str, settings: Settings) -> tuple[LinkedAccount, dict]:
    """Exchange the code and fetch the provider profile."""
    if provider == "github":
        client = get_github_oauth_client(settings)
        tokens = await client.exchange_code(code)
        profile = await client.fetch_user(tokens["access_token"])
        account = LinkedAccount(provider="github", access_token=tokens["access_token"])
        return account, {
            "id": f"github:{profile['id']}",
            "name": profile.get("name") or profile.get("login"),
            "email": profile.get("email"),
            "image": profile.get("avatar_url"),
        }

    client = get_google_oauth_client(settings)
    tokens = await client.exchange_code(code)
    profile = await client.fetch_userinfo(tokens["access_token"])
    account = LinkedAccount(
        provider="google",
        access_token=tokens["access_token"],
        refresh_token=tokens.get("refresh_token"),
        expires_at=tokens.get("expires_at"),
    )
    return account, {
        "id": f"google:{profile['id']}",
        "name": profile.get("name"),
        "email": profile.get("email"),
        "image": profile.get("picture"),
    }


@router.get("/signin/{provider}")
async def signin(
    provider: Provider,
    callbackUrl: str | None = None,
    settings: Settings = Depends(get_settings),
):
    """Start the OAuth flow for ``provider``."""
    state = secrets.token_urlsafe(32)
    sealed = get_crypto_service(settings).encrypt(
        json.dumps({"state": state, "provider": provider, "callback_url": safe_callback_url(callbackUrl)})
    )

    response = RedirectResponse(_oauth_client(provider, settings).build_authorize_url(state), status_code=302)
    response.set_cookie(
        STATE_COOKIE,
        sealed,
        max_age=_STATE_TTL,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="lax",
    )
    return response


@router.get("/callback/{provider}")
async def callback(
    provider: Provider,
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    store: TokenStore = Depends(get_token_store),
    session: SessionToken | None = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Finish sign-in: link the account and issue the session."""
    if error:
        logger.warning("%s sign-in was denied: %s", provider, error)
        return _error_redirect("AccessDenied")

    pending = _pop_state(request, settings)
    if not pending or not code or pending.get("state") != state or pending.get("provider") != provider:
        logger.warning("Invalid or expired OAuth state for %s", provider)
        return _error_redirect("OAuthCallback")

    try:
        account, profile = await _link_account(provider, code, settings)
    except UpstreamError as e:
        logger.error("%s sign-in failed: %s", provider, e.message)
        return _error_redirect("OAuthCallback")

    # Linking a second provider keeps the signed-in identity
    token = session or SessionToken(
        sub=profile["id"],
        name=profile["name"],
        email=profile["email"],
        image=profile["image"],
    )
    token = await run_token_callback(token, store, settings, get_google_oauth_client(settings), account=account)
    request.state.session = token
    logger.info("Linked %s account for user %s", provider, token.sub)

    response = RedirectResponse(safe_callback_url(pending.get("callback_url")), status_code=302)
    response.delete_cookie(STATE_COOKIE, path="/")
    return response


@router.get("/session")
async def get_session_view(session: SessionToken | None = Depends(get_session)):
    """Return the browser-visible session, or an empty object."""
    if session is None:
        return {}
    return project_session(session).model_dump()


@router.post("/signout")
async def signout(
    request: Request,
    store: TokenStore = Depends(get_token_store),
):
    """Sign out. The saved Personal Access Token is kept."""
    sign_out(store)
    request.state.session = None
    return {"success": True}
