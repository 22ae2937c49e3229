"""FastAPI dependency injection."""

from fastapi import Depends, Request, Response

from prdoc.config import Settings, get_settings
from prdoc.errors import AuthenticationRequiredError
from prdoc.schemas.auth import SessionToken
from prdoc.services.ai_service import AIService, get_ai_service
from prdoc.services.credentials import CredentialResolver
from prdoc.services.drive_service import DriveService, get_drive_service
from prdoc.services.google_oauth import get_google_oauth_client
from prdoc.services.token_store import TokenStore


def get_token_store(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
) -> TokenStore:
    """Return the request's token store.

    The auth gate creates one per request and flushes it onto the outgoing
    response. Without the gate, the store writes to this route's response.
    """
    store = getattr(request.state, "token_store", None)
    if store is None:
        store = TokenStore(settings, request, response)
        request.state.token_store = store
    return store


def get_session(request: Request) -> SessionToken | None:
    return getattr(request.state, "session", None)


def require_session(session: SessionToken | None = Depends(get_session)) -> SessionToken:
    if session is None:
        raise AuthenticationRequiredError("Unauthorized")
    return session


def get_credential_resolver(
    store: TokenStore = Depends(get_token_store),
    session: SessionToken | None = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> CredentialResolver:
    return CredentialResolver(settings, store, session, get_google_oauth_client(settings))


def get_ai(settings: Settings = Depends(get_settings)) -> AIService:
    return get_ai_service(settings)


def get_drive(settings: Settings = Depends(get_settings)) -> DriveService:
    return get_drive_service(settings)
