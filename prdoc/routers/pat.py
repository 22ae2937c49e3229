"""Personal Access Token management.

A PAT outranks the GitHub OAuth token and is the way around organizations
that restrict OAuth app access. It is kept across sign-outs.
"""

import logging

from fastapi import APIRouter, Depends

from prdoc.dependencies import get_token_store, require_session
from prdoc.errors import BadRequestError
from prdoc.schemas.auth import PATRequest, PATStatusResponse, SessionToken, SuccessResponse
from prdoc.services.github_service import PAT_PREFIXES, GitHubService
from prdoc.services.token_store import TokenKind, TokenStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth/pat", tags=["auth"])


@router.get("", response_model=PATStatusResponse)
async def get_pat_status(
    session: SessionToken = Depends(require_session),
    store: TokenStore = Depends(get_token_store),
):
    return PATStatusResponse(hasPat=store.has(TokenKind.GITHUB_PAT))


@router.post("", response_model=SuccessResponse)
async def save_pat(
    body: PATRequest,
    session: SessionToken = Depends(require_session),
    store: TokenStore = Depends(get_token_store),
):
    """Validate a PAT against GitHub and store it for a year."""
    token = (body.token or "").strip()
    if not token:
        raise BadRequestError("Token is required")

    if not token.startswith(PAT_PREFIXES):
        raise BadRequestError("Invalid token format. Token should start with 'ghp_' or 'github_pat_'")

    if not await GitHubService(token).validate_token():
        raise BadRequestError("Invalid token. Please check your token has the correct permissions.")

    store.set(TokenKind.GITHUB_PAT, token)
    logger.info("Saved GitHub PAT for user %s", session.sub)
    return SuccessResponse()


@router.delete("", response_model=SuccessResponse)
async def delete_pat(
    session: SessionToken = Depends(require_session),
    store: TokenStore = Depends(get_token_store),
):
    store.delete(TokenKind.GITHUB_PAT)
    logger.info("Removed GitHub PAT for user %s", session.sub)
    return SuccessResponse()
