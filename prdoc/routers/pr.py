"""Pull request diff route."""

from fastapi import APIRouter, Depends

from prdoc.dependencies import get_credential_resolver
from prdoc.errors import BadRequestError
from prdoc.schemas.pr import PRResponse
from prdoc.services.credentials import CredentialResolver
from prdoc.services.github_service import GitHubService

router = APIRouter(prefix="/api/pr", tags=["github"])


@router.get("", response_model=PRResponse, response_model_exclude_none=True)
async def get_pull_request(
    owner: str | None = None,
    repo: str | None = None,
    pull_number: str | None = None,
    resolver: CredentialResolver = Depends(get_credential_resolver),
):
    """Fetch PR title, URL and changed files with the user's GitHub credential."""
    if not owner or not repo or not pull_number:
        raise BadRequestError("Missing required parameters: owner, repo, pull_number")
    if not pull_number.isdigit():
        raise BadRequestError("pull_number must be a number")

    token = await resolver.require_github_token()
    data = await GitHubService(token).get_pull_request(owner.strip(), repo.strip(), pull_number)
    return PRResponse(**data)
