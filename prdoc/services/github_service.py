"""GitHub API integration: OAuth sign-in, PAT validation and PR diffs."""

import asyncio
import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from prdoc.config import Settings
from prdoc.errors import UpstreamError

logger = logging.getLogger(__name__)

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_BASE = "https://api.github.com"

SCOPES = ["read:user", "user:email", "repo"]

PAT_PREFIXES = ("ghp_", "github_pat_")

# User-facing messages keyed by GitHub status. Raw bodies are only logged.
_STATUS_MESSAGES: dict[int, str] = {
    401: "GitHub authentication failed. Please reconnect GitHub or update your Personal Access Token.",
    403: (
        "Access denied by GitHub. The repository may be private or your organization may restrict "
        "OAuth app access. Try adding a Personal Access Token in Settings."
    ),
    404: "Pull request not found. Check the link and make sure you have access to the repository.",
    422: "GitHub could not process the request. Check the owner, repository and pull request number.",
}


def _headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"token {token}",
        "Accept": "application/vnd.github.v3+json",
    }


def _raise_for_status(response: httpx.Response, what: str) -> None:
    """Translate a GitHub error response into an ``UpstreamError``."""
    if response.status_code < 400:
        return
    logger.error("GitHub %s request failed: %d %s", what, response.status_code, response.text[:500])
    message = _STATUS_MESSAGES.get(response.status_code)
    if message is None:
        raise UpstreamError(
            "Failed to fetch pull request from GitHub",
            status_code=500,
            provider="github",
            details=f"GitHub responded with status {response.status_code}",
        )
    raise UpstreamError(message, status_code=response.status_code, provider="github")


def _map_file(raw: dict[str, Any]) -> dict[str, Any]:
    mapped = {
        "filename": raw.get("filename", ""),
        "status": raw.get("status", "modified"),
        "additions": raw.get("additions", 0),
        "deletions": raw.get("deletions", 0),
        "changes": raw.get("changes", raw.get("additions", 0) + raw.get("deletions", 0)),
    }
    if raw.get("patch") is not None:
        mapped["patch"] = raw["patch"]
    return mapped


class GitHubService:
    """Calls the GitHub REST API with a resolved user credential."""

    def __init__(self, token: str) -> None:
        self._token = token

    async def get_pull_request(self, owner: str, repo: str, pull_number: str) -> dict[str, Any]:
        """Fetch PR detail and changed files concurrently.

        Either request failing aborts the whole fetch; the PR detail error is
        reported first when both fail.
        """
        base = f"{GITHUB_API_BASE}/repos/{owner}/{repo}/pulls/{pull_number}"
        async with httpx.AsyncClient(timeout=30.0, headers=_headers(self._token)) as client:
            pr_response, files_response = await asyncio.gather(
                client.get(base),
                client.get(f"{base}/files", params={"per_page": 100}),
            )

        _raise_for_status(pr_response, "pull request")
        _raise_for_status(files_response, "pull request files")

        pr_data = pr_response.json()
        files = [_map_file(f) for f in files_response.json()]
        logger.info("Fetched PR %s/%s#%s with %d files", owner, repo, pull_number, len(files))
        return {
            "title": pr_data.get("title", ""),
            "html_url": pr_data.get("html_url", ""),
            "files": files,
        }

    async def validate_token(self) -> bool:
        """Return True if GitHub accepts the token for the user endpoint.

        An unreachable GitHub is not a verdict on the token and raises
        ``UpstreamError`` (500).
        """
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(f"{GITHUB_API_BASE}/user", headers=_headers(self._token))
        except httpx.HTTPError as e:
            logger.error("GitHub token validation request failed: %s", type(e).__name__)
            raise UpstreamError(
                "Failed to save token",
                status_code=500,
                provider="github",
                details="GitHub could not be reached",
            ) from e
        return response.status_code == 200


class GitHubOAuthClient:
    """GitHub OAuth app flow."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def redirect_uri(self) -> str:
        return f"{self._settings.base_url.rstrip('/')}/api/auth/callback/github"

    def build_authorize_url(self, state: str) -> str:
        params = {
            "client_id": self._settings.github_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(SCOPES),
            "state": state,
        }
        return f"{GITHUB_AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                GITHUB_TOKEN_URL,
                data={
                    "client_id": self._settings.github_id,
                    "client_secret": self._settings.github_secret.get_secret_value(),
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                },
                headers={"Accept": "application/json"},
            )

        data = response.json() if response.status_code == 200 else {}
        if not data.get("access_token"):
            # GitHub reports bad codes with 200 and an "error" field
            logger.error("GitHub token exchange failed: %d %s", response.status_code, data.get("error"))
            raise UpstreamError("GitHub sign-in failed", status_code=400, provider="github")
        return data

    async def fetch_user(self, access_token: str) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(f"{GITHUB_API_BASE}/user", headers=_headers(access_token))
        if response.status_code != 200:
            logger.error("GitHub user request failed: %d", response.status_code)
            raise UpstreamError("Failed to fetch GitHub profile", status_code=400, provider="github")
        return response.json()


def get_github_oauth_client(settings: Settings) -> GitHubOAuthClient:
    return GitHubOAuthClient(settings)
