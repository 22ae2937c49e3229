"""Tests for the GitHub client and the PR route."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from conftest import mock_async_client, mock_http_response, set_token_cookie
from prdoc.errors import UpstreamError
from prdoc.services.github_service import GitHubService
from prdoc.services.token_store import TokenKind

PR_DETAIL = {
    "title": "Add useFormStatus hook",
    "html_url": "https://github.com/facebook/react/pull/31427",
}

PR_FILES = [
    {
        "filename": "packages/react-dom/src/shared/ReactDOMFormActions.js",
        "status": "modified",
        "additions": 12,
        "deletions": 3,
        "changes": 15,
        "patch": "@@ -1,3 +1,12 @@\n+export function useFormStatus() {}",
    },
    {
        "filename": "fixtures/logo.png",
        "status": "added",
        "additions": 0,
        "deletions": 0,
        "changes": 0,
    },
]


def github_client(pr_status=200, files_status=200) -> AsyncMock:
    client = AsyncMock()

    async def get(url, **kwargs):
        if url.endswith("/files"):
            return mock_http_response(files_status, PR_FILES, text="files body")
        return mock_http_response(pr_status, PR_DETAIL, text="detail body")

    client.get.side_effect = get
    return client


class TestGitHubService:
    @pytest.mark.asyncio
    async def test_get_pull_request(self):
        client = github_client()
        with patch("prdoc.services.github_service.httpx.AsyncClient") as mock_cls:
            mock_async_client(mock_cls, client)
            data = await GitHubService("ghp_x").get_pull_request("facebook", "react", "31427")

        assert data["title"] == "Add useFormStatus hook"
        assert data["html_url"] == PR_DETAIL["html_url"]
        assert len(data["files"]) == 2
        assert data["files"][0]["patch"].startswith("@@")
        assert "patch" not in data["files"][1]

        headers = mock_cls.call_args[1]["headers"]
        assert headers["Authorization"] == "token ghp_x"
        urls = [c[0][0] for c in client.get.call_args_list]
        assert "https://api.github.com/repos/facebook/react/pulls/31427" in urls
        assert "https://api.github.com/repos/facebook/react/pulls/31427/files" in urls

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403, 404, 422])
    async def test_known_errors_keep_status(self, status):
        with patch("prdoc.services.github_service.httpx.AsyncClient") as mock_cls:
            mock_async_client(mock_cls, github_client(pr_status=status))
            with pytest.raises(UpstreamError) as exc_info:
                await GitHubService("ghp_x").get_pull_request("o", "r", "1")

        assert exc_info.value.status_code == status
        assert "detail body" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_unknown_error_is_500_with_details(self):
        with patch("prdoc.services.github_service.httpx.AsyncClient") as mock_cls:
            mock_async_client(mock_cls, github_client(files_status=502))
            with pytest.raises(UpstreamError) as exc_info:
                await GitHubService("ghp_x").get_pull_request("o", "r", "1")

        assert exc_info.value.status_code == 500
        assert "502" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_validate_token(self):
        client = AsyncMock()
        client.get.return_value = mock_http_response(200, {"login": "octocat"})
        with patch("prdoc.services.github_service.httpx.AsyncClient") as mock_cls:
            mock_async_client(mock_cls, client)
            assert await GitHubService("ghp_x").validate_token() is True

        client.get.return_value = mock_http_response(401)
        with patch("prdoc.services.github_service.httpx.AsyncClient") as mock_cls:
            mock_async_client(mock_cls, client)
            assert await GitHubService("ghp_x").validate_token() is False

    @pytest.mark.asyncio
    async def test_validate_token_network_error_is_500(self):
        client = AsyncMock()
        client.get.side_effect = httpx.ConnectError("unreachable")
        with patch("prdoc.services.github_service.httpx.AsyncClient") as mock_cls:
            mock_async_client(mock_cls, client)
            with pytest.raises(UpstreamError) as exc_info:
                await GitHubService("ghp_x").validate_token()

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "Failed to save token"


class TestPRRoute:
    def test_missing_parameters(self, signed_in_client):
        response = signed_in_client.get("/api/pr?owner=facebook&repo=react")
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required parameters: owner, repo, pull_number"

    def test_non_numeric_pull_number(self, signed_in_client):
        response = signed_in_client.get("/api/pr?owner=facebook&repo=react&pull_number=abc")
        assert response.status_code == 400

    def test_no_github_credential(self, signed_in_client):
        response = signed_in_client.get("/api/pr?owner=facebook&repo=react&pull_number=31427")
        assert response.status_code == 401
        assert "reconnect GitHub" in response.json()["error"]

    def test_returns_pr_with_pat(self, signed_in_client, settings):
        set_token_cookie(signed_in_client, settings, TokenKind.GITHUB_PAT, "ghp_personal")

        with patch("prdoc.services.github_service.httpx.AsyncClient") as mock_cls:
            mock_async_client(mock_cls, github_client())
            response = signed_in_client.get("/api/pr?owner=facebook&repo=react&pull_number=31427")

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Add useFormStatus hook"
        assert body["files"][1] == {
            "filename": "fixtures/logo.png",
            "status": "added",
            "additions": 0,
            "deletions": 0,
            "changes": 0,
        }
        assert mock_cls.call_args[1]["headers"]["Authorization"] == "token ghp_personal"

    def test_not_found_maps_to_404(self, signed_in_client, settings):
        set_token_cookie(signed_in_client, settings, TokenKind.GITHUB_PAT, "ghp_personal")

        with patch("prdoc.services.github_service.httpx.AsyncClient") as mock_cls:
            mock_async_client(mock_cls, github_client(pr_status=404))
            response = signed_in_client.get("/api/pr?owner=facebook&repo=react&pull_number=999999")

        assert response.status_code == 404
        assert response.json()["error"].startswith("Pull request not found")
