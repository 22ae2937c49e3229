"""Shared test fixtures."""

import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from prdoc.config import Settings
from prdoc.main import create_app
from prdoc.schemas.auth import SessionToken
from prdoc.services.crypto_service import get_crypto_service
from prdoc.services.session import SESSION_COOKIE, SessionManager
from prdoc.services.token_store import TokenKind


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        app_env="development",
        session_secret="test-session-secret",
        encryption_key=base64.b64encode(b"k" * 32).decode(),
        github_id="gh-client",
        github_secret="gh-secret",
        github_token="",
        google_client_id="google-client",
        google_client_secret="google-secret",
        google_service_account_file="",
        groq_api_key="test-groq-key",
        nvidia_api_key="test-nvidia-key",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def session_token() -> SessionToken:
    return SessionToken(sub="github:42", name="Octo Cat", email="octo@example.com")


def seal(settings: Settings, value: str) -> str:
    return get_crypto_service(settings).encrypt(value)


def set_token_cookie(client: TestClient, settings: Settings, kind: TokenKind, value: str) -> None:
    client.cookies.set(kind.cookie_name, seal(settings, value))


def sign_in(client: TestClient, settings: Settings, token: SessionToken) -> None:
    client.cookies.set(SESSION_COOKIE, SessionManager(settings).encode(token))


@pytest.fixture
def signed_in_client(client, settings, session_token) -> TestClient:
    sign_in(client, settings, session_token)
    return client


def fake_request(settings: Settings, cookies: dict[TokenKind, str] | None = None):
    """Stand-in for a Starlette request carrying sealed token cookies."""
    raw = {kind.cookie_name: seal(settings, value) for kind, value in (cookies or {}).items()}
    return SimpleNamespace(cookies=raw)


def mock_http_response(status_code: int = 200, json_data=None, text: str = "") -> MagicMock:
    response = MagicMock(status_code=status_code, text=text)
    response.json.return_value = json_data if json_data is not None else {}
    return response


def mock_async_client(mock_cls, client: AsyncMock) -> None:
    """Wire a patched ``httpx.AsyncClient`` class to yield ``client``."""
    mock_cls.return_value.__aenter__ = AsyncMock(return_value=client)
    mock_cls.return_value.__aexit__ = AsyncMock(return_value=False)
