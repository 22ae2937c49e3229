"""Tests for Prometheus metric definitions and increments."""

from unittest.mock import AsyncMock

import pytest
from prometheus_client import REGISTRY

from conftest import fake_request
from prdoc.metrics import (
    ai_generations_total,
    docs_created_total,
    github_token_source_total,
    google_token_refresh_total,
)
from prdoc.services.credentials import CredentialResolver
from prdoc.services.google_oauth import RefreshFailure
from prdoc.services.token_store import TokenKind, TokenStore


class TestMetricDefinitions:
    """Verify custom metrics are counters with the expected labels."""

    def test_ai_generations_labels(self):
        assert ai_generations_total._type == "counter"
        assert ai_generations_total._labelnames == ("provider", "outcome")

    def test_google_token_refresh_labels(self):
        assert google_token_refresh_total._labelnames == ("outcome",)

    def test_github_token_source_labels(self):
        assert github_token_source_total._labelnames == ("source",)

    def test_docs_created_labels(self):
        assert docs_created_total._labelnames == ("mode",)


def sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestIncrements:
    @pytest.mark.asyncio
    async def test_github_source_counted(self, settings):
        store = TokenStore(settings, fake_request(settings, {TokenKind.GITHUB_PAT: "ghp_x"}))
        before = sample("prdoc_github_token_source_total", source="pat")

        await CredentialResolver(settings, store, None, AsyncMock()).github_token()

        assert sample("prdoc_github_token_source_total", source="pat") == before + 1

    @pytest.mark.asyncio
    async def test_failed_refresh_counted(self, settings):
        store = TokenStore(settings, fake_request(settings, {TokenKind.GOOGLE_REFRESH: "1//r"}))
        refresher = AsyncMock()
        refresher.refresh_access_token.return_value = RefreshFailure(reason="network")
        before = sample("prdoc_google_token_refresh_total", outcome="network")

        await CredentialResolver(settings, store, None, refresher).google_token()

        assert sample("prdoc_google_token_refresh_total", outcome="network") == before + 1

    def test_metrics_endpoint_exposes_counters(self, client):
        body = client.get("/metrics").text
        assert "prdoc_ai_generations_total" in body
