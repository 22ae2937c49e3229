"""Tests for AI generation, fallback and diff truncation."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from conftest import mock_async_client, mock_http_response
from prdoc.dependencies import get_ai
from prdoc.errors import AIProviderError, AllProvidersExhaustedError, RateLimitError
from prdoc.services.ai_prompts import DIFF_TRUNCATED_MARKER
from prdoc.services.ai_service import (
    AIProvider,
    AIService,
    GroqProvider,
    NvidiaProvider,
    build_summary_prompt,
    estimate_tokens,
    get_ai_service,
    truncate_diff,
)


class FakeProvider(AIProvider):
    def __init__(self, name: str, content: str = "", error: Exception | None = None) -> None:
        self.name = name
        self.content = content
        self.error = error
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.content


def make_patch(lines: int) -> str:
    return "\n".join(f"+line {i}" for i in range(lines))


def api_error(cls, status: int, code: str | None = None):
    request = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
    body = {"code": code, "message": "error"} if code else None
    return cls("error", response=httpx.Response(status, request=request), body=body)


class TestTruncateDiff:
    def test_limits_files(self):
        files = [{"filename": f"f{i}.py", "patch": "+x"} for i in range(25)]
        assert len(truncate_diff(files, max_files=20)) == 20

    def test_cuts_long_patch_with_marker(self):
        files = [{"filename": "big.py", "patch": make_patch(150)}]

        result = truncate_diff(files, max_lines_per_file=100)

        lines = result[0]["patch"].split("\n")
        assert len(lines) == 101
        assert lines[-1] == "... (50 more lines truncated)"
        assert files[0]["patch"] == make_patch(150)

    def test_short_and_binary_entries_untouched(self):
        files = [{"filename": "a.py", "patch": make_patch(10)}, {"filename": "logo.png"}]
        assert truncate_diff(files) == files

    def test_idempotent(self):
        files = [{"filename": f"f{i}.py", "patch": make_patch(120 + i)} for i in range(30)]

        once = truncate_diff(files, max_files=20, max_lines_per_file=100)
        twice = truncate_diff(once, max_files=20, max_lines_per_file=100)

        assert twice == once
        assert all(entry["patch"].count("more lines truncated") == 1 for entry in twice)


class TestPromptBudget:
    def test_small_prompt_unchanged(self):
        diff = [{"filename": "a.py", "patch": "+x"}]
        prompt = build_summary_prompt("o", "r", "7", diff, max_tokens=6000)

        assert json.dumps(diff) in prompt
        assert 'PR #7 in "o/r"' in prompt
        assert DIFF_TRUNCATED_MARKER not in prompt

    def test_oversized_diff_cut_to_budget(self):
        diff = [{"filename": "a.py", "patch": "x" * 100_000}]
        prompt = build_summary_prompt("o", "r", "7", diff, max_tokens=1000)

        assert estimate_tokens(prompt) <= 1000
        assert prompt.endswith(DIFF_TRUNCATED_MARKER)
        assert "## Impact" in prompt


class TestFallback:
    @pytest.mark.asyncio
    async def test_primary_success(self, settings):
        primary = FakeProvider("groq", content="# Summary")
        fallback = FakeProvider("nvidia", content="unused")

        result = await AIService(settings, primary, fallback).generate("prompt")

        assert result.content == "# Summary"
        assert result.used_fallback is False
        assert fallback.prompts == []

    @pytest.mark.asyncio
    async def test_rate_limit_falls_back(self, settings):
        primary = FakeProvider("groq", error=RateLimitError("too large"))
        fallback = FakeProvider("nvidia", content="# From fallback")

        result = await AIService(settings, primary, fallback).generate("prompt")

        assert result.content == "# From fallback"
        assert result.used_fallback is True
        assert fallback.prompts == ["prompt"]

    @pytest.mark.asyncio
    async def test_both_failing_is_exhausted(self, settings):
        primary = FakeProvider("groq", error=RateLimitError("too large"))
        fallback = FakeProvider("nvidia", error=AIProviderError("NVIDIA API error: 500"))

        with pytest.raises(AllProvidersExhaustedError) as exc_info:
            await AIService(settings, primary, fallback).generate("prompt")

        assert exc_info.value.status_code == 413

    @pytest.mark.asyncio
    async def test_other_errors_do_not_fall_back(self, settings):
        primary = FakeProvider("groq", error=AIProviderError("AI generation failed"))
        fallback = FakeProvider("nvidia", content="unused")

        with pytest.raises(AIProviderError) as exc_info:
            await AIService(settings, primary, fallback).generate("prompt")

        assert not isinstance(exc_info.value, AllProvidersExhaustedError)
        assert fallback.prompts == []

    @pytest.mark.asyncio
    async def test_generate_summary_truncates_before_prompting(self, settings):
        primary = FakeProvider("groq", content="# Summary")
        diff = [{"filename": f"f{i}.py", "patch": make_patch(5)} for i in range(30)]

        await AIService(settings, primary, FakeProvider("nvidia")).generate_summary("o", "r", "1", diff)

        assert "f19.py" in primary.prompts[0]
        assert "f20.py" not in primary.prompts[0]

    def test_fallback_selected_from_settings(self, settings):
        service = AIService(settings.model_copy(update={"fallback_provider": "anthropic"}))
        assert service._fallback.name == "anthropic"
        assert AIService(settings)._fallback.name == "nvidia"


class TestServiceLifetime:
    def test_service_reused_across_requests(self, settings):
        assert get_ai_service(settings) is get_ai_service(settings)

    def test_new_settings_build_new_service(self, settings):
        first = get_ai_service(settings)
        assert get_ai_service(settings.model_copy()) is not first


class TestGroqProvider:
    @pytest.mark.asyncio
    async def test_streams_and_concatenates(self):
        async def stream():
            for text in ("# PR", " summary", None):
                yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])
            yield SimpleNamespace(choices=[])

        provider = GroqProvider(api_key="k", model="m", base_url="https://api.groq.com/openai/v1")
        provider._client = MagicMock()
        provider._client.chat.completions.create = AsyncMock(return_value=stream())

        assert await provider.complete("prompt") == "# PR summary"
        kwargs = provider._client.chat.completions.create.call_args[1]
        assert kwargs["stream"] is True
        assert kwargs["model"] == "m"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            api_error(openai.RateLimitError, 429),
            api_error(openai.APIStatusError, 413),
            api_error(openai.BadRequestError, 400, code="request_too_large"),
            api_error(openai.BadRequestError, 400, code="rate_limit_exceeded"),
        ],
    )
    async def test_size_and_rate_errors_classified(self, error):
        provider = GroqProvider(api_key="k", model="m", base_url="https://api.groq.com/openai/v1")
        provider._client = MagicMock()
        provider._client.chat.completions.create = AsyncMock(side_effect=error)

        with pytest.raises(RateLimitError):
            await provider.complete("prompt")

    @pytest.mark.asyncio
    async def test_other_errors_are_generic(self):
        provider = GroqProvider(api_key="k", model="m", base_url="https://api.groq.com/openai/v1")
        provider._client = MagicMock()
        provider._client.chat.completions.create = AsyncMock(
            side_effect=api_error(openai.InternalServerError, 500)
        )

        with pytest.raises(AIProviderError) as exc_info:
            await provider.complete("prompt")

        assert not isinstance(exc_info.value, RateLimitError)


class TestNvidiaProvider:
    @pytest.mark.asyncio
    async def test_returns_message_content(self):
        client = AsyncMock()
        client.post.return_value = mock_http_response(200, {"choices": [{"message": {"content": "# Doc"}}]})

        with patch("prdoc.services.ai_service.httpx.AsyncClient") as mock_cls:
            mock_async_client(mock_cls, client)
            result = await NvidiaProvider("nv-key", "moonshotai/kimi-k2.5", "https://integrate.api.nvidia.com/v1").complete("p")

        assert result == "# Doc"
        assert client.post.call_args[0][0] == "https://integrate.api.nvidia.com/v1/chat/completions"
        assert client.post.call_args[1]["headers"]["Authorization"] == "Bearer nv-key"

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        client = AsyncMock()
        client.post.return_value = mock_http_response(500, text="boom")

        with patch("prdoc.services.ai_service.httpx.AsyncClient") as mock_cls:
            mock_async_client(mock_cls, client)
            with pytest.raises(AIProviderError, match="NVIDIA API error: 500"):
                await NvidiaProvider("nv-key", "m", "https://integrate.api.nvidia.com/v1").complete("p")

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(AIProviderError, match="NVIDIA_API_KEY"):
            await NvidiaProvider("", "m", "https://integrate.api.nvidia.com/v1").complete("p")


class TestSummaryRoute:
    BODY = {"owner": "facebook", "repo": "react", "prNumber": 31427, "diffData": [{"filename": "a.js", "patch": "+x"}]}

    def test_missing_fields(self, signed_in_client):
        response = signed_in_client.post("/api/generate-summary", json={"owner": "facebook"})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required information. Please fetch a valid PR first."

    def test_success_reports_fallback(self, app, signed_in_client, settings):
        primary = FakeProvider("groq", error=RateLimitError("too large"))
        fallback = FakeProvider("nvidia", content="# Summary")
        app.dependency_overrides[get_ai] = lambda: AIService(settings, primary, fallback)

        response = signed_in_client.post("/api/generate-summary", json=self.BODY)

        assert response.status_code == 200
        assert response.json() == {"content": "# Summary", "usedFallback": True}

    def test_exhausted_is_413(self, app, signed_in_client, settings):
        primary = FakeProvider("groq", error=RateLimitError("too large"))
        fallback = FakeProvider("nvidia", error=AIProviderError("down"))
        app.dependency_overrides[get_ai] = lambda: AIService(settings, primary, fallback)

        response = signed_in_client.post("/api/generate-summary", json=self.BODY)

        assert response.status_code == 413
        assert "too large to summarize" in response.json()["error"]

    def test_generic_failure_is_500(self, app, signed_in_client, settings):
        primary = FakeProvider("groq", error=AIProviderError("AI generation failed"))
        app.dependency_overrides[get_ai] = lambda: AIService(settings, primary, FakeProvider("nvidia"))

        response = signed_in_client.post("/api/generate-summary", json=self.BODY)

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to generate documentation. Please try again."

    def test_requires_session(self, client):
        response = client.post("/api/generate-summary", json=self.BODY)
        assert response.status_code == 401
