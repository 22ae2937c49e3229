"""AI generation with a primary provider and a rate-limit fallback."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import anthropic
import httpx
import openai

from prdoc.config import Settings
from prdoc.errors import AIProviderError, AllProvidersExhaustedError, RateLimitError
from prdoc.metrics import ai_generations_total
from prdoc.services.ai_prompts import DIFF_TRUNCATED_MARKER, SUMMARY_PROMPT

logger = logging.getLogger(__name__)

# Rough size heuristic; the limit is a safety margin, not a billing figure
CHARS_PER_TOKEN = 4

_RATE_LIMIT_STATUSES = (413, 429)
_RATE_LIMIT_CODES = ("rate_limit", "request_too_large")


@dataclass(frozen=True)
class GenerationResult:
    content: str
    used_fallback: bool = False


class AIProvider(ABC):
    """Abstract base class for AI providers."""

    name: str = "unknown"

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Send a prompt and return the completion text."""
        ...


def _classify_primary_error(exc: openai.APIError) -> AIProviderError:
    """Map an SDK error onto the rate-limit / generic split."""
    status = getattr(exc, "status_code", None)
    code = str(getattr(exc, "code", "") or "")
    if status in _RATE_LIMIT_STATUSES or any(marker in code for marker in _RATE_LIMIT_CODES):
        return RateLimitError("AI provider rejected the request size or rate", details=code or str(status))
    return AIProviderError("AI generation failed", details=type(exc).__name__)


class GroqProvider(AIProvider):
    """Groq through its OpenAI-compatible API. Streams and concatenates chunks."""

    name = "groq"

    def __init__(self, api_key: str, model: str, base_url: str) -> None:
        self._client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._model = model

    async def complete(self, prompt: str) -> str:
        try:
            stream = await self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                temperature=1,
                max_completion_tokens=8192,
                top_p=1,
                stream=True,
            )
            parts: list[str] = []
            async for chunk in stream:
                if chunk.choices:
                    parts.append(chunk.choices[0].delta.content or "")
        except openai.APIError as e:
            logger.error("Groq API error: %s", e)
            raise _classify_primary_error(e) from e
        return "".join(parts)


class NvidiaProvider(AIProvider):
    """NVIDIA hosted chat completions, single non-streamed call."""

    name = "nvidia"

    def __init__(self, api_key: str, model: str, base_url: str) -> None:
        self._api_key = api_key
        self._model = model
        self._url = f"{base_url.rstrip('/')}/chat/completions"

    async def complete(self, prompt: str) -> str:
        if not self._api_key:
            raise AIProviderError("NVIDIA_API_KEY not configured")

        payload = {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": 16384,
            "temperature": 1.0,
            "top_p": 1.0,
            "stream": False,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=120.0) as client:
                response = await client.post(self._url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise AIProviderError("NVIDIA API unreachable", details=type(e).__name__) from e

        if response.status_code != 200:
            logger.error("NVIDIA API error: %d %s", response.status_code, response.text[:500])
            raise AIProviderError(f"NVIDIA API error: {response.status_code}")

        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            raise AIProviderError("No response from NVIDIA API")
        return choices[0]["message"]["content"]


class AnthropicProvider(AIProvider):
    """Anthropic API provider."""

    name = "anthropic"

    def __init__(self, api_key: str, model: str) -> None:
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model

    async def complete(self, prompt: str) -> str:
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=8192,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise AIProviderError("Anthropic API error", details=type(e).__name__) from e
        return response.content[0].text


def estimate_tokens(text: str) -> int:
    return len(text) // CHARS_PER_TOKEN


def truncate_diff(
    files: list[dict[str, Any]],
    max_files: int = 20,
    max_lines_per_file: int = 100,
) -> list[dict[str, Any]]:
    """Cap the number of files and the patch length of each file.

    A cut patch keeps its first ``max_lines_per_file`` lines followed by a
    single marker line with the number of lines dropped. Entries that are
    already within limits are returned as-is.
    """
    truncated: list[dict[str, Any]] = []
    for entry in files[:max_files]:
        patch = entry.get("patch")
        if not patch:
            truncated.append(entry)
            continue
        lines = patch.split("\n")
        if len(lines) <= max_lines_per_file:
            truncated.append(entry)
            continue
        omitted = len(lines) - max_lines_per_file
        kept = "\n".join(lines[:max_lines_per_file])
        truncated.append({**entry, "patch": f"{kept}\n... ({omitted} more lines truncated)"})

    if len(files) > max_files:
        logger.info("Diff truncated from %d to %d files", len(files), max_files)
    return truncated


def build_summary_prompt(
    owner: str,
    repo: str,
    pr_number: str,
    diff_data: list[dict[str, Any]],
    max_tokens: int,
) -> str:
    """Render the summary prompt, cutting the diff JSON if it is over budget."""
    diff_json = json.dumps(diff_data)
    prompt = SUMMARY_PROMPT.format(owner=owner, repo=repo, pr_number=pr_number, diff_data=diff_json)
    if estimate_tokens(prompt) <= max_tokens:
        return prompt

    overhead = len(prompt) - len(diff_json) + len(DIFF_TRUNCATED_MARKER)
    allowed = max(0, max_tokens * CHARS_PER_TOKEN - overhead)
    logger.info("Prompt over budget (%d est. tokens); keeping %d diff chars", estimate_tokens(prompt), allowed)
    return SUMMARY_PROMPT.format(
        owner=owner,
        repo=repo,
        pr_number=pr_number,
        diff_data=diff_json[:allowed] + DIFF_TRUNCATED_MARKER,
    )


class AIService:
    """Primary-then-fallback generation."""

    def __init__(
        self,
        settings: Settings,
        primary: AIProvider | None = None,
        fallback: AIProvider | None = None,
    ) -> None:
        self._settings = settings
        self._primary = primary or GroqProvider(
            api_key=settings.groq_api_key.get_secret_value(),
            model=settings.groq_model,
            base_url=settings.groq_base_url,
        )
        if fallback is not None:
            self._fallback = fallback
        elif settings.fallback_provider == "anthropic":
            self._fallback = AnthropicProvider(
                api_key=settings.anthropic_api_key.get_secret_value(),
                model=settings.anthropic_model,
            )
        elif settings.fallback_provider == "nvidia":
            self._fallback = NvidiaProvider(
                api_key=settings.nvidia_api_key.get_secret_value(),
                model=settings.nvidia_model,
                base_url=settings.nvidia_base_url,
            )
        else:
            raise ValueError(f"Unknown fallback provider: {settings.fallback_provider}")

    async def generate(self, prompt: str) -> GenerationResult:
        """Run the primary provider, falling back only on ``RateLimitError``.

        Any other primary failure propagates unchanged. A fallback failure
        becomes ``AllProvidersExhaustedError``.
        """
        try:
            content = await self._primary.complete(prompt)
        except RateLimitError as e:
            ai_generations_total.labels(provider=self._primary.name, outcome="rate_limited").inc()
            logger.warning("%s rate limited (%s); falling back to %s", self._primary.name, e.details, self._fallback.name)
        except AIProviderError:
            ai_generations_total.labels(provider=self._primary.name, outcome="error").inc()
            raise
        else:
            ai_generations_total.labels(provider=self._primary.name, outcome="success").inc()
            return GenerationResult(content=content)

        try:
            content = await self._fallback.complete(prompt)
        except AIProviderError as e:
            ai_generations_total.labels(provider=self._fallback.name, outcome="error").inc()
            logger.error("Fallback provider %s failed: %s", self._fallback.name, e.message)
            raise AllProvidersExhaustedError(details=e.message) from e

        ai_generations_total.labels(provider=self._fallback.name, outcome="success").inc()
        return GenerationResult(content=content, used_fallback=True)

    async def generate_summary(
        self,
        owner: str,
        repo: str,
        pr_number: str,
        diff_data: list[dict[str, Any]],
    ) -> GenerationResult:
        """Summarize a PR diff as Markdown."""
        files = truncate_diff(
            diff_data,
            max_files=self._settings.max_diff_files,
            max_lines_per_file=self._settings.max_patch_lines,
        )
        prompt = build_summary_prompt(owner, repo, pr_number, files, self._settings.max_prompt_tokens)
        result = await self.generate(prompt)
        logger.info("Generated AI summary for %s/%s#%s (fallback=%s)", owner, repo, pr_number, result.used_fallback)
        return result


_ai_service: AIService | None = None


def get_ai_service(settings: Settings) -> AIService:
    """Process-wide service so SDK clients and their connection pools are reused."""
    global _ai_service
    if _ai_service is None or _ai_service._settings is not settings:
        _ai_service = AIService(settings)
    return _ai_service
