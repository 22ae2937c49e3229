"""Prometheus metric definitions for PR Doc Generator.

Single source of truth for all custom metrics. Import from here in services and routes.
"""

from prometheus_client import Counter

# --- Credential metrics ---

google_token_refresh_total = Counter(
    "prdoc_google_token_refresh_total",
    "Google access token refresh attempts by outcome",
    ["outcome"],
)

github_token_source_total = Counter(
    "prdoc_github_token_source_total",
    "GitHub credentials resolved, by source (pat, session, env)",
    ["source"],
)

# --- Business metrics ---

ai_generations_total = Counter(
    "prdoc_ai_generations_total",
    "AI generation attempts by provider and outcome",
    ["provider", "outcome"],
)

docs_created_total = Counter(
    "prdoc_docs_created_total",
    "Google Docs created, by authentication mode",
    ["mode"],
)
