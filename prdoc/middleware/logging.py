"""Structured logging middleware with secret redaction."""

import logging
import re
import time
import uuid
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
# GitHub PAT/OAuth tokens and Google access tokens
TOKEN_PATTERN = re.compile(r"\b(?:ghp_|gho_|github_pat_|ya29\.)[A-Za-z0-9_.\-]+")


def redact_secrets(text: str) -> str:
    """Redact email addresses and provider tokens from text."""
    text = EMAIL_PATTERN.sub("[REDACTED_EMAIL]", text)
    text = TOKEN_PATTERN.sub("[REDACTED_TOKEN]", text)
    return text


def setup_logging(debug: bool = False) -> None:
    """Configure structlog for JSON output."""
    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
    )


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log each request once it completes, with the signed-in user when known.

    The request id is bound to structlog's context vars so every structlog
    event emitted while handling the request carries it.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        logger = structlog.get_logger()

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        session = getattr(request.state, "session", None)
        await logger.ainfo(
            "request_completed",
            request_id=request_id,
            method=request.method,
            path=redact_secrets(request.url.path),
            status_code=response.status_code,
            user=session.sub if session is not None else None,
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )

        response.headers["X-Request-ID"] = request_id
        return response
