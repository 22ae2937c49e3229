"""Global error handling middleware."""

import logging
import traceback

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from prdoc.middleware.logging import redact_secrets

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal error occurred. Please try again later."


def internal_error_response(exc: Exception) -> JSONResponse:
    """Log an unexpected exception with tokens redacted and build the 500 body."""
    logger.error("Unhandled exception: %s\n%s", redact_secrets(str(exc)), redact_secrets(traceback.format_exc()))
    return JSONResponse(
        status_code=500,
        content={"error": INTERNAL_ERROR_MESSAGE, "error_type": type(exc).__name__},
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Last resort for exceptions raised outside the auth gate."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            return internal_error_response(exc)
