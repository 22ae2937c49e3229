"""Error taxonomy shared by services and routes.

Every error a route can surface derives from ``PRDocError`` and carries the
HTTP status and the user-facing message. The exception handler registered in
``prdoc.main`` turns them into ``{"error": ..., "details": ...}`` bodies.
"""


class PRDocError(Exception):
    """Base error with an HTTP status and a user-facing message."""

    status_code = 500

    def __init__(self, message: str, *, details: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, str]:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class BadRequestError(PRDocError):
    status_code = 400


class AuthenticationRequiredError(PRDocError):
    status_code = 401


class GitHubAuthRequiredError(AuthenticationRequiredError):
    def __init__(self, message: str = "GitHub authentication required. Please reconnect GitHub.", **kwargs) -> None:
        super().__init__(message, **kwargs)


class GoogleAuthRequiredError(AuthenticationRequiredError):
    def __init__(
        self,
        message: str = "Google Drive authentication required. Please connect Google Drive.",
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)


class MissingCredentialsError(AuthenticationRequiredError):
    """Raised by route guards when one or more providers are not connected."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        hints = []
        if "GitHub" in self.missing:
            hints.append("reconnect GitHub")
        if "Google Drive" in self.missing:
            hints.append("connect Google Drive")
        super().__init__(
            f"Missing credentials: {', '.join(self.missing)}",
            details=f"Please {' and '.join(hints)}." if hints else None,
        )


class UpstreamError(PRDocError):
    """A provider rejected the call; ``message`` is already user-safe."""

    def __init__(self, message: str, *, status_code: int, provider: str, details: str | None = None) -> None:
        super().__init__(message, details=details, status_code=status_code)
        self.provider = provider


class AIProviderError(PRDocError):
    """Generic failure from an AI provider."""


class RateLimitError(AIProviderError):
    """The provider rejected the request for size or rate reasons."""

    status_code = 413


class AllProvidersExhaustedError(AIProviderError):
    status_code = 413

    def __init__(
        self,
        message: str = "The pull request is too large to summarize. Please try a smaller PR.",
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
