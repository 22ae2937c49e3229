"""Session and auth request/response schemas."""

from pydantic import BaseModel


class SessionToken(BaseModel):
    """Internal session state carried in the signed session cookie."""

    sub: str
    name: str | None = None
    email: str | None = None
    image: str | None = None
    access_token: str | None = None
    google_access_token: str | None = None
    google_refresh_token: str | None = None
    google_token_expiry: int | None = None
    error: str | None = None


class SessionUser(BaseModel):
    id: str
    name: str | None = None
    email: str | None = None
    image: str | None = None


class SessionView(BaseModel):
    """What the browser is allowed to see about the session."""

    user: SessionUser
    accessToken: str | None = None
    googleAccessToken: str | None = None
    error: str | None = None


class PATRequest(BaseModel):
    token: str | None = None


class PATStatusResponse(BaseModel):
    hasPat: bool


class SuccessResponse(BaseModel):
    success: bool = True
