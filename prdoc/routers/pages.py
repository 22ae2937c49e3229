"""Minimal HTML pages the auth gate redirects to."""

from html import escape
from urllib.parse import quote

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from prdoc.routers.auth import safe_callback_url

router = APIRouter(tags=["pages"])

_ERROR_MESSAGES = {
    "AccessDenied": "Access was denied. Please grant the requested permissions and try again.",
    "OAuthCallback": "Sign-in could not be completed. Please try again.",
}

_PAGE = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<h1>{title}</h1>
{body}
</body>
</html>"""


@router.get("/auth/signin", response_class=HTMLResponse)
async def signin_page(callbackUrl: str | None = None):
    target = escape(quote(safe_callback_url(callbackUrl), safe="/"), quote=True)
    body = (
        f'<p><a href="/api/auth/signin/github?callbackUrl={target}">Sign in with GitHub</a></p>\n'
        f'<p><a href="/api/auth/signin/google?callbackUrl={target}">Sign in with Google</a></p>'
    )
    return _PAGE.format(title="Sign in", body=body)


@router.get("/auth/error", response_class=HTMLResponse)
async def error_page(error: str | None = None):
    message = _ERROR_MESSAGES.get(error or "", "An authentication error occurred.")
    body = f'<p>{escape(message)}</p>\n<p><a href="/auth/signin">Back to sign in</a></p>'
    return _PAGE.format(title="Authentication error", body=body)
