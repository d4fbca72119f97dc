"""
Security middleware for the access API.

Cookie-authenticated browsers must echo the CSRF cookie in ``X-CSRF-Token``
on unsafe methods. Bearer-authenticated clients are exempt.
"""

from __future__ import annotations

import hmac

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.config import get_settings
from app.core.errors import CSRFValidationFailed, error_response

log = structlog.get_logger()

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
CSRF_HEADER = "X-CSRF-Token"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
    # /docs loads swagger-ui from jsdelivr
    "Content-Security-Policy": (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data: https://fastapi.tiangolo.com; "
        "connect-src 'self'; "
        "frame-ancestors 'none';"
    ),
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response


def needs_csrf_check(request: Request) -> bool:
    """True for unsafe requests whose only credential is the session cookie."""
    if request.method in SAFE_METHODS:
        return False
    if request.headers.get("Authorization"):
        return False
    return get_settings().session_cookie_name in request.cookies


class CSRFMiddleware(BaseHTTPMiddleware):
    """Double-submit cookie check."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if needs_csrf_check(request):
            cookie_token = request.cookies.get(get_settings().csrf_cookie_name, "").encode()
            header_token = request.headers.get(CSRF_HEADER, "").encode()
            if not cookie_token or not hmac.compare_digest(cookie_token, header_token):
                log.warning("csrf.rejected", method=request.method, path=request.url.path)
                return error_response(CSRFValidationFailed())
        return await call_next(request)
