"""
OrgTrack Backend — Security Headers Middleware
===============================================

What:  Adds a fixed set of browser-hardening headers to every response,
       including responses produced by later stages that short-circuit
       (rate limit, oversized body).
When:  First security stage; it never rejects a request.

Headers:
    Content-Security-Policy           restrictive default-src 'self' policy
    Cross-Origin-Opener-Policy        same-origin
    Cross-Origin-Resource-Policy      same-origin
    Origin-Agent-Cluster              ?1
    Referrer-Policy                   no-referrer
    Strict-Transport-Security         180 days, includeSubDomains
    X-Content-Type-Options            nosniff (MIME sniffing)
    X-DNS-Prefetch-Control            off
    X-Download-Options                noopen
    X-Frame-Options                   SAMEORIGIN (clickjacking)
    X-Permitted-Cross-Domain-Policies none
    X-XSS-Protection                  0 (legacy auditor disabled)

The interactive API docs load assets from a CDN, so CSP is skipped for them.
"""

from typing import Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; "
    "base-uri 'self'; "
    "font-src 'self' https: data:; "
    "form-action 'self'; "
    "frame-ancestors 'self'; "
    "img-src 'self' data:; "
    "object-src 'none'; "
    "script-src 'self'; "
    "script-src-attr 'none'; "
    "style-src 'self' https: 'unsafe-inline'; "
    "upgrade-insecure-requests"
)

SECURITY_HEADERS: Dict[str, str] = {
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}

DOCS_PATHS = {"/docs", "/redoc", "/docs/oauth2-redirect"}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamps SECURITY_HEADERS on every response; the CSP is left off the docs pages."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)

        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        if request.url.path not in DOCS_PATHS:
            response.headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY

        return response
