"""
OrgTrack Backend — Authentication Middleware
=============================================

What:  Makes the authenticator available to handlers and attaches the
       session's principal (or None) to request.state.user.
When:  Last stage before the router, after SessionMiddleware.

This stage never rejects a request. Routes that need a principal check
request.state.user themselves (see require_principal).
"""

from starlette.types import ASGIApp, Receive, Scope, Send

from app.services.authenticator import Authenticator


class AuthenticationMiddleware:
    """Attaches the authenticator and the restored principal to request.state."""

    def __init__(self, app: ASGIApp, authenticator: Authenticator):
        self.app = app
        self.authenticator = authenticator

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            state = scope.setdefault("state", {})
            state["authenticator"] = self.authenticator
            state["user"] = await self.authenticator.restore(scope.get("session"))
        await self.app(scope, receive, send)
