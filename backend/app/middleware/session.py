"""
OrgTrack Backend — Session Middleware
======================================

What:  Loads the session cookie into scope["session"] and writes it back on
       the response when a handler changed it.
How:   Pure ASGI. The cookie value is produced and checked by the injected
       SessionStore; this stage only deals with cookie transport.

Cookie attributes:
    HttpOnly, SameSite=Lax, Path=/, Max-Age = session_max_age (24h),
    Secure when session_cookie_secure is enabled.

Outcomes on the response:
    session modified and non-empty   → Set-Cookie with a fresh value
    session modified and now empty   → cookie cleared (only if one was sent)
    session untouched                → no Set-Cookie
"""

from typing import Optional

from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import settings
from app.services.session_store import Session, SessionState, SessionStore


class SessionMiddleware:
    """
    Cookie transport for sessions.

    Every HTTP request gets a Session in scope["session"], in one of the
    NO_SESSION, INVALID or VALID states. Set-Cookie is only emitted when a
    handler modified that session.
    """

    def __init__(
        self,
        app: ASGIApp,
        store: SessionStore,
        cookie_name: Optional[str] = None,
        max_age: Optional[int] = None,
        path: str = "/",
        same_site: str = "lax",
        https_only: Optional[bool] = None,
    ):
        self.app = app
        self.store = store
        self.cookie_name = cookie_name or settings.session_cookie_name
        self.max_age = max_age or settings.session_max_age
        self.path = path
        self.security_flags = f"httponly; samesite={same_site}"
        secure = settings.session_cookie_secure if https_only is None else https_only
        if secure:
            self.security_flags += "; secure"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        cookie = HTTPConnection(scope).cookies.get(self.cookie_name)
        if cookie is None:
            session = Session(store=self.store, state=SessionState.NO_SESSION)
        else:
            data = self.store.load(cookie)
            if data is None:
                session = Session(store=self.store, state=SessionState.INVALID)
            else:
                session = Session(data, store=self.store, state=SessionState.VALID)
        scope["session"] = session

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start" and session.modified:
                headers = MutableHeaders(scope=message)
                if session:
                    value = self.store.dump(dict(session))
                    headers.append(
                        "Set-Cookie",
                        f"{self.cookie_name}={value}; path={self.path}; "
                        f"Max-Age={self.max_age}; {self.security_flags}",
                    )
                elif cookie is not None:
                    headers.append(
                        "Set-Cookie",
                        f"{self.cookie_name}=null; path={self.path}; "
                        f"expires=Thu, 01 Jan 1970 00:00:00 GMT; {self.security_flags}",
                    )
            await send(message)

        await self.app(scope, receive, send_wrapper)
