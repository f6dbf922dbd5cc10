"""
OrgTrack Backend — Session Store and Session Object
====================================================

What:  Encodes/decodes the client-held session cookie and defines the
       request-scoped Session object handlers mutate.
How:   The cookie value is an HS256-signed JWT carrying the session dict
       under "data" and an "exp" claim 24 hours after issuance (PyJWT).
       Nothing is stored server-side.

Session persistence interface:
    SessionStore.regenerate(session) and SessionStore.save(session) are the
    hooks login/logout flows call. They are chosen when the store is built:
    SignedCookieSessionStore implements both as no-ops because the cookie is
    re-issued from the session contents on the response anyway.
    Session.regenerate(callback) / Session.save(callback) always invoke the
    callback synchronously after the store hook returns.
"""

import enum
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import jwt

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    """
    Where a request's session stands when control reaches the router.

    NO_SESSION and INVALID are treated identically downstream: no principal.
    """

    NO_SESSION = "no_session"
    INVALID = "invalid"
    VALID = "valid"


class SessionStore(ABC):
    """Interface for session persistence."""

    @abstractmethod
    def load(self, cookie_value: str) -> Optional[Dict[str, Any]]:
        """Decode a cookie value. Returns None when it is missing, tampered or expired."""
        ...

    @abstractmethod
    def dump(self, data: Dict[str, Any]) -> str:
        """Encode session data into a cookie value."""
        ...

    def regenerate(self, session: "Session") -> None:
        """Hook run when a session is regenerated (e.g. on login)."""
        return None

    def save(self, session: "Session") -> None:
        """Hook run when a session is explicitly saved."""
        return None


class SignedCookieSessionStore(SessionStore):
    """Stateless store: the whole session lives in a signed cookie."""

    ALGORITHM = "HS256"

    def __init__(self, secret_key: str, max_age: int, clock: Callable[[], float] = time.time):
        if not secret_key:
            raise ValueError("A session secret key is required")
        self.secret_key = secret_key
        self.max_age = max_age
        self._clock = clock

    def load(self, cookie_value: str) -> Optional[Dict[str, Any]]:
        try:
            payload = jwt.decode(
                cookie_value,
                self.secret_key,
                algorithms=[self.ALGORITHM],
                # Expiry is checked below against the store clock
                options={"require": ["exp", "iat"], "verify_exp": False},
            )
        except jwt.InvalidTokenError as e:
            logger.info("Rejected session cookie: %s", str(e))
            return None

        if payload["exp"] <= self._clock():
            logger.debug("Session cookie expired")
            return None

        data = payload.get("data")
        if not isinstance(data, dict):
            return None
        return data

    def dump(self, data: Dict[str, Any]) -> str:
        now = int(self._clock())
        payload = {"data": dict(data), "iat": now, "exp": now + self.max_age}
        return jwt.encode(payload, self.secret_key, algorithm=self.ALGORITHM)


class Session(dict):
    """
    Request-scoped session.

    A plain dict that remembers whether it was changed, so the session
    middleware only re-issues the cookie when there is something new to send.
    """

    def __init__(
        self,
        data: Optional[Dict[str, Any]] = None,
        store: Optional[SessionStore] = None,
        state: SessionState = SessionState.NO_SESSION,
    ):
        super().__init__(data or {})
        self.store = store
        self.state = state
        self.modified = False

    def __setitem__(self, key, value):
        self.modified = True
        super().__setitem__(key, value)

    def __delitem__(self, key):
        self.modified = True
        super().__delitem__(key)

    def clear(self):
        self.modified = True
        super().clear()

    def pop(self, key, *args):
        self.modified = True
        return super().pop(key, *args)

    def update(self, *args, **kwargs):
        self.modified = True
        super().update(*args, **kwargs)

    def setdefault(self, key, default=None):
        if key not in self:
            self.modified = True
        return super().setdefault(key, default)

    def regenerate(self, callback: Optional[Callable[[], None]] = None) -> None:
        if self.store is not None:
            self.store.regenerate(self)
        if callback is not None:
            callback()

    def save(self, callback: Optional[Callable[[], None]] = None) -> None:
        if self.store is not None:
            self.store.save(self)
        if callback is not None:
            callback()
