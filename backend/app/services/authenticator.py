"""
OrgTrack Backend — Authenticator
=================================

What:  Registry of credential strategies plus the glue between a principal
       and the session: serialize on login, deserialize on every request,
       clear on logout.
How:   The session stores only the principal's id under SESSION_KEY. On each
       request, AuthenticationMiddleware calls restore() which turns that id
       back into a User through the injected user_loader.

Per-request session states (see app.services.session_store.SessionState):
    NO_SESSION ─┐
    INVALID ────┼─► no principal attached (request.state.user is None)
    VALID ──────┴─► principal resolvable?  yes → request.state.user = User
                                           no  → INVALID, no principal
"""

import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import AuthenticationError
from app.models.user import User
from app.services.auth_base import AuthStrategy
from app.services.session_store import Session, SessionState

logger = logging.getLogger(__name__)

UserLoader = Callable[[uuid.UUID], Awaitable[Optional[User]]]


class Authenticator:
    """
    Strategy registry and session glue.

    Usage:
        authenticator = Authenticator().use(PasswordStrategy())
        user = await authenticator.authenticate("local", db, credentials)
        authenticator.login(request.session, user)
    """

    SESSION_KEY = "principal"

    def __init__(self, user_loader: Optional[UserLoader] = None):
        if user_loader is None:
            from app.services.user_service import load_user

            user_loader = load_user
        self.user_loader = user_loader
        self._strategies: Dict[str, AuthStrategy] = {}

    def use(self, strategy: AuthStrategy) -> "Authenticator":
        """Register a strategy under its name. Returns self for chaining."""
        if not strategy.name:
            raise ValueError("Auth strategies must define a name")
        self._strategies[strategy.name] = strategy
        return self

    def strategy(self, name: str) -> AuthStrategy:
        try:
            return self._strategies[name]
        except KeyError:
            raise LookupError(f"Unknown authentication strategy '{name}'")

    async def authenticate(
        self, name: str, db: AsyncSession, credentials: Dict[str, Any]
    ) -> User:
        return await self.strategy(name).authenticate(db, credentials)

    # ── Session <-> principal ─────────────────────────────────────────────

    def serialize_user(self, user: User) -> str:
        return str(user.id)

    async def deserialize_user(self, value: Any) -> Optional[User]:
        try:
            user_id = uuid.UUID(str(value))
        except (TypeError, ValueError):
            return None
        return await self.user_loader(user_id)

    async def restore(self, session: Optional[Session]) -> Optional[User]:
        """
        Resolve the session into a principal. Never raises.

        A loader failure (e.g. database unreachable) is logged and the request
        continues without a principal; route guards decide what that means.
        """
        if session is None or session.state is not SessionState.VALID:
            return None
        if self.SESSION_KEY not in session:
            return None

        try:
            user = await self.deserialize_user(session[self.SESSION_KEY])
        except Exception as e:
            logger.warning("Could not restore principal from session: %s", str(e))
            user = None

        if user is None:
            session.state = SessionState.INVALID
        return user

    def login(self, session: Session, user: User) -> None:
        """Bind `user` to the session; the cookie is re-issued on the response."""
        session.regenerate()
        session.clear()
        session[self.SESSION_KEY] = self.serialize_user(user)
        session.state = SessionState.VALID
        session.save()

    def logout(self, session: Session) -> None:
        session.clear()
        session.state = SessionState.NO_SESSION
        session.save()


def require_principal(user: Optional[User]) -> User:
    """Route guard helper: raises 401 when no principal is attached."""
    if user is None:
        raise AuthenticationError()
    return user
