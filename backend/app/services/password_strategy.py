"""
OrgTrack Backend — Email/Password Strategy
===========================================

What:  The "local" AuthStrategy: looks a user up by email and checks the
       password against the stored bcrypt hash.
How:   bcrypt runs in Starlette's threadpool so hashing never blocks the
       event loop.
"""

import logging
from typing import Any, Dict, Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.exceptions import AuthenticationError
from app.models.user import User
from app.services.auth_base import AuthStrategy

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds or settings.password_hash_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Check a password against a bcrypt hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.error("Password verification failed: %s", str(e))
        return False


class PasswordStrategy(AuthStrategy):
    name = "local"

    async def authenticate(self, db: AsyncSession, credentials: Dict[str, Any]) -> User:
        email = str(credentials.get("email", "")).strip().lower()
        password = str(credentials.get("password", ""))
        if not email or not password:
            raise AuthenticationError(message=INVALID_CREDENTIALS)

        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None:
            logger.info("Login rejected: unknown email")
            raise AuthenticationError(message=INVALID_CREDENTIALS)

        matches = await run_in_threadpool(verify_password, password, user.password_hash)
        if not matches:
            logger.info("Login rejected: bad password for user %s", user.id)
            raise AuthenticationError(message=INVALID_CREDENTIALS, context={"user_id": str(user.id)})

        return user
