"""
OrgTrack Backend — User Service
================================

What:  Registration and principal lookup.
Who:   POST /auth/register calls register(); the Authenticator calls
       load_user() on every request whose session names a principal.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.database import async_session_factory
from app.exceptions import DatabaseError, ValidationError
from app.models.user import User
from app.services.password_strategy import hash_password

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL = "An account with this email already exists"


class UserService:

    async def register(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        display_name: Optional[str] = None,
    ) -> User:
        """
        Create a user with a bcrypt-hashed password.

        Raises:
            ValidationError: Email already registered (→ 400)
            DatabaseError: Insert failed (→ 500)
        """
        existing = await db.execute(select(User).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise ValidationError(message=DUPLICATE_EMAIL, field="email")

        password_hash = await run_in_threadpool(hash_password, password)
        user = User(email=email, display_name=display_name, password_hash=password_hash)

        try:
            db.add(user)
            await db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            await db.rollback()
            raise ValidationError(message=DUPLICATE_EMAIL, field="email")
        except Exception as e:
            logger.error("Failed to register user: %s", str(e), exc_info=True)
            await db.rollback()
            raise DatabaseError(
                message="Failed to register user",
                context={"error_type": type(e).__name__},
            )

        logger.info("Registered user %s", user.id)
        return user

    async def get_user(self, db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
        return await db.get(User, user_id)


async def load_user(user_id: uuid.UUID) -> Optional[User]:
    """Principal loader used by the session restoration stage (own DB session)."""
    async with async_session_factory() as db:
        return await user_service.get_user(db, user_id)


user_service = UserService()
