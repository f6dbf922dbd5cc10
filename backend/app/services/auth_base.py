"""
OrgTrack Backend — Abstract Authentication Strategy
====================================================

What:  Contract for pluggable credential verification.
How:   Concrete strategies inherit from AuthStrategy and implement
       authenticate(). The Authenticator keeps a registry of strategies by
       name; routes ask for a strategy by name and never import one directly.
Who:   Called by POST /auth/login through Authenticator.authenticate().

Implementations:
    - PasswordStrategy ("local"): email + bcrypt-hashed password
"""

from abc import ABC, abstractmethod
from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User


class AuthStrategy(ABC):
    """
    Abstract interface for verifying credentials.

    Contract:
        - authenticate() returns the matching User or raises AuthenticationError
        - Implementations never reveal which part of the credentials was wrong
    """

    name: str = ""

    @abstractmethod
    async def authenticate(self, db: AsyncSession, credentials: Dict[str, Any]) -> User:
        """
        Verify credentials and return the principal.

        Args:
            db: Async database session
            credentials: Strategy-specific fields from the login body

        Raises:
            AuthenticationError: Credentials rejected
        """
        ...
