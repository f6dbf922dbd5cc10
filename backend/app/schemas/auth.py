"""
OrgTrack Backend — Authentication Schemas
==========================================

What:  Bodies for /auth/register and /auth/login, and the public user shape.
       UserRead deliberately has no password_hash field.
"""

import uuid
from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, Field

from app.schemas.common import APIModel


def _normalize_email(v: str) -> str:
    cleaned = v.strip().lower()
    if "@" not in cleaned or cleaned.startswith("@") or cleaned.endswith("@"):
        raise ValueError("must be a valid email address")
    return cleaned


EmailAddress = Annotated[str, Field(min_length=3, max_length=255), AfterValidator(_normalize_email)]


class RegisterRequest(APIModel):
    email: EmailAddress
    password: str = Field(min_length=8, max_length=128)
    display_name: Optional[str] = Field(default=None, max_length=255)


class LoginRequest(APIModel):
    email: EmailAddress
    password: str = Field(min_length=1, max_length=128)


class UserRead(APIModel):
    id: uuid.UUID
    email: str
    display_name: Optional[str] = None
    created_at: datetime


class UserEnvelope(APIModel):
    user: UserRead
    message: Optional[str] = None


class MessageResponse(APIModel):
    message: str
