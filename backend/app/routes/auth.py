"""
OrgTrack Backend — Authentication Routes
=========================================

What:  Issue and destroy sessions, mounted under /{base}/auth.

    POST /auth/register   201 {"user": {...}, "message": "User registered successfully"}
    POST /auth/login      200 {"user": {...}, "message": "Logged in successfully"}
                          + Set-Cookie with the signed session
    POST /auth/logout     200 {"message": "Logged out successfully"}; cookie cleared
    GET  /auth/me         200 {"user": {...}} or 401 without a principal

How:   Credentials are checked by the "local" strategy registered on the
       Authenticator that AuthenticationMiddleware placed on request.state.
       Registration does not log the user in.
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.auth import (
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UserEnvelope,
    UserRead,
)
from app.schemas.common import ErrorResponse
from app.services.authenticator import Authenticator, require_principal
from app.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

LOCAL_STRATEGY = "local"


@router.post(
    "/register",
    status_code=201,
    response_model=UserEnvelope,
    response_model_exclude_none=True,
    responses={400: {"description": "Invalid body or email taken", "model": ErrorResponse}},
    summary="Create an account",
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> UserEnvelope:
    user = await user_service.register(
        db,
        email=payload.email,
        password=payload.password,
        display_name=payload.display_name,
    )
    return UserEnvelope(user=UserRead.model_validate(user), message="User registered successfully")


@router.post(
    "/login",
    response_model=UserEnvelope,
    response_model_exclude_none=True,
    responses={401: {"description": "Invalid email or password", "model": ErrorResponse}},
    summary="Start a session",
)
async def login(
    payload: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> UserEnvelope:
    authenticator: Authenticator = request.state.authenticator
    user = await authenticator.authenticate(
        LOCAL_STRATEGY, db, {"email": payload.email, "password": payload.password}
    )
    authenticator.login(request.session, user)
    logger.info("User %s logged in", user.id)
    return UserEnvelope(user=UserRead.model_validate(user), message="Logged in successfully")


@router.post("/logout", response_model=MessageResponse, summary="End the session")
async def logout(request: Request) -> MessageResponse:
    authenticator: Authenticator = request.state.authenticator
    authenticator.logout(request.session)
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/me",
    response_model=UserEnvelope,
    response_model_exclude_none=True,
    responses={401: {"description": "No active session", "model": ErrorResponse}},
    summary="Current principal",
)
async def me(request: Request) -> UserEnvelope:
    user = require_principal(request.state.user)
    return UserEnvelope(user=UserRead.model_validate(user))
