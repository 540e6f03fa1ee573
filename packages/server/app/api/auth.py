"""
Authentication endpoints.

POST /api/auth/register  Register (optionally joining an org by URL)
POST /api/auth/login     Exchange email/password for a token
GET  /api/auth/user      The current user
POST /api/auth/logout    Revoke the current token
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Principal, get_current_principal
from app.core.database import get_session
from app.services import users as user_service
from askbox_shared.schemas.common import MessageResponse
from askbox_shared.schemas.users import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    UserResponse,
)

router = APIRouter()


@router.post("/register", response_model=AuthResponse)
async def register(
    body: RegisterRequest,
    session: AsyncSession = Depends(get_session),
):
    return await user_service.register(body, session)


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    return await user_service.login(body, session)


@router.get("/user", response_model=UserResponse)
async def current_user(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """The authenticated user, without credentials."""
    return await user_service.to_user_response(principal.user, session)


@router.post("/logout", response_model=MessageResponse)
async def logout(principal: Principal = Depends(get_current_principal)):
    await user_service.logout(principal)
    return MessageResponse(message="Logged out")
