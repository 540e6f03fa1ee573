"""
Identity store: registration, credential verification and user lookup.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Principal, create_jwt, hash_password, verify_password
from app.core.errors import AlreadyRegistered, InvalidCredentials, NotFound, ValidationError
from app.core.redis import revoke_token_id
from app.models.base import as_utc
from app.models.membership import UserOrganization
from app.models.organization import Organization
from app.models.user import User
from app.services import organizations as org_service
from askbox_shared.schemas.users import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    UserResponse,
)

log = structlog.get_logger()


def _normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user(user_id: uuid.UUID, session: AsyncSession) -> User:
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return user


async def get_user_by_email(email: str, session: AsyncSession) -> Optional[User]:
    result = await session.execute(
        select(User).where(User.email == _normalize_email(email))
    )
    return result.scalar_one_or_none()


async def organization_ids_for(user_id: uuid.UUID, session: AsyncSession) -> list[uuid.UUID]:
    """The user's membership list, in the order entries were added."""
    result = await session.execute(
        select(UserOrganization.organization_id)
        .where(UserOrganization.user_id == user_id)
        .order_by(UserOrganization.id)
    )
    return list(result.scalars().all())


async def to_user_response(user: User, session: AsyncSession) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        is_creator=user.is_creator,
        organizations=await organization_ids_for(user.id, session),
        created_at=as_utc(user.created_at),
    )


async def _issue_token(user: User, session: AsyncSession) -> AuthResponse:
    token, _jti = create_jwt(user.id)
    return AuthResponse(token=token, user=await to_user_response(user, session))


async def _find_org_by_url_ci(url: str, session: AsyncSession) -> Optional[Organization]:
    """Case-insensitive exact slug match, as typed by a registering user."""
    result = await session.execute(
        select(Organization).where(func.lower(Organization.unique_url) == url.strip().lower())
    )
    return result.scalars().first()


async def register(req: RegisterRequest, session: AsyncSession) -> AuthResponse:
    """Register a user and issue a token.

    A non-creator may name an organization to join straight away; an unknown
    slug rejects the whole registration.
    """
    email = _normalize_email(req.email)
    username = req.username.strip()
    if not username:
        raise ValidationError("Username is required")

    result = await session.execute(
        select(User).where(or_(User.email == email, User.username == username))
    )
    existing = result.scalars().first()
    if existing:
        detail = "User Already Exists" if existing.email == email else "Username already taken"
        raise AlreadyRegistered(detail)

    org: Optional[Organization] = None
    if not req.is_creator and req.organization_url and req.organization_url.strip():
        org = await _find_org_by_url_ci(req.organization_url, session)
        if not org:
            raise ValidationError("Invalid organization URL")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(req.password),
        is_creator=req.is_creator,
    )
    session.add(user)
    await session.flush()

    if org is not None:
        await org_service.add_membership(org, user.id, session)

    log.info(
        "user.registered",
        user_id=str(user.id),
        is_creator=user.is_creator,
        joined_org=str(org.id) if org else None,
    )
    return await _issue_token(user, session)


async def authenticate(email: str, password: str, session: AsyncSession) -> User:
    """Verify an email/password pair and return the matching user."""
    user = await get_user_by_email(email, session)
    if not user:
        raise InvalidCredentials("User not found, please register")
    if not verify_password(password, user.password_hash):
        log.warning("auth.login_failure", user_id=str(user.id), reason="bad_password")
        raise InvalidCredentials("Invalid Credentials")
    return user


async def login(req: LoginRequest, session: AsyncSession) -> AuthResponse:
    user = await authenticate(req.email, req.password, session)
    log.info("auth.login_success", user_id=str(user.id))
    return await _issue_token(user, session)


async def logout(principal: Principal) -> None:
    """Revoke the caller's current token for the rest of its lifetime."""
    if not principal.token_id:
        return
    ttl = 1
    if principal.token_expires_at is not None:
        remaining = principal.token_expires_at - datetime.now(timezone.utc)
        ttl = int(remaining.total_seconds()) + 1
    await revoke_token_id(principal.token_id, ttl)
    log.info("auth.logout", user_id=str(principal.id))
