"""
Authentication for Askbox.

Supports:
- Password hashing (bcrypt) for email/password credentials
- JWT issuance and resolution, carried in a custom request header
- JWT revocation via the Redis revoked-token list (logout)
- The ``get_current_principal`` FastAPI dependency used by protected routes
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import InvalidToken, NotFound, TokenExpired, Unauthenticated
from app.core.redis import is_token_id_revoked
from app.models.user import User

log = structlog.get_logger()
settings = get_settings()

auth_token_header = APIKeyHeader(name=settings.auth_header_name, auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(
        token,
        settings.secret_key,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp", "jti"]},
    )


# ---------------------------------------------------------------------------
# Principal resolution
# ---------------------------------------------------------------------------

@dataclass
class Principal:
    """The authenticated caller, as seen by the services."""

    user: User
    token_id: Optional[str] = None
    token_expires_at: Optional[datetime] = None

    @property
    def id(self) -> uuid.UUID:
        return self.user.id

    @property
    def is_creator(self) -> bool:
        return self.user.is_creator


async def resolve_token(token: str) -> dict:
    """Verify a token and return its claims.

    Raises ``TokenExpired`` for expired tokens and ``InvalidToken`` for bad
    signatures, malformed payloads and revoked token ids.
    """
    try:
        claims = decode_jwt(token)
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.PyJWTError:
        raise InvalidToken()

    try:
        uuid.UUID(claims["sub"])
    except (TypeError, ValueError):
        raise InvalidToken()

    if await is_token_id_revoked(claims["jti"]):
        raise InvalidToken("Token has been revoked")
    return claims


async def principal_for_user_id(user_id: uuid.UUID, session: AsyncSession) -> Principal:
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return Principal(user=user)


async def get_current_principal(
    token: Optional[str] = Depends(auth_token_header),
    session: AsyncSession = Depends(get_session),
) -> Principal:
    """Main authentication dependency: resolve the token header to a Principal."""
    if not token or not token.strip():
        raise Unauthenticated()

    claims = await resolve_token(token.strip())
    principal = await principal_for_user_id(uuid.UUID(claims["sub"]), session)
    principal.token_id = claims["jti"]
    principal.token_expires_at = datetime.fromtimestamp(claims["exp"], tz=timezone.utc)
    return principal
