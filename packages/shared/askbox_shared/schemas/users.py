"""Identity schemas: registration, login and the current-user view."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from .common import APIModel


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class RegisterRequest(APIModel):
    username: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(min_length=1)
    is_creator: bool = False
    organization_url: Optional[str] = Field(
        default=None,
        description="Slug of an organization to join on registration (non-creators only)",
    )


class LoginRequest(APIModel):
    email: EmailStr
    password: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class UserResponse(APIModel):
    """A user as shown to themselves. Never carries the password hash."""
    id: uuid.UUID
    username: str
    email: str
    is_creator: bool
    organizations: list[uuid.UUID] = []
    created_at: Optional[datetime] = None


class AuthResponse(APIModel):
    token: str
    user: UserResponse
