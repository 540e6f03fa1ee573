"""
Organization schemas: create/update/join requests and the public record.

Covers: admission policy fields (``cooldownTime`` in milliseconds and
``oneQuestionPerUser``), the messaging gate and membership.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from .common import APIModel


# Cooldowns are stored in a 32-bit INTEGER column.
MAX_COOLDOWN_MS = 2_147_483_647


class AdmissionPolicy(str, Enum):
    COOLDOWN = "cooldown"
    ONE_QUESTION_PER_USER = "one_question_per_user"


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(APIModel):
    name: str = Field(..., min_length=1, max_length=100, description="Organization display name")
    cooldown_time: Optional[int] = Field(
        default=None,
        ge=0,
        le=MAX_COOLDOWN_MS,
        description="Minimum milliseconds between a user's questions; 0 or absent means the default",
    )
    one_question_per_user: Optional[bool] = Field(
        default=None,
        description="Allow at most one question per user, ever (disables cooldown)",
    )


class OrgUpdateRequest(APIModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    cooldown_time: Optional[int] = Field(None, ge=0, le=MAX_COOLDOWN_MS)
    one_question_per_user: Optional[bool] = None


class OrgJoinRequest(APIModel):
    unique_url: Optional[str] = Field(default=None, description="Slug of the organization to join")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(APIModel):
    id: uuid.UUID
    name: str
    owner_id: uuid.UUID
    unique_url: str
    allow_messages: bool
    cooldown_time: int
    one_question_per_user: bool
    policy: AdmissionPolicy
    members: list[uuid.UUID] = []
    created_at: datetime
    updated_at: datetime


class OrgJoinResponse(APIModel):
    message: str
    organization: OrgResponse
