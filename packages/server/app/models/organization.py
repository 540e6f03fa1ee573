"""Organization model."""

import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin

DEFAULT_COOLDOWN_MS = 60000


class Organization(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"
    __table_args__ = (
        sa.CheckConstraint("cooldown_time >= 0", name="ck_organizations_cooldown_non_negative"),
    )

    name: str = Field(nullable=False, index=True)
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    unique_url: str = Field(unique=True, nullable=False, index=True)
    allow_messages: bool = Field(default=False, nullable=False)
    cooldown_time: int = Field(default=DEFAULT_COOLDOWN_MS, nullable=False)  # milliseconds
    one_question_per_user: bool = Field(default=False, nullable=False)
