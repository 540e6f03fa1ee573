"""Question model (append-only)."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class Question(UUIDMixin, SQLModel, table=True):
    __tablename__ = "questions"
    __table_args__ = (
        # One row per (author, org, sequence): the conditional insert that
        # makes admission atomic per pair.
        sa.UniqueConstraint(
            "user_id", "organization_id", "sequence", name="uq_questions_author_org_sequence"
        ),
        sa.Index("ix_questions_author_org_created", "user_id", "organization_id", "created_at"),
        sa.Index("ix_questions_org_created", "organization_id", "created_at"),
        sa.CheckConstraint("sequence >= 1", name="ck_questions_sequence_positive"),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    content: str = Field(nullable=False, sa_type=sa.Text)
    is_anonymous: bool = Field(default=False, nullable=False)
    sequence: int = Field(nullable=False)  # per (author, org), starts at 1
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    last_message_time: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
