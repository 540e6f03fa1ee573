"""Initial schema: users, organizations, membership lists and questions.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("is_creator", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column(
            "owner_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column("unique_url", sa.Text(), nullable=False),
        sa.Column("allow_messages", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("cooldown_time", sa.Integer(), nullable=False, server_default="60000"),
        sa.Column(
            "one_question_per_user", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("cooldown_time >= 0", name="ck_organizations_cooldown_non_negative"),
    )
    op.create_index("ix_organizations_name", "organizations", ["name"])
    op.create_index("ix_organizations_owner_id", "organizations", ["owner_id"])
    op.create_index("ix_organizations_unique_url", "organizations", ["unique_url"], unique=True)

    op.create_table(
        "organization_members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _timestamp("joined_at"),
        sa.UniqueConstraint("organization_id", "user_id", name="uq_organization_members"),
    )
    op.create_index(
        "ix_organization_members_organization_id", "organization_members", ["organization_id"]
    )
    op.create_index("ix_organization_members_user_id", "organization_members", ["user_id"])

    op.create_table(
        "user_organizations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _timestamp("added_at"),
        sa.UniqueConstraint("user_id", "organization_id", name="uq_user_organizations"),
    )
    op.create_index("ix_user_organizations_user_id", "user_organizations", ["user_id"])
    op.create_index(
        "ix_user_organizations_organization_id", "user_organizations", ["organization_id"]
    )

    # questions: append-only. The (user, org, sequence) constraint is the
    # conditional insert that serializes admission per pair.
    op.create_table(
        "questions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column(
            "organization_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("organizations.id"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sequence", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        _timestamp("last_message_time"),
        sa.UniqueConstraint(
            "user_id", "organization_id", "sequence", name="uq_questions_author_org_sequence"
        ),
        sa.CheckConstraint("sequence >= 1", name="ck_questions_sequence_positive"),
    )
    op.create_index("ix_questions_user_id", "questions", ["user_id"])
    op.create_index("ix_questions_organization_id", "questions", ["organization_id"])
    op.create_index(
        "ix_questions_author_org_created",
        "questions",
        ["user_id", "organization_id", "created_at"],
    )
    op.create_index("ix_questions_org_created", "questions", ["organization_id", "created_at"])


def downgrade() -> None:
    op.drop_table("questions")
    op.drop_table("user_organizations")
    op.drop_table("organization_members")
    op.drop_table("organizations")
    op.drop_table("users")
