"""
Question ledger: append-only storage and the anonymizing read projection.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import ValidationError
from app.models.base import as_utc
from app.models.question import Question
from app.models.user import User
from app.services import organizations as org_service
from askbox_shared.schemas.questions import ANONYMOUS_AUTHOR, QuestionAuthor, QuestionResponse

log = structlog.get_logger()


def require_content(content: str) -> str:
    """Questions need at least one non-whitespace character; text is kept as sent."""
    if not content or not content.strip():
        raise ValidationError("Question content is required")
    return content


async def latest_question_for(
    user_id: uuid.UUID,
    org_id: uuid.UUID,
    session: AsyncSession,
) -> Optional[Question]:
    """Most recent question by a user in an org: the pair's rate-limit state.

    Newest ``created_at`` wins; ``sequence`` breaks timestamp ties.
    """
    result = await session.execute(
        select(Question)
        .where(Question.user_id == user_id, Question.organization_id == org_id)
        .order_by(desc(Question.created_at), desc(Question.sequence))
        .limit(1)
    )
    return result.scalars().first()


async def append_question(
    session: AsyncSession,
    *,
    author_id: uuid.UUID,
    org_id: uuid.UUID,
    content: str,
    is_anonymous: bool,
    sequence: int,
    now: datetime,
) -> Question:
    """Persist a new question stamped with the acceptance moment.

    Raises ``IntegrityError`` when *sequence* is already taken for the pair.
    """
    question = Question(
        user_id=author_id,
        organization_id=org_id,
        content=require_content(content),
        is_anonymous=is_anonymous,
        sequence=sequence,
        created_at=now,
        last_message_time=now,
    )
    session.add(question)
    await session.flush()
    return question


def project_question(question: Question, author_username: Optional[str]) -> QuestionResponse:
    """Reader-facing view. Anonymous questions never carry the real author."""
    if question.is_anonymous:
        author = ANONYMOUS_AUTHOR.model_copy()
    else:
        author = QuestionAuthor(id=question.user_id, username=author_username or "")
    return QuestionResponse(
        id=question.id,
        organization_id=question.organization_id,
        content=question.content,
        is_anonymous=question.is_anonymous,
        author=author,
        created_at=as_utc(question.created_at),
        last_message_time=as_utc(question.last_message_time),
    )


async def list_for_organization(
    org_id: uuid.UUID,
    session: AsyncSession,
) -> list[QuestionResponse]:
    """All questions of an org, newest first, through the anonymizing projection."""
    result = await session.execute(
        select(Question, User.username)
        .join(User, User.id == Question.user_id)
        .where(Question.organization_id == org_id)
        .order_by(desc(Question.created_at), desc(Question.sequence))
    )
    return [project_question(question, username) for question, username in result.all()]


async def list_for_organization_slug(
    unique_url: str,
    session: AsyncSession,
) -> list[QuestionResponse]:
    org = await org_service.get_org_by_slug(unique_url, session)
    return await list_for_organization(org.id, session)
