"""
Question endpoints.

POST /api/questions            Ask a question (admission controlled)
GET  /api/questions/{orgUrl}   Public, anonymized list for an org
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Principal, get_current_principal
from app.core.database import get_session
from app.services import admission
from app.services import questions as ledger
from askbox_shared.schemas.questions import QuestionCreateRequest, QuestionResponse

router = APIRouter()


@router.post("", response_model=QuestionResponse)
async def ask_question(
    body: QuestionCreateRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Submit a question; rejections carry the admission outcome."""
    question = await admission.submit_question(session, principal, body)
    return ledger.project_question(question, principal.user.username)


@router.get("/{org_url}", response_model=list[QuestionResponse])
async def list_questions(
    org_url: str,
    session: AsyncSession = Depends(get_session),
):
    return await ledger.list_for_organization_slug(org_url, session)
