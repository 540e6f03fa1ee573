"""
Admission control for question submissions.

Each (author, organization) pair is gated by the organization's messaging
switch and by exactly one admission policy:

- cooldown: a new question must come at least ``cooldown_time`` ms after the
  pair's latest accepted question;
- one question per user: any accepted question closes the pair for good.

The latest accepted question *is* the rate-limit state. ``evaluate`` is a pure
function of (organization, latest question, now); ``submit_question`` runs it,
appends on acceptance and relies on the ``(user_id, organization_id,
sequence)`` unique constraint to keep the check-and-append atomic per pair.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Principal
from app.core.errors import (
    AlreadyAsked,
    AskboxError,
    ConcurrentSubmission,
    CooldownActive,
    MessagingDisabled,
)
from app.models.base import as_utc
from app.models.organization import Organization
from app.models.question import Question
from app.services import organizations as org_service
from app.services import questions as ledger
from askbox_shared.schemas.questions import QuestionCreateRequest

log = structlog.get_logger()

_US_PER_MS = 1_000
_US_PER_SECOND = 1_000_000
_ONE_US = timedelta(microseconds=1)


class Outcome(str, Enum):
    ACCEPTED = "accepted"
    MESSAGING_DISABLED = "messaging_disabled"
    COOLDOWN_ACTIVE = "cooldown_active"
    ALREADY_ASKED = "already_asked"


@dataclass(frozen=True)
class AdmissionDecision:
    outcome: Outcome
    retry_after_seconds: Optional[int] = None

    @property
    def accepted(self) -> bool:
        return self.outcome is Outcome.ACCEPTED

    def to_error(self) -> AskboxError:
        """The error a rejected decision is reported as."""
        if self.outcome is Outcome.MESSAGING_DISABLED:
            return MessagingDisabled()
        if self.outcome is Outcome.ALREADY_ASKED:
            return AlreadyAsked()
        if self.outcome is Outcome.COOLDOWN_ACTIVE:
            return CooldownActive(self.retry_after_seconds or 1)
        raise ValueError("an accepted decision has no error")


ACCEPT = AdmissionDecision(Outcome.ACCEPTED)


def remaining_cooldown_seconds(cooldown_ms: int, elapsed_us: int) -> int:
    """Whole seconds left in the window, rounded up."""
    remaining_us = cooldown_ms * _US_PER_MS - elapsed_us
    return -(-remaining_us // _US_PER_SECOND)


def evaluate(
    org: Organization,
    latest: Optional[Question],
    now: datetime,
) -> AdmissionDecision:
    """Decide whether a new question from the pair owning *latest* may be accepted."""
    if not org.allow_messages:
        return AdmissionDecision(Outcome.MESSAGING_DISABLED)
    if latest is None:
        return ACCEPT

    if org.one_question_per_user:
        return AdmissionDecision(Outcome.ALREADY_ASKED)

    elapsed = as_utc(now) - as_utc(latest.last_message_time)
    # A concurrent acceptance may be stamped slightly after *now*.
    elapsed_us = max(elapsed // _ONE_US, 0)
    if elapsed_us < org.cooldown_time * _US_PER_MS:
        return AdmissionDecision(
            Outcome.COOLDOWN_ACTIVE,
            retry_after_seconds=remaining_cooldown_seconds(org.cooldown_time, elapsed_us),
        )
    return ACCEPT


def _next_sequence(latest: Optional[Question]) -> int:
    return latest.sequence + 1 if latest is not None else 1


def _reject(decision: AdmissionDecision, org: Organization, author_id: uuid.UUID) -> AskboxError:
    log.info(
        "question.rejected",
        org_id=str(org.id),
        user_id=str(author_id),
        outcome=decision.outcome.value,
        retry_after_seconds=decision.retry_after_seconds,
    )
    return decision.to_error()


async def submit_question(
    session: AsyncSession,
    principal: Principal,
    req: QuestionCreateRequest,
    *,
    now: Optional[datetime] = None,
) -> Question:
    """Admit and append a question, or raise the rejection.

    A sequence collision means another request for the same pair committed
    first. The transaction is rolled back and the decision is taken once more
    against fresh state; if that would still accept, ``ConcurrentSubmission``
    is raised. The insert is never retried.
    """
    content = ledger.require_content(req.content)
    # Captured up front: a rollback expires every loaded instance.
    author_id = principal.id
    now = now or datetime.now(timezone.utc)

    org = await org_service.get_org_by_id(req.organization_id, session)
    latest = await ledger.latest_question_for(author_id, org.id, session)
    decision = evaluate(org, latest, now)
    if not decision.accepted:
        raise _reject(decision, org, author_id)

    org_id = org.id
    try:
        question = await ledger.append_question(
            session,
            author_id=author_id,
            org_id=org_id,
            content=content,
            is_anonymous=req.is_anonymous,
            sequence=_next_sequence(latest),
            now=now,
        )
    except IntegrityError:
        await session.rollback()
        log.warning("question.sequence_conflict", org_id=str(org_id), user_id=str(author_id))

        org = await org_service.get_org_by_id(org_id, session)
        latest = await ledger.latest_question_for(author_id, org_id, session)
        decision = evaluate(org, latest, now)
        if not decision.accepted:
            raise _reject(decision, org, author_id)
        raise ConcurrentSubmission()

    log.info(
        "question.accepted",
        question_id=str(question.id),
        org_id=str(org_id),
        anonymous=question.is_anonymous,
        sequence=question.sequence,
    )
    return question
