"""
Tests for question admission.

Tests cover:
- The pure decision function for both policies and the messaging gate
- Remaining-seconds rounding for an active cooldown
- Submission against the database, with an injected clock
- Sequence collisions: rollback and a single fresh re-evaluation
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import AlreadyAsked, ConcurrentSubmission, CooldownActive, MessagingDisabled
from app.models.organization import Organization
from app.models.question import Question
from app.services import admission
from app.services import organizations as org_service
from app.services import questions as ledger
from app.services.admission import Outcome, evaluate, remaining_cooldown_seconds
from askbox_shared.schemas.organizations import OrgCreateRequest
from askbox_shared.schemas.questions import QuestionCreateRequest
from conftest import make_principal

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _org(*, allow_messages=True, cooldown_time=5000, one_question_per_user=False) -> Organization:
    return Organization(
        name="Acme",
        owner_id=None,
        unique_url="acme-1",
        allow_messages=allow_messages,
        cooldown_time=cooldown_time,
        one_question_per_user=one_question_per_user,
    )


def _asked_at(when: datetime, sequence: int = 1) -> Question:
    return Question(
        user_id=None,
        organization_id=None,
        content="earlier",
        sequence=sequence,
        created_at=when,
        last_message_time=when,
    )


# ---------------------------------------------------------------------------
# Pure decision (no DB needed)
# ---------------------------------------------------------------------------

class TestEvaluate:

    def test_messaging_disabled_rejects_first_question(self):
        decision = evaluate(_org(allow_messages=False), None, T0)
        assert decision.outcome is Outcome.MESSAGING_DISABLED

    def test_messaging_gate_checked_before_one_per_user(self):
        org = _org(allow_messages=False, one_question_per_user=True)
        decision = evaluate(org, _asked_at(T0), T0 + timedelta(days=1))
        assert decision.outcome is Outcome.MESSAGING_DISABLED

    def test_no_history_accepts(self):
        assert evaluate(_org(), None, T0).accepted

    def test_within_cooldown_rejects_with_rounded_up_seconds(self):
        decision = evaluate(_org(), _asked_at(T0), T0 + timedelta(milliseconds=3000))
        assert decision.outcome is Outcome.COOLDOWN_ACTIVE
        assert decision.retry_after_seconds == 2

    def test_partial_second_rounds_up(self):
        decision = evaluate(_org(), _asked_at(T0), T0 + timedelta(milliseconds=4999))
        assert decision.retry_after_seconds == 1

    def test_cooldown_boundary_accepts(self):
        assert evaluate(_org(), _asked_at(T0), T0 + timedelta(milliseconds=5000)).accepted

    def test_after_cooldown_accepts(self):
        assert evaluate(_org(), _asked_at(T0), T0 + timedelta(milliseconds=5001)).accepted

    def test_one_per_user_rejects_regardless_of_elapsed_time(self):
        org = _org(one_question_per_user=True, cooldown_time=1)
        decision = evaluate(org, _asked_at(T0), T0 + timedelta(days=365))
        assert decision.outcome is Outcome.ALREADY_ASKED

    def test_naive_stored_timestamps_are_treated_as_utc(self):
        naive = T0.replace(tzinfo=None)
        decision = evaluate(_org(), _asked_at(naive), T0 + timedelta(seconds=1))
        assert decision.retry_after_seconds == 4

    def test_clock_behind_latest_reports_full_window(self):
        decision = evaluate(_org(), _asked_at(T0), T0 - timedelta(seconds=2))
        assert decision.retry_after_seconds == 5

    def test_rejections_map_to_errors(self):
        assert isinstance(
            evaluate(_org(allow_messages=False), None, T0).to_error(), MessagingDisabled
        )
        err = evaluate(_org(), _asked_at(T0), T0 + timedelta(seconds=3)).to_error()
        assert isinstance(err, CooldownActive)
        assert err.retry_after_seconds == 2
        assert err.headers() == {"Retry-After": "2"}

    def test_accept_has_no_error(self):
        with pytest.raises(ValueError):
            evaluate(_org(), None, T0).to_error()


@pytest.mark.parametrize(
    "cooldown_ms,elapsed_us,expected",
    [
        (5000, 3_000_000, 2),
        (5000, 0, 5),
        (5000, 4_999_999, 1),
        (60000, 1, 60),
        (1500, 1_000_000, 1),
    ],
)
def test_remaining_cooldown_seconds(cooldown_ms, elapsed_us, expected):
    assert remaining_cooldown_seconds(cooldown_ms, elapsed_us) == expected


# ---------------------------------------------------------------------------
# Submission against the database
# ---------------------------------------------------------------------------

async def _setup(session, *, cooldown_time=None, one_question_per_user=None, allow=True):
    owner = await make_principal(session, "owner", is_creator=True)
    asker = await make_principal(session, "asker")
    org = await org_service.create_org(
        OrgCreateRequest(
            name="Acme",
            cooldown_time=cooldown_time,
            one_question_per_user=one_question_per_user,
        ),
        owner,
        session,
        now=T0,
    )
    if allow:
        await org_service.toggle_messaging(owner, org.id, session)
    await session.commit()
    return org, asker


def _ask(org, content="Why?", anonymous=False) -> QuestionCreateRequest:
    return QuestionCreateRequest(organization_id=org.id, content=content, is_anonymous=anonymous)


@pytest.mark.asyncio
async def test_acme_cooldown_scenario(session):
    org, asker = await _setup(session, cooldown_time=5000)

    first = await admission.submit_question(session, asker, _ask(org), now=T0)
    assert first.sequence == 1
    assert first.last_message_time == T0

    with pytest.raises(CooldownActive) as exc_info:
        await admission.submit_question(
            session, asker, _ask(org), now=T0 + timedelta(milliseconds=3000)
        )
    assert exc_info.value.retry_after_seconds == 2

    second = await admission.submit_question(
        session, asker, _ask(org), now=T0 + timedelta(milliseconds=5001)
    )
    assert second.sequence == 2


@pytest.mark.asyncio
async def test_beta_one_question_per_user_scenario(session):
    org, asker = await _setup(session, one_question_per_user=True)

    await admission.submit_question(session, asker, _ask(org), now=T0)
    with pytest.raises(AlreadyAsked):
        await admission.submit_question(
            session, asker, _ask(org), now=T0 + timedelta(days=30)
        )


@pytest.mark.asyncio
async def test_messaging_disabled_by_default(session):
    org, asker = await _setup(session, allow=False)

    with pytest.raises(MessagingDisabled):
        await admission.submit_question(session, asker, _ask(org), now=T0)


@pytest.mark.asyncio
async def test_default_cooldown_is_sixty_seconds(session):
    org, asker = await _setup(session)
    assert org.cooldown_time == 60000

    await admission.submit_question(session, asker, _ask(org), now=T0)
    with pytest.raises(CooldownActive) as exc_info:
        await admission.submit_question(
            session, asker, _ask(org), now=T0 + timedelta(seconds=1)
        )
    assert exc_info.value.retry_after_seconds == 59


@pytest.mark.asyncio
async def test_limits_are_per_user(session):
    org, asker = await _setup(session, one_question_per_user=True)
    other = await make_principal(session, "other")

    await admission.submit_question(session, asker, _ask(org), now=T0)
    accepted = await admission.submit_question(session, other, _ask(org), now=T0)
    assert accepted.sequence == 1


@pytest.mark.asyncio
async def test_rejected_question_is_not_stored(session):
    org, asker = await _setup(session, cooldown_time=5000)

    await admission.submit_question(session, asker, _ask(org, "first"), now=T0)
    with pytest.raises(CooldownActive):
        await admission.submit_question(
            session, asker, _ask(org, "second"), now=T0 + timedelta(seconds=1)
        )
    listed = await ledger.list_for_organization(org.id, session)
    assert [q.content for q in listed] == ["first"]


@pytest.mark.asyncio
async def test_membership_is_not_required_to_ask(session):
    org, asker = await _setup(session)
    assert not await org_service.is_member(org.id, asker.id, session)

    question = await admission.submit_question(session, asker, _ask(org), now=T0)
    assert question.organization_id == org.id


# ---------------------------------------------------------------------------
# Sequence collisions
# ---------------------------------------------------------------------------

def _stale_first_read(monkeypatch):
    """Make the first latest-question lookup miss, as if a concurrent
    request committed between the check and the insert."""
    real = ledger.latest_question_for
    calls = []

    async def latest(user_id, org_id, session):
        calls.append(user_id)
        if len(calls) == 1:
            return None
        return await real(user_id, org_id, session)

    monkeypatch.setattr(ledger, "latest_question_for", latest)
    return calls


@pytest.mark.asyncio
async def test_collision_reports_fresh_rejection(session, monkeypatch):
    org, asker = await _setup(session, cooldown_time=5000)
    org_id = org.id
    await admission.submit_question(session, asker, _ask(org), now=T0)
    await session.commit()

    calls = _stale_first_read(monkeypatch)
    with pytest.raises(CooldownActive) as exc_info:
        await admission.submit_question(
            session,
            asker,
            QuestionCreateRequest(organization_id=org_id, content="again"),
            now=T0 + timedelta(seconds=1),
        )
    assert exc_info.value.retry_after_seconds == 4
    assert len(calls) == 2

    listed = await ledger.list_for_organization(org_id, session)
    assert len(listed) == 1


@pytest.mark.asyncio
async def test_collision_that_would_still_accept_is_concurrent_submission(
    session, monkeypatch
):
    org, asker = await _setup(session, cooldown_time=5000)
    org_id = org.id
    await admission.submit_question(session, asker, _ask(org), now=T0)
    await session.commit()

    _stale_first_read(monkeypatch)
    with pytest.raises(ConcurrentSubmission):
        await admission.submit_question(
            session,
            asker,
            QuestionCreateRequest(organization_id=org_id, content="again"),
            now=T0 + timedelta(minutes=5),
        )

    listed = await ledger.list_for_organization(org_id, session)
    assert len(listed) == 1
