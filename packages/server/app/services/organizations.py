"""
Organization registry: creation, membership, messaging gate and admission policy.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import Principal
from app.core.config import get_settings
from app.core.errors import AlreadyMember, Forbidden, NotFound, ValidationError
from app.models.base import as_utc, utcnow
from app.models.membership import OrganizationMember, UserOrganization
from app.models.organization import Organization
from askbox_shared.schemas.organizations import (
    MAX_COOLDOWN_MS,
    AdmissionPolicy,
    OrgCreateRequest,
    OrgResponse,
    OrgUpdateRequest,
)

log = structlog.get_logger()
settings = get_settings()


# ---------------------------------------------------------------------------
# Slugs and policy
# ---------------------------------------------------------------------------

def _slugify(name: str) -> str:
    """Generate a URL-safe slug from an organization name."""
    slug = name.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    return re.sub(r"-+", "-", slug).strip("-") or "org"


def build_unique_url(name: str, now: datetime) -> str:
    """Slug plus creation time in epoch milliseconds.

    Uniqueness comes from the timestamp, not from a lookup; two orgs with the
    same name created in the same millisecond collide on the unique index.
    """
    return f"{_slugify(name)}-{int(now.timestamp() * 1000)}"


def admission_policy(org: Organization) -> AdmissionPolicy:
    if org.one_question_per_user:
        return AdmissionPolicy.ONE_QUESTION_PER_USER
    return AdmissionPolicy.COOLDOWN


def _resolve_policy(
    cooldown_time: Optional[int],
    one_question_per_user: bool,
) -> Optional[int]:
    """Validate a requested policy and return the cooldown to store.

    Returns None when the request leaves the cooldown to its default. The two
    policies are exclusive: asking for one-question-per-user together with a
    positive cooldown is rejected rather than silently resolved.
    """
    if cooldown_time is None:
        return None
    if cooldown_time < 0:
        raise ValidationError("cooldownTime must not be negative")
    if cooldown_time > MAX_COOLDOWN_MS:
        raise ValidationError(f"cooldownTime must not exceed {MAX_COOLDOWN_MS} ms")
    if cooldown_time > 0 and one_question_per_user:
        raise ValidationError(
            "Choose either a cooldown time or one question per user, not both"
        )
    return cooldown_time or None


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_org_by_id(org_id: uuid.UUID, session: AsyncSession) -> Organization:
    result = await session.execute(select(Organization).where(Organization.id == org_id))
    org = result.scalar_one_or_none()
    if not org:
        raise NotFound("Organization not found")
    return org


async def get_org_by_slug(unique_url: str, session: AsyncSession) -> Organization:
    """Get an org by its public slug; raises NotFound."""
    result = await session.execute(
        select(Organization).where(Organization.unique_url == unique_url)
    )
    org = result.scalar_one_or_none()
    if not org:
        raise NotFound("Organization not found")
    return org


async def member_ids(org_id: uuid.UUID, session: AsyncSession) -> list[uuid.UUID]:
    result = await session.execute(
        select(OrganizationMember.user_id)
        .where(OrganizationMember.organization_id == org_id)
        .order_by(OrganizationMember.id)
    )
    return list(result.scalars().all())


async def is_member(org_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession) -> bool:
    result = await session.execute(
        select(OrganizationMember.id).where(
            OrganizationMember.organization_id == org_id,
            OrganizationMember.user_id == user_id,
        )
    )
    return result.first() is not None


async def _in_user_list(user_id: uuid.UUID, org_id: uuid.UUID, session: AsyncSession) -> bool:
    result = await session.execute(
        select(UserOrganization.id).where(
            UserOrganization.user_id == user_id,
            UserOrganization.organization_id == org_id,
        )
    )
    return result.first() is not None


async def list_user_orgs(principal: Principal, session: AsyncSession) -> list[Organization]:
    """The caller's organizations, in the order they were added to their list."""
    result = await session.execute(
        select(Organization)
        .join(UserOrganization, UserOrganization.organization_id == Organization.id)
        .where(UserOrganization.user_id == principal.id)
        .order_by(UserOrganization.id)
    )
    return list(result.scalars().all())


async def to_org_response(org: Organization, session: AsyncSession) -> OrgResponse:
    return OrgResponse(
        id=org.id,
        name=org.name,
        owner_id=org.owner_id,
        unique_url=org.unique_url,
        allow_messages=org.allow_messages,
        cooldown_time=org.cooldown_time,
        one_question_per_user=org.one_question_per_user,
        policy=admission_policy(org),
        members=await member_ids(org.id, session),
        created_at=as_utc(org.created_at),
        updated_at=as_utc(org.updated_at),
    )


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_org(
    req: OrgCreateRequest,
    principal: Principal,
    session: AsyncSession,
    *,
    now: Optional[datetime] = None,
) -> Organization:
    """Create an org owned by a creator and record it on the owner's list."""
    if not principal.is_creator:
        raise Forbidden("Only Creator can create organizations")

    name = req.name.strip()
    if not name:
        raise ValidationError("Organization name is required")
    one_per_user = bool(req.one_question_per_user)
    cooldown = _resolve_policy(req.cooldown_time, one_per_user)
    now = now or datetime.now(timezone.utc)

    org = Organization(
        name=name,
        owner_id=principal.id,
        unique_url=build_unique_url(name, now),
        cooldown_time=cooldown or settings.default_cooldown_ms,
        one_question_per_user=one_per_user,
        created_at=now,
        updated_at=now,
    )
    session.add(org)
    await session.flush()

    # The owner's list records the org; the org's member set does not gain
    # the owner until they join explicitly.
    session.add(UserOrganization(user_id=principal.id, organization_id=org.id))
    await session.flush()

    log.info(
        "org.created",
        org_id=str(org.id),
        unique_url=org.unique_url,
        owner=str(principal.id),
        policy=admission_policy(org).value,
        cooldown_ms=org.cooldown_time,
    )
    return org


async def add_membership(org: Organization, user_id: uuid.UUID, session: AsyncSession) -> None:
    """Append *user_id* to the org's member set and the org to the user's list.

    The user's list is only appended when the org is not already on it (an
    owner already has their own org listed).
    """
    session.add(OrganizationMember(organization_id=org.id, user_id=user_id))
    if not await _in_user_list(user_id, org.id, session):
        session.add(UserOrganization(user_id=user_id, organization_id=org.id))
    await session.flush()


async def join_org(
    principal: Principal,
    unique_url: Optional[str],
    session: AsyncSession,
) -> Organization:
    if not unique_url or not unique_url.strip():
        raise ValidationError("Organization URL is required")

    org = await get_org_by_slug(unique_url.strip(), session)
    if await is_member(org.id, principal.id, session):
        raise AlreadyMember()

    try:
        await add_membership(org, principal.id, session)
    except IntegrityError:
        # A concurrent join for the same pair committed first.
        await session.rollback()
        raise AlreadyMember()

    log.info("org.joined", org_id=str(org.id), user_id=str(principal.id))
    return org


def _require_owner(org: Organization, principal: Principal, action: str) -> None:
    if org.owner_id != principal.id:
        raise Forbidden(f"Only the organization owner can {action}")


async def toggle_messaging(
    principal: Principal,
    org_id: uuid.UUID,
    session: AsyncSession,
) -> Organization:
    """Flip the messaging gate (owner only)."""
    org = await get_org_by_id(org_id, session)
    _require_owner(org, principal, "toggle message permissions")

    org.allow_messages = not org.allow_messages
    org.updated_at = utcnow()
    session.add(org)
    await session.flush()

    log.info("org.messaging_toggled", org_id=str(org.id), allow_messages=org.allow_messages)
    return org


async def update_org(
    principal: Principal,
    org_id: uuid.UUID,
    req: OrgUpdateRequest,
    session: AsyncSession,
) -> Organization:
    """Rename an org or change its admission policy (owner only)."""
    org = await get_org_by_id(org_id, session)
    _require_owner(org, principal, "update organization settings")

    one_per_user = (
        req.one_question_per_user
        if req.one_question_per_user is not None
        else org.one_question_per_user
    )
    cooldown = _resolve_policy(req.cooldown_time, one_per_user)

    if req.name is not None:
        if not req.name.strip():
            raise ValidationError("Organization name is required")
        # The slug is never regenerated; shared links keep working.
        org.name = req.name.strip()
    if req.cooldown_time is not None:
        org.cooldown_time = cooldown or settings.default_cooldown_ms
    org.one_question_per_user = one_per_user
    org.updated_at = utcnow()
    session.add(org)
    await session.flush()

    log.info(
        "org.updated",
        org_id=str(org.id),
        policy=admission_policy(org).value,
        cooldown_ms=org.cooldown_time,
    )
    return org
