"""
Organization API endpoints.

POST  /api/organizations                     Create an org (creators only)
POST  /api/organizations/join                Join an org by its unique URL
GET   /api/organizations/my                  Orgs on the caller's list
GET   /api/organizations/{uniqueUrl}         Public org lookup
PATCH /api/organizations/{id}/toggle-messages  Flip the messaging gate (owner)
PATCH /api/organizations/{id}                Rename or change policy (owner)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import Principal, get_current_principal
from app.core.database import get_session
from app.services import organizations as org_service
from askbox_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgJoinRequest,
    OrgJoinResponse,
    OrgResponse,
    OrgUpdateRequest,
)

router = APIRouter()

# Literal paths are registered before "/{unique_url}" so they are not
# captured as slugs.


@router.post("", response_model=OrgResponse)
async def create_org(
    body: OrgCreateRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.create_org(body, principal, session)
    return await org_service.to_org_response(org, session)


@router.post("/join", response_model=OrgJoinResponse)
async def join_org(
    body: OrgJoinRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.join_org(principal, body.unique_url, session)
    return OrgJoinResponse(
        message="Successfully joined organization",
        organization=await org_service.to_org_response(org, session),
    )


@router.get("/my", response_model=list[OrgResponse])
async def my_orgs(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Organizations on the caller's list, oldest entry first."""
    orgs = await org_service.list_user_orgs(principal, session)
    return [await org_service.to_org_response(org, session) for org in orgs]


@router.get("/{unique_url}", response_model=OrgResponse)
async def get_org(
    unique_url: str,
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.get_org_by_slug(unique_url, session)
    return await org_service.to_org_response(org, session)


@router.patch("/{org_id}/toggle-messages", response_model=OrgResponse)
async def toggle_messages(
    org_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.toggle_messaging(principal, org_id, session)
    return await org_service.to_org_response(org, session)


@router.patch("/{org_id}", response_model=OrgResponse)
async def update_org(
    org_id: uuid.UUID,
    body: OrgUpdateRequest,
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_session),
):
    """Rename an org or switch its admission policy (owner only)."""
    org = await org_service.update_org(principal, org_id, body, session)
    return await org_service.to_org_response(org, session)
