"""
Organization API endpoints.

GET    /api/v1/orgs    - List orgs for the authenticated user
POST   /api/v1/orgs    - Found a new org (caller becomes owner)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.database import get_session
from app.models.user import User
from app.services import organizations as org_service
from tenant_access_shared.schemas.organizations import (
    OrgCreateRequest,
    OrgListResponse,
    OrgResponse,
)

router = APIRouter()


@router.get("", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """List orgs the authenticated user belongs to."""
    items = await org_service.list_user_orgs(session, user.id)
    return OrgListResponse(data=items)


@router.post("", response_model=OrgResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.create_organization(session, user.id, body.name, body.slug)
    await session.refresh(org)
    return OrgResponse.model_validate(org)
