"""
Team management API endpoints, scoped to the caller's active organization.

GET    /api/v1/team/members              - List members (admin/owner)
PATCH  /api/v1/team/members/{user_id}    - Change a member's role
DELETE /api/v1/team/members/{user_id}    - Remove a member
POST   /api/v1/team/invitations          - Invite by email (admin/owner)
GET    /api/v1/team/invitations          - Pending invitations (admin/owner)
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import TenantContext, get_tenant_context, require_manager
from app.core.database import get_session
from app.core.email import send_invitation_email
from app.models.organization import Organization
from app.services import invitations as invitation_service
from app.services import memberships as membership_store
from app.services import team as team_service
from tenant_access_shared.schemas.invitations import (
    InvitationCreateRequest,
    InvitationCreateResponse,
    InvitationListResponse,
    InvitationResponse,
)
from tenant_access_shared.schemas.members import (
    MemberListResponse,
    MemberResponse,
    RoleChangeRequest,
)

log = structlog.get_logger()

router = APIRouter()


@router.get("/members", response_model=MemberListResponse, tags=["Team"])
async def list_members(
    ctx: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
):
    items = await team_service.list_organization_members(session, ctx.org_id, ctx.role)
    return MemberListResponse(data=[MemberResponse(**item) for item in items])


@router.patch("/members/{user_id}", response_model=MemberResponse, tags=["Team"])
async def change_member_role(
    user_id: uuid.UUID,
    body: RoleChangeRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role. Self-changes and last-owner demotions are refused."""
    await team_service.change_role(
        session, ctx.user_id, ctx.role, ctx.org_id, user_id, body.role
    )
    members = await membership_store.list_members(session, ctx.org_id)
    return next(MemberResponse(**m) for m in members if m["user_id"] == user_id)


@router.delete("/members/{user_id}", status_code=204, tags=["Team"])
async def remove_member(
    user_id: uuid.UUID,
    ctx: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
):
    await team_service.remove_member(session, ctx.user_id, ctx.role, ctx.org_id, user_id)


@router.post(
    "/invitations", response_model=InvitationCreateResponse, status_code=201, tags=["Team"]
)
async def create_invitation(
    body: InvitationCreateRequest,
    ctx: TenantContext = Depends(require_manager),
    session: AsyncSession = Depends(get_session),
):
    """Invite someone by email. The invitation is committed before the email goes out."""
    invitation, token = await invitation_service.create_invitation(
        session, ctx.user_id, ctx.org_id, body.email, body.role, body.ttl_days
    )
    org = await session.get(Organization, ctx.org_id)
    org_name = org.name
    await session.commit()

    await send_invitation_email(
        invitation.email,
        org_name,
        ctx.user.display_name,
        invitation.role,
        token,
        expires_at=invitation.expires_at,
        invitation_id=invitation.id,
    )
    return InvitationCreateResponse(
        invitation_id=invitation.id,
        token=token,
        email=invitation.email,
        role=invitation.role,
        expires_at=invitation.expires_at,
    )


@router.get("/invitations", response_model=InvitationListResponse, tags=["Team"])
async def list_invitations(
    ctx: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
):
    items = await invitation_service.list_pending_invitations(session, ctx.org_id, ctx.role)
    return InvitationListResponse(
        data=[InvitationResponse.model_validate(i, from_attributes=True) for i in items]
    )
