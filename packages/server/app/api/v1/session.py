"""
Active-organization session endpoints.

GET    /api/v1/me                         - Caller identity and active org
GET    /api/v1/session/active-org         - Resolve the active org
POST   /api/v1/session/switch/{org_id}    - Switch the active org
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import TenantContext, get_current_user, get_tenant_context
from app.core.database import get_session
from app.core.errors import NoMembership
from app.models.user import User
from app.services import active_org
from tenant_access_shared.schemas.organizations import ActiveOrgResponse, MeResponse

router = APIRouter()


@router.get("/me", response_model=MeResponse, tags=["Session"])
async def me(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Identity plus active org. A user with no memberships gets nulls, not an error."""
    try:
        membership = await active_org.resolve_active_membership(session, user.id)
    except NoMembership:
        return MeResponse(user_id=user.id, email=user.email)
    return MeResponse(
        user_id=user.id,
        email=user.email,
        active_organization_id=membership.organization_id,
        role=membership.role,
    )


@router.get("/session/active-org", response_model=ActiveOrgResponse, tags=["Session"])
async def get_active_org(
    ctx: TenantContext = Depends(get_tenant_context),
    session: AsyncSession = Depends(get_session),
):
    row = await active_org.get_session_row(session, ctx.user_id)
    return ActiveOrgResponse(
        organization_id=ctx.org_id,
        role=ctx.role,
        last_switched_at=row.last_switched_at if row else None,
    )


@router.post("/session/switch/{org_id}", response_model=ActiveOrgResponse, tags=["Session"])
async def switch_org(
    org_id: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Switch the caller's active org. Any org the caller is not in is a 404."""
    row = await active_org.switch_org(session, user.id, org_id)
    membership = await active_org.resolve_active_membership(session, user.id)
    return ActiveOrgResponse(
        organization_id=row.active_organization_id,
        role=membership.role,
        last_switched_at=row.last_switched_at,
    )
