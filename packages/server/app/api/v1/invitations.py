"""
Invitation acceptance endpoints.

GET    /api/v1/invitations/{token}           - Public preview for the accept page
POST   /api/v1/invitations/{token}/accept    - Accept as the signed-in user
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.database import get_session
from app.models.user import User
from app.services import invitations as invitation_service
from tenant_access_shared.schemas.invitations import (
    InvitationAcceptResponse,
    InvitationPreviewResponse,
)

router = APIRouter()


@router.get("/{token}", response_model=InvitationPreviewResponse, tags=["Invitations"])
async def preview_invitation(
    token: str,
    session: AsyncSession = Depends(get_session),
):
    preview = await invitation_service.get_invitation_preview(session, token)
    return InvitationPreviewResponse(**preview)


@router.post("/{token}/accept", response_model=InvitationAcceptResponse, tags=["Invitations"])
async def accept_invitation(
    token: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Accept an invitation; the caller's active org switches to the joined one."""
    org_id = await invitation_service.accept_invitation(session, token, user.id, user.email)
    return InvitationAcceptResponse(organization_id=org_id)
