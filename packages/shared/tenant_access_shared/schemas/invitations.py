"""Invitation schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .common import INVITABLE_ROLES, Role


class InvitationStatus(str, Enum):
    PENDING = "pending"
    EXPIRED = "expired"  # derived from expires_at, never stored
    ACCEPTED = "accepted"


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class InvitationCreateRequest(BaseModel):
    email: EmailStr
    role: Role = Role.VIEWER
    ttl_days: Optional[int] = Field(default=None, ge=1, le=30)

    @field_validator("role")
    @classmethod
    def _invitable(cls, value: Role) -> Role:
        if value not in INVITABLE_ROLES:
            raise ValueError("Invitations can grant admin, editor or viewer")
        return value


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class InvitationCreateResponse(BaseModel):
    invitation_id: uuid.UUID
    token: str
    email: str
    role: Role
    expires_at: datetime


class InvitationResponse(BaseModel):
    id: uuid.UUID
    email: str
    role: Role
    invited_by: Optional[uuid.UUID] = None
    expires_at: datetime
    created_at: datetime


class InvitationListResponse(BaseModel):
    data: List[InvitationResponse]


class InvitationPreviewResponse(BaseModel):
    """Public view of an invitation for the accept page."""
    organization_id: uuid.UUID
    organization_name: str
    email: str
    role: Role
    status: InvitationStatus
    expires_at: datetime


class InvitationAcceptResponse(BaseModel):
    organization_id: uuid.UUID
