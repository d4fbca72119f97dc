"""
Organization-related Pydantic schemas shared between the server and its clients.

Covers: organization founding, the caller's organization list, and the
active-organization session.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100, description="Organization display name")
    slug: Optional[str] = Field(
        default=None,
        min_length=2,
        max_length=50,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
        description="URL-safe org identifier (derived from name when omitted)",
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrgListItem(BaseModel):
    id: uuid.UUID
    name: str
    slug: str
    role: Role  # the requesting user's role in this org
    is_active: bool = False

    model_config = {"from_attributes": True}


class OrgListResponse(BaseModel):
    data: list[OrgListItem]


class ActiveOrgResponse(BaseModel):
    """The organization the caller's requests are currently scoped to."""
    organization_id: uuid.UUID
    role: Role
    last_switched_at: Optional[datetime] = None


class MeResponse(BaseModel):
    user_id: uuid.UUID
    email: str
    active_organization_id: Optional[uuid.UUID] = None
    role: Optional[Role] = None
