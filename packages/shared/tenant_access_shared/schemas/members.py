"""Team membership schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, UUID4

from .common import Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class RoleChangeRequest(BaseModel):
    """Change a member's role."""
    role: Role


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MemberResponse(BaseModel):
    """Single member of an organization."""
    user_id: UUID4
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Role
    created_at: datetime


class MemberListResponse(BaseModel):
    """List of members in an org."""
    data: List[MemberResponse]
