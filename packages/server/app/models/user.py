"""User model.

Mirrors the identity issued by the external credential provider. Accounts
provisioned by an invitation carry pending-invitation claims until their first
successful authentication.
"""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class User(UUIDMixin, SQLModel, table=True):
    __tablename__ = "users"

    subject: Optional[str] = Field(default=None, unique=True, index=True)  # credential provider "sub"
    email: str = Field(unique=True, index=True, nullable=False)  # stored lowercase
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    first_authenticated_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    pending_invitation_id: Optional[uuid.UUID] = None
    pending_organization_id: Optional[uuid.UUID] = None
    pending_role: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )

    @property
    def has_pending_invitation(self) -> bool:
        return bool(
            self.pending_invitation_id and self.pending_organization_id and self.pending_role
        )

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email
