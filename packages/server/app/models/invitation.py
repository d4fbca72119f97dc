"""Organization invitation (time-boxed, single-use; never deleted)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, as_utc, utcnow


class Invitation(UUIDMixin, SQLModel, table=True):
    __tablename__ = "organization_invitations"

    token: str = Field(unique=True, index=True, nullable=False)
    email: str = Field(index=True, nullable=False)  # stored lowercase
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    role: str = Field(nullable=False)  # admin | editor | viewer
    invited_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    accepted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )

    def status(self, now: Optional[datetime] = None) -> str:
        """pending | expired | accepted. Expiry is derived, never stored."""
        if self.accepted_at is not None:
            return "accepted"
        if (now or utcnow()) >= as_utc(self.expires_at):
            return "expired"
        return "pending"
