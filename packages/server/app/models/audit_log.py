"""Organization audit log (append-only, consumed by compliance tooling)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import utcnow


class AuditLogEntry(SQLModel, table=True):
    __tablename__ = "organization_audit_log"
    __table_args__ = (
        sa.Index("ix_organization_audit_log_org_created", "organization_id", "created_at"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False)
    action: str = Field(nullable=False)  # role_changed | member_removed | invitation_* | organization_created
    actor_user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    target_user_id: Optional[uuid.UUID] = None
    target_email: Optional[str] = None
    # "metadata" is reserved on declarative classes, so the attribute is renamed
    details: dict = Field(
        default_factory=dict,
        sa_column=sa.Column(
            "metadata", sa.JSON().with_variant(JSONB(), "postgresql"), nullable=False
        ),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )


class AuditLogImmutableError(RuntimeError):
    pass


@event.listens_for(AuditLogEntry, "before_update")
def _reject_update(mapper, connection, target):
    raise AuditLogImmutableError("Audit log entries are immutable. UPDATE is not permitted.")


@event.listens_for(AuditLogEntry, "before_delete")
def _reject_delete(mapper, connection, target):
    raise AuditLogImmutableError("Audit log entries are immutable. DELETE is not permitted.")
