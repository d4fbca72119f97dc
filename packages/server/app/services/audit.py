"""
Audit log writer.

Appends one entry per privileged mutation. Entries are for compliance review
only and are never read back for authorization decisions.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.models.audit_log import AuditLogEntry

log = structlog.get_logger()

ROLE_CHANGED = "role_changed"
MEMBER_REMOVED = "member_removed"
INVITATION_CREATED = "invitation_created"
INVITATION_ACCEPTED = "invitation_accepted"
ORGANIZATION_CREATED = "organization_created"


async def record(
    session: AsyncSession,
    organization_id: uuid.UUID,
    action: str,
    actor_id: Optional[uuid.UUID],
    target_id: Optional[uuid.UUID] = None,
    metadata: Optional[dict] = None,
    *,
    target_email: Optional[str] = None,
) -> Optional[AuditLogEntry]:
    """Append an audit entry inside a savepoint on the caller's transaction.

    Best-effort by default: a failed write rolls back only the savepoint and is
    logged at error level, and the primary mutation carries on. With
    ``audit_strict`` enabled the failure propagates and the caller's
    transaction is rolled back with it.
    """
    entry = AuditLogEntry(
        organization_id=organization_id,
        action=action,
        actor_user_id=actor_id,
        target_user_id=target_id,
        target_email=target_email,
        details=metadata or {},
    )
    try:
        async with session.begin_nested():
            session.add(entry)
    except SQLAlchemyError as exc:
        log.error(
            "audit.write_failed",
            org_id=str(organization_id),
            action=action,
            actor_id=str(actor_id) if actor_id else None,
            target_id=str(target_id) if target_id else None,
            metadata=metadata or {},
            error=str(exc),
        )
        if get_settings().audit_strict:
            raise
        return None

    log.info("audit.recorded", org_id=str(organization_id), action=action)
    return entry


async def list_entries(
    session: AsyncSession, organization_id: uuid.UUID, limit: int = 100
) -> list[AuditLogEntry]:
    """Most recent entries first (compliance export)."""
    result = await session.execute(
        select(AuditLogEntry)
        .where(AuditLogEntry.organization_id == organization_id)
        .order_by(AuditLogEntry.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
