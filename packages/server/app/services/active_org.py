"""
Active-organization resolver.

The ``user_sessions`` row is the single authority for which organization a
user's requests are scoped to. Every tenant-scoped read or write resolves
through here and filters by the result.
"""

from __future__ import annotations

import uuid
from typing import Union

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.database import upsert
from app.core.errors import NoMembership, NotAMember
from app.models.base import utcnow
from app.models.membership import Membership
from app.models.user_session import UserSession
from app.services import memberships as membership_store

log = structlog.get_logger()


def parse_org_id(value: Union[str, uuid.UUID]) -> uuid.UUID:
    """Parse an untrusted organization identifier.

    Anything that is not a UUID is reported exactly like a valid UUID the
    caller has no membership for.
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise NotAMember()


async def get_session_row(session: AsyncSession, user_id: uuid.UUID) -> UserSession | None:
    result = await session.execute(
        select(UserSession).where(UserSession.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def set_active_org(
    session: AsyncSession, user_id: uuid.UUID, organization_id: uuid.UUID
) -> UserSession:
    """Upsert the user's session row. Last write wins."""
    now = utcnow()
    stmt = (
        upsert(session, UserSession)
        .values(user_id=user_id, active_organization_id=organization_id, last_switched_at=now)
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={"active_organization_id": organization_id, "last_switched_at": now},
    )
    await session.execute(stmt)
    result = await session.execute(
        select(UserSession)
        .where(UserSession.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def clear_active_org(
    session: AsyncSession, user_id: uuid.UUID, organization_id: uuid.UUID
) -> None:
    """Drop the user's session if it points at ``organization_id``."""
    await session.execute(
        delete(UserSession).where(
            UserSession.user_id == user_id,
            UserSession.active_organization_id == organization_id,
        )
    )


async def resolve_active_membership(session: AsyncSession, user_id: uuid.UUID) -> Membership:
    """Resolve the membership the user's current request is scoped to.

    1. The session's organization, if a membership still backs it.
    2. Otherwise the earliest-created membership (ties broken by organization
       id); the session is rewritten to point at it.
    3. No memberships at all: ``NoMembership``.
    """
    row = await get_session_row(session, user_id)
    if row is not None:
        membership = await membership_store.get_membership(
            session, user_id, row.active_organization_id
        )
        if membership is not None:
            return membership
        log.warning(
            "session.stale",
            user_id=str(user_id),
            org_id=str(row.active_organization_id),
        )

    memberships = await membership_store.list_user_memberships(session, user_id)
    if not memberships:
        raise NoMembership()

    membership, _org = memberships[0]
    await set_active_org(session, user_id, membership.organization_id)
    log.info(
        "session.initialized",
        user_id=str(user_id),
        org_id=str(membership.organization_id),
    )
    return membership


async def resolve_active_org(session: AsyncSession, user_id: uuid.UUID) -> uuid.UUID:
    membership = await resolve_active_membership(session, user_id)
    return membership.organization_id


async def switch_org(
    session: AsyncSession, user_id: uuid.UUID, organization_id: Union[str, uuid.UUID]
) -> UserSession:
    """Point the user's session at ``organization_id``.

    Requires a membership. Malformed, nonexistent and not-joined identifiers
    all raise ``NotAMember``. Switching to the already-active organization is
    a no-op.
    """
    org_id = parse_org_id(organization_id)
    membership = await membership_store.get_membership(session, user_id, org_id)
    if membership is None:
        log.info("session.switch_denied", user_id=str(user_id))
        raise NotAMember()

    row = await get_session_row(session, user_id)
    if row is not None and row.active_organization_id == org_id:
        return row

    row = await set_active_org(session, user_id, org_id)
    log.info("session.switched", user_id=str(user_id), org_id=str(org_id))
    return row
