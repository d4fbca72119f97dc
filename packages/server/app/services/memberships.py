"""
Membership store: persistence of (user, organization, role) facts.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.database import upsert
from app.models.base import utcnow
from app.models.membership import Membership
from app.models.organization import Organization
from app.models.user import User
from tenant_access_shared.schemas.common import Role

log = structlog.get_logger()


async def get_membership(
    session: AsyncSession, user_id: uuid.UUID, organization_id: uuid.UUID
) -> Optional[Membership]:
    result = await session.execute(
        select(Membership).where(
            Membership.user_id == user_id,
            Membership.organization_id == organization_id,
        )
    )
    return result.scalar_one_or_none()


async def list_members(session: AsyncSession, organization_id: uuid.UUID) -> list[dict]:
    """All members of an organization with their user details, oldest first."""
    result = await session.execute(
        select(Membership, User)
        .join(User, User.id == Membership.user_id)
        .where(Membership.organization_id == organization_id)
        .order_by(Membership.created_at, Membership.user_id)
    )
    return [
        {
            "user_id": user.id,
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "role": membership.role,
            "created_at": membership.created_at,
        }
        for membership, user in result.all()
    ]


async def list_user_memberships(
    session: AsyncSession, user_id: uuid.UUID
) -> list[tuple[Membership, Organization]]:
    """A user's memberships, earliest-created first (the resolver's fallback order)."""
    result = await session.execute(
        select(Membership, Organization)
        .join(Organization, Organization.id == Membership.organization_id)
        .where(Membership.user_id == user_id)
        .order_by(Membership.created_at, Membership.organization_id)
    )
    return list(result.all())


async def count_owners(session: AsyncSession, organization_id: uuid.UUID) -> int:
    """Fresh owner count. Never cache this across a mutation."""
    result = await session.execute(
        select(func.count())
        .select_from(Membership)
        .where(
            Membership.organization_id == organization_id,
            Membership.role == Role.OWNER.value,
        )
    )
    return result.scalar_one()


async def lock_organization(session: AsyncSession, organization_id: uuid.UUID) -> Optional[Organization]:
    """Take a row lock on the organization for the rest of the transaction.

    Owner-count checks and the mutation they guard run under this lock so
    concurrent demotions of different owners serialize.
    """
    result = await session.execute(
        select(Organization)
        .where(Organization.id == organization_id)
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def add_membership(
    session: AsyncSession,
    user_id: uuid.UUID,
    organization_id: uuid.UUID,
    role: Role | str,
) -> Membership:
    """Insert a membership keyed on (user_id, organization_id).

    An existing membership is left as it is, so repeating the insert is
    harmless and can never demote a current owner.
    """
    stmt = (
        upsert(session, Membership)
        .values(
            user_id=user_id,
            organization_id=organization_id,
            role=Role(role).value,
            created_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["user_id", "organization_id"])
    )
    await session.execute(stmt)
    membership = await get_membership(session, user_id, organization_id)
    log.info(
        "membership.upserted",
        user_id=str(user_id),
        org_id=str(organization_id),
        role=membership.role,
    )
    return membership


async def set_role(
    session: AsyncSession,
    user_id: uuid.UUID,
    organization_id: uuid.UUID,
    role: Role | str,
) -> None:
    await session.execute(
        update(Membership)
        .where(
            Membership.user_id == user_id,
            Membership.organization_id == organization_id,
        )
        .values(role=Role(role).value)
    )


async def delete_membership(
    session: AsyncSession, user_id: uuid.UUID, organization_id: uuid.UUID
) -> None:
    await session.execute(
        delete(Membership).where(
            Membership.user_id == user_id,
            Membership.organization_id == organization_id,
        )
    )
