"""
Organization service: founding organizations and listing a user's organizations.
"""

from __future__ import annotations

import re
import secrets
import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Conflict
from app.models.organization import Organization
from app.services import active_org, audit
from app.services import memberships as membership_store
from tenant_access_shared.schemas.common import Role

log = structlog.get_logger()


def slugify(name: str) -> str:
    """Lowercase, spaces to hyphens, everything else outside [a-z0-9-] dropped."""
    slug = re.sub(r"\s+", "-", name.strip().lower())
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-{2,}", "-", slug).strip("-")
    return slug or "org"


async def _slug_taken(session: AsyncSession, slug: str) -> bool:
    result = await session.execute(select(Organization.id).where(Organization.slug == slug))
    return result.first() is not None


async def list_user_orgs(session: AsyncSession, user_id: uuid.UUID) -> list[dict]:
    """All orgs a user belongs to, with their role and whether it is the active one."""
    rows = await membership_store.list_user_memberships(session, user_id)
    current = await active_org.get_session_row(session, user_id)
    active_id = current.active_organization_id if current else None
    return [
        {
            "id": org.id,
            "name": org.name,
            "slug": org.slug,
            "role": membership.role,
            "is_active": org.id == active_id,
        }
        for membership, org in rows
    ]


async def create_organization(
    session: AsyncSession,
    creator_id: uuid.UUID,
    name: str,
    slug: Optional[str] = None,
) -> Organization:
    """Create an org; the creator becomes its owner and switches to it."""
    slug = slug or slugify(name)
    if await _slug_taken(session, slug):
        candidate = f"{slug}-{secrets.token_hex(3)}"
        if await _slug_taken(session, candidate):
            raise Conflict("Organization slug already taken")
        slug = candidate

    org = Organization(name=name, slug=slug)
    session.add(org)
    await session.flush()

    await membership_store.add_membership(session, creator_id, org.id, Role.OWNER)
    await active_org.set_active_org(session, creator_id, org.id)
    await audit.record(
        session,
        org.id,
        audit.ORGANIZATION_CREATED,
        creator_id,
        creator_id,
        {"name": name, "slug": slug},
    )

    log.info("org.created", org_id=str(org.id), slug=slug, creator=str(creator_id))
    return org
