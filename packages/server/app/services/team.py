"""
Team service: member listing, role changes and removals within one organization.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, NotAMember, PermissionDenied
from app.models.membership import Membership
from app.models.user import User
from app.services import active_org, audit, policy
from app.services import memberships as membership_store
from tenant_access_shared.schemas.common import Role

log = structlog.get_logger()


def enforce(decision: policy.Decision) -> None:
    """Turn a policy denial into the matching error."""
    if decision:
        return
    if decision.code == policy.DenyCode.LAST_OWNER:
        raise Conflict(decision.reason)
    raise PermissionDenied(decision.reason)


async def list_organization_members(
    session: AsyncSession, organization_id: uuid.UUID, caller_role: Role | str
) -> list[dict]:
    enforce(policy.can_manage_members(caller_role))
    return await membership_store.list_members(session, organization_id)


async def _locked_pair(
    session: AsyncSession,
    organization_id: uuid.UUID,
    actor_id: uuid.UUID,
    actor_role: Role | str,
    target_id: uuid.UUID,
) -> tuple[policy.Member, Membership]:
    """Lock the org, then read actor and target memberships fresh.

    The actor's role from the request context may be stale by now; the
    decision uses the role held under the lock.
    """
    await membership_store.lock_organization(session, organization_id)
    actor = await membership_store.get_membership(session, actor_id, organization_id)
    if actor is None:
        raise NotAMember()
    if actor.role != Role(actor_role).value:
        log.warning(
            "membership.actor_role_stale",
            org_id=str(organization_id),
            actor_id=str(actor_id),
            context_role=Role(actor_role).value,
            current_role=actor.role,
        )
    target = await membership_store.get_membership(session, target_id, organization_id)
    if target is None:
        raise NotAMember("User is not a member of this organization")
    return policy.Member(actor_id, actor.role), target


async def change_role(
    session: AsyncSession,
    actor_id: uuid.UUID,
    actor_role: Role | str,
    organization_id: uuid.UUID,
    target_id: uuid.UUID,
    new_role: Role | str,
) -> Membership:
    """Change a member's role. The owner count is read under the org lock."""
    new_role = Role(new_role)
    actor, target = await _locked_pair(session, organization_id, actor_id, actor_role, target_id)
    owner_count = await membership_store.count_owners(session, organization_id)

    enforce(
        policy.can_change_role(
            actor,
            policy.Member(target.user_id, target.role),
            new_role,
            owner_count,
        )
    )

    old_role = target.role
    if old_role == new_role.value:
        return target

    await membership_store.set_role(session, target_id, organization_id, new_role)
    await session.refresh(target)

    await audit.record(
        session,
        organization_id,
        audit.ROLE_CHANGED,
        actor_id,
        target_id,
        {"old_role": old_role, "new_role": new_role.value},
    )
    log.info(
        "membership.role_changed",
        org_id=str(organization_id),
        actor_id=str(actor_id),
        target_id=str(target_id),
        old_role=old_role,
        new_role=new_role.value,
    )
    return target


async def remove_member(
    session: AsyncSession,
    actor_id: uuid.UUID,
    actor_role: Role | str,
    organization_id: uuid.UUID,
    target_id: uuid.UUID,
) -> None:
    """Remove a member. Their session is dropped if it pointed at this organization."""
    actor, target = await _locked_pair(session, organization_id, actor_id, actor_role, target_id)
    owner_count = await membership_store.count_owners(session, organization_id)

    enforce(
        policy.can_remove_member(
            actor,
            policy.Member(target.user_id, target.role),
            owner_count,
        )
    )

    removed_role = target.role
    user = await session.get(User, target_id)
    await membership_store.delete_membership(session, target_id, organization_id)
    await active_org.clear_active_org(session, target_id, organization_id)

    await audit.record(
        session,
        organization_id,
        audit.MEMBER_REMOVED,
        actor_id,
        target_id,
        {"removed_role": removed_role, "removed_email": user.email if user else None},
        target_email=user.email if user else None,
    )
    log.info(
        "membership.removed",
        org_id=str(organization_id),
        actor_id=str(actor_id),
        target_id=str(target_id),
        removed_role=removed_role,
    )
