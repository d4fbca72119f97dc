"""
Invitation lifecycle: create, preview, accept, and auto-join on first login.

Acceptance is the only path that writes a membership for a user who has no
membership yet. The join (claim the token, upsert membership, point the
session at the organization, audit) runs in the caller's transaction, so it
either commits as a unit or leaves the invitation pending for a retry.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.errors import (
    Conflict,
    EmailMismatch,
    InvitationAlreadyAccepted,
    InvitationExpired,
    InvitationNotFound,
    NotAMember,
    PermissionDenied,
)
from app.models.base import utcnow
from app.models.invitation import Invitation
from app.models.organization import Organization
from app.models.user import User
from app.services import active_org, audit, policy
from app.services import memberships as membership_store
from tenant_access_shared.schemas.common import INVITABLE_ROLES, Role

log = structlog.get_logger()

TOKEN_BYTES = 32


def normalize_email(email: str) -> str:
    return email.strip().lower()


def generate_token() -> str:
    """Unpredictable, URL-safe invitation token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(
        select(User).where(User.email == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def get_invitation_by_token(session: AsyncSession, token: str) -> Optional[Invitation]:
    result = await session.execute(select(Invitation).where(Invitation.token == token))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

async def create_invitation(
    session: AsyncSession,
    inviter_id: uuid.UUID,
    organization_id: uuid.UUID,
    email: str,
    role: Role | str,
    ttl_days: Optional[int] = None,
) -> tuple[Invitation, str]:
    """Invite ``email`` to join the organization at ``role``.

    A brand-new email gets a provisioned account carrying pending-invitation
    claims so its first sign-in joins automatically; until that sign-in the
    claims point at the newest invitation. Accounts that have signed in are
    not touched and accept explicitly.
    """
    ttl = get_settings().invitation_ttl_days if ttl_days is None else ttl_days
    if ttl < 1:
        raise ValueError("ttl_days must be at least 1")

    inviter = await membership_store.get_membership(session, inviter_id, organization_id)
    if inviter is None:
        raise NotAMember()
    if not policy.can_manage_members(inviter.role):
        raise PermissionDenied("Only organization admins and owners can invite members")

    role = Role(role)
    if role not in INVITABLE_ROLES:
        raise PermissionDenied("Invitations can grant admin, editor or viewer")

    email = normalize_email(email)
    user = await get_user_by_email(session, email)
    if user is not None:
        existing = await membership_store.get_membership(session, user.id, organization_id)
        if existing is not None:
            raise Conflict("User is already a member of this organization")

    token = generate_token()
    invitation = Invitation(
        token=token,
        email=email,
        organization_id=organization_id,
        role=role.value,
        invited_by=inviter_id,
        expires_at=utcnow() + timedelta(days=ttl),
    )
    session.add(invitation)
    await session.flush()

    if user is None:
        user = User(email=email)
        _set_pending_claims(user, invitation)
        session.add(user)
        await session.flush()
        log.info("invitation.account_provisioned", user_id=str(user.id), org_id=str(organization_id))
    elif user.first_authenticated_at is None:
        # never signed in: claims follow the newest invitation
        _set_pending_claims(user, invitation)
        session.add(user)
        await session.flush()

    await audit.record(
        session,
        organization_id,
        audit.INVITATION_CREATED,
        inviter_id,
        user.id,
        {"role": role.value, "invitation_id": str(invitation.id), "expires_at": invitation.expires_at.isoformat()},
        target_email=email,
    )
    log.info(
        "invitation.created",
        invitation_id=str(invitation.id),
        org_id=str(organization_id),
        role=role.value,
        ttl_days=ttl,
    )
    return invitation, token


def _set_pending_claims(user: User, invitation: Invitation) -> None:
    user.pending_invitation_id = invitation.id
    user.pending_organization_id = invitation.organization_id
    user.pending_role = invitation.role


def _clear_pending_claims(user: User) -> None:
    user.pending_invitation_id = None
    user.pending_organization_id = None
    user.pending_role = None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def list_pending_invitations(
    session: AsyncSession, organization_id: uuid.UUID, caller_role: Role | str
) -> list[Invitation]:
    """Pending (not accepted, not expired) invitations, newest first."""
    if not policy.can_manage_members(caller_role):
        raise PermissionDenied("Only organization admins and owners can view invitations")
    result = await session.execute(
        select(Invitation)
        .where(
            Invitation.organization_id == organization_id,
            Invitation.accepted_at.is_(None),
            Invitation.expires_at > utcnow(),
        )
        .order_by(Invitation.created_at.desc())
    )
    return list(result.scalars().all())


async def get_invitation_preview(session: AsyncSession, token: str) -> dict:
    """What the accept page shows before the invitee signs in."""
    result = await session.execute(
        select(Invitation, Organization)
        .join(Organization, Organization.id == Invitation.organization_id)
        .where(Invitation.token == token)
    )
    row = result.one_or_none()
    if row is None:
        raise InvitationNotFound()
    invitation, org = row
    return {
        "organization_id": org.id,
        "organization_name": org.name,
        "email": invitation.email,
        "role": invitation.role,
        "status": invitation.status(),
        "expires_at": invitation.expires_at,
    }


# ---------------------------------------------------------------------------
# Acceptance
# ---------------------------------------------------------------------------

def _check_acceptable(invitation: Invitation, email: str, now: datetime) -> None:
    state = invitation.status(now)
    if state == "accepted":
        raise InvitationAlreadyAccepted()
    if state == "expired":
        raise InvitationExpired()
    if normalize_email(invitation.email) != normalize_email(email):
        raise EmailMismatch()


async def _join(session: AsyncSession, invitation: Invitation, user_id: uuid.UUID) -> uuid.UUID:
    """Claim the token, then membership, then session. One transaction."""
    now = utcnow()
    claimed = await session.execute(
        update(Invitation)
        .where(Invitation.id == invitation.id, Invitation.accepted_at.is_(None))
        .values(accepted_at=now)
    )
    if claimed.rowcount == 0:
        raise InvitationAlreadyAccepted()

    await membership_store.add_membership(
        session, user_id, invitation.organization_id, invitation.role
    )
    await active_org.set_active_org(session, user_id, invitation.organization_id)
    await audit.record(
        session,
        invitation.organization_id,
        audit.INVITATION_ACCEPTED,
        user_id,
        user_id,
        {"role": invitation.role, "invitation_id": str(invitation.id)},
        target_email=invitation.email,
    )
    log.info(
        "invitation.accepted",
        invitation_id=str(invitation.id),
        user_id=str(user_id),
        org_id=str(invitation.organization_id),
        role=invitation.role,
    )
    return invitation.organization_id


async def accept_invitation(
    session: AsyncSession, token: str, caller_id: uuid.UUID, caller_email: str
) -> uuid.UUID:
    """Accept an invitation as an authenticated caller. Returns the organization id."""
    invitation = await get_invitation_by_token(session, token)
    if invitation is None:
        raise InvitationNotFound()
    _check_acceptable(invitation, caller_email, utcnow())
    return await _join(session, invitation, caller_id)


async def complete_pending_join(session: AsyncSession, user: User) -> Optional[uuid.UUID]:
    """Auto-join for an account provisioned by an invitation.

    Runs on authentication while the account still carries pending claims.
    Every open invitation for the account's email is joined, oldest first, so
    the session ends on the newest one. Claims are cleared whether or not any
    join happens, so a stale invitation is never retried on every request.
    Returns the organization the session now points at, or None.
    """
    if not user.has_pending_invitation:
        return None

    claimed = await session.get(Invitation, user.pending_invitation_id)
    if claimed is None or claimed.organization_id != user.pending_organization_id:
        log.warning("invitation.pending_claims_invalid", user_id=str(user.id))

    result = await session.execute(
        select(Invitation)
        .where(Invitation.email == normalize_email(user.email), Invitation.accepted_at.is_(None))
        .order_by(Invitation.created_at, Invitation.id)
    )
    now = utcnow()
    org_id: Optional[uuid.UUID] = None
    for invitation in result.scalars().all():
        try:
            _check_acceptable(invitation, user.email, now)
            org_id = await _join(session, invitation, user.id)
        except (InvitationAlreadyAccepted, InvitationExpired, EmailMismatch) as exc:
            log.warning(
                "invitation.pending_join_skipped",
                user_id=str(user.id),
                invitation_id=str(invitation.id),
                reason=exc.code,
            )

    _clear_pending_claims(user)
    session.add(user)
    await session.flush()
    return org_id
