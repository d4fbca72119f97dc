"""
Authentication and tenant scoping.

Credentials are HS256 JWTs issued by the external credential provider and
verified here; this service never mints them. Every authenticated request
mirrors the caller into ``users`` and, for accounts provisioned by an
invitation, completes the pending join on first sign-in.

Tenant-scoped endpoints depend on ``get_tenant_context``, which resolves the
active organization through the session row and nothing else.
"""

from __future__ import annotations

import uuid
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.database import get_session
from app.models.base import utcnow
from app.models.membership import Membership
from app.models.user import User
from app.services import active_org, invitations, policy
from app.services.team import enforce

log = structlog.get_logger()

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


# ---------------------------------------------------------------------------
# Credential verification
# ---------------------------------------------------------------------------

def decode_credential(token: str) -> dict:
    """Verify signature and expiry. Raises jwt.PyJWTError on failure."""
    settings = get_settings()
    return jwt.decode(
        token,
        settings.credential_secret,
        algorithms=[settings.credential_algorithm],
        options={"require": ["sub", "email"]},
    )


def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip()
    return request.cookies.get(get_settings().session_cookie_name)


# ---------------------------------------------------------------------------
# User mirror
# ---------------------------------------------------------------------------

async def _mirror_user(session: AsyncSession, subject: str, email: str) -> User:
    """Find or create the local account for a verified credential."""
    email = invitations.normalize_email(email)
    result = await session.execute(select(User).where(User.subject == subject))
    user = result.scalar_one_or_none()
    if user is not None:
        if user.email != email:
            user.email = email
            session.add(user)
        return user

    user = await invitations.get_user_by_email(session, email)
    if user is not None:
        if user.subject is not None:
            log.warning("auth.subject_conflict", user_id=str(user.id))
            raise HTTPException(status_code=401, detail="Account is linked to another identity")
        user.subject = subject
    else:
        user = User(subject=subject, email=email)
    session.add(user)
    await session.flush()
    return user


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Depends(api_key_header),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Main authentication dependency. Bearer header first, then session cookie."""
    token = _extract_token(request, authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    try:
        claims = decode_credential(token)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = await _mirror_user(session, str(claims["sub"]), str(claims["email"]))

    if user.first_authenticated_at is None:
        user.first_authenticated_at = utcnow()
        session.add(user)
        await session.flush()
        log.info("auth.first_sign_in", user_id=str(user.id))

    if user.has_pending_invitation:
        await invitations.complete_pending_join(session, user)

    request.state.user = user
    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


# ---------------------------------------------------------------------------
# Tenant context
# ---------------------------------------------------------------------------

class TenantContext:
    """An authenticated user scoped to their active organization."""

    def __init__(self, user: User, membership: Membership):
        self.user = user
        self.membership = membership
        self.user_id: uuid.UUID = user.id
        self.org_id: uuid.UUID = membership.organization_id
        self.role: str = membership.role


async def get_tenant_context(
    request: Request,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> TenantContext:
    membership = await active_org.resolve_active_membership(session, user.id)
    ctx = TenantContext(user=user, membership=membership)
    request.state.tenant = ctx
    return ctx


async def require_manager(
    ctx: TenantContext = Depends(get_tenant_context),
) -> TenantContext:
    """Requires admin or owner in the active organization."""
    enforce(policy.can_manage_members(ctx.role))
    return ctx
