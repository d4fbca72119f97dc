"""
Invitation email delivery via the Resend HTTP API.

Delivery never fails the request that triggered it: the invitation already
exists, and an admin can share the accept link by hand.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from html import escape
from typing import Optional

import httpx
import structlog

from app.core.config import get_settings
from app.models.base import as_utc, utcnow

log = structlog.get_logger()

REQUEST_TIMEOUT_SECONDS = 10


def render_invitation(
    to: str, organization_name: str, inviter_name: str, role: str, accept_url: str, expires_at: datetime
) -> tuple[str, str]:
    """Returns (subject, html)."""
    org = escape(organization_name)
    subject = f"You've been invited to join {organization_name}"
    html = (
        "<!DOCTYPE html><html><body>"
        f"<h1>You've been invited to join {org}</h1>"
        f"<p>{escape(inviter_name)} has invited you to join {org} as "
        f"<strong>{escape(role)}</strong>.</p>"
        f'<p><a href="{escape(accept_url)}">Accept Invitation</a></p>'
        f"<p>Or copy and paste this link into your browser:<br>{escape(accept_url)}</p>"
        f"<p>This invitation was sent to {escape(to)} and expires on "
        f"{as_utc(expires_at):%B %d, %Y at %H:%M} UTC. "
        "If you didn't expect it, you can safely ignore this email.</p>"
        "</body></html>"
    )
    return subject, html


async def send_invitation_email(
    to: str,
    organization_name: str,
    inviter_name: str,
    role: str,
    token: str,
    *,
    expires_at: Optional[datetime] = None,
    invitation_id: Optional[uuid.UUID] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """Send the invitation. Returns True when the provider accepted it.

    The token is a bearer secret: it goes into the email body only, never the logs.
    """
    settings = get_settings()
    if expires_at is None:
        expires_at = utcnow() + timedelta(days=settings.invitation_ttl_days)
    ref = str(invitation_id) if invitation_id else None

    if not settings.resend_api_key:
        log.info("email.delivery_disabled", to=to, invitation_id=ref)
        return False

    subject, html = render_invitation(
        to, organization_name, inviter_name, role, settings.accept_url(token), expires_at
    )
    payload = {"from": settings.email_from, "to": [to], "subject": subject, "html": html}
    headers = {"Authorization": f"Bearer {settings.resend_api_key}"}

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT_SECONDS))
    try:
        resp = await client.post(settings.resend_api_url, json=payload, headers=headers)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        log.error("email.send_failed", to=to, invitation_id=ref, error=str(exc))
        return False
    finally:
        if owns_client:
            await client.aclose()

    log.info("email.sent", to=to, invitation_id=ref, message_id=resp.json().get("id"))
    return True
