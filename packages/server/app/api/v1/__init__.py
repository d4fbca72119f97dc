"""
API v1 Router

Tenant-scoped endpoints take their organization from the caller's session,
never from the path.
"""

from fastapi import APIRouter
from . import invitations, organizations, session, team

router = APIRouter()

router.include_router(session.router)
router.include_router(organizations.router, prefix="/orgs", tags=["Organizations"])
router.include_router(team.router, prefix="/team", tags=["Team"])
router.include_router(invitations.router, prefix="/invitations", tags=["Invitations"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/me",
            "/orgs",
            "/session/active-org",
            "/session/switch/{org_id}",
            "/team/members",
            "/team/invitations",
            "/invitations/{token}",
        ],
    }
