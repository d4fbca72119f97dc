from enum import Enum

from pydantic import BaseModel


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


# Roles allowed to manage team membership and invitations
MANAGER_ROLES: frozenset["Role"] = frozenset({Role.OWNER, Role.ADMIN})

# Roles an invitation may grant; owner is only reachable by promotion
INVITABLE_ROLES: frozenset["Role"] = frozenset({Role.ADMIN, Role.EDITOR, Role.VIEWER})


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int


class ErrorResponse(BaseModel):
    """Envelope returned for every access-core error."""
    error: ErrorBody
