"""
Access-core error taxonomy.

Every error is an ``HTTPException`` carrying a stable ``code`` so services can
raise them directly and ``app.main`` renders one envelope for all of them.
"""

from __future__ import annotations

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse


class AccessError(HTTPException):
    status_code: int = 400
    code: str = "ACCESS_ERROR"
    default_message: str = "Request not permitted"

    def __init__(self, message: str | None = None):
        super().__init__(status_code=self.status_code, detail=message or self.default_message)

    @property
    def message(self) -> str:
        return self.detail


class PermissionDenied(AccessError):
    status_code = 403
    code = "PERMISSION_DENIED"
    default_message = "insufficient role"


class NotAMember(AccessError):
    """Malformed, nonexistent, and not-joined organizations all look the same."""

    status_code = 404
    code = "NOT_A_MEMBER"
    default_message = "Organization not found"


class NoMembership(AccessError):
    status_code = 403
    code = "NO_MEMBERSHIP"
    default_message = (
        "User has no organization memberships. Please create or join an organization."
    )


class Conflict(AccessError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


class InvitationNotFound(AccessError):
    status_code = 404
    code = "INVITATION_NOT_FOUND"
    default_message = "Invalid invitation token"


class InvitationExpired(AccessError):
    status_code = 410
    code = "INVITATION_EXPIRED"
    default_message = "Invitation has expired"


class InvitationAlreadyAccepted(AccessError):
    status_code = 409
    code = "INVITATION_ALREADY_ACCEPTED"
    default_message = "Invitation has already been used"


class EmailMismatch(AccessError):
    status_code = 403
    code = "EMAIL_MISMATCH"
    default_message = "This invitation is for a different email address"


class CSRFValidationFailed(AccessError):
    status_code = 403
    code = "CSRF_VALIDATION_FAILED"
    default_message = "Invalid or missing CSRF token."


def error_response(exc: AccessError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "status": exc.status_code,
            }
        },
    )


async def access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
    return error_response(exc)
