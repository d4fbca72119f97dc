# SQLModel definitions, imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .membership import Membership  # noqa: F401
from .user_session import UserSession  # noqa: F401
from .invitation import Invitation  # noqa: F401
from .audit_log import AuditLogEntry  # noqa: F401
