"""
Authorization policy engine.

Pure decisions over (actor role, target role, self/other, remaining-owner
count). No I/O: callers read the inputs fresh under the organization lock,
apply the mutation on ``Allow`` and write the audit entry themselves.

Each rule set is an ordered table of ``(predicate, Deny)`` rows. The first
matching row denies; when no row matches the action is allowed. Deny reasons
are part of the public contract and are matched verbatim by callers.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from tenant_access_shared.schemas.common import MANAGER_ROLES, Role


class DenyCode(str, Enum):
    SELF_CHANGE = "self_change"
    SELF_REMOVAL = "self_removal"
    OWNER_PROMOTION = "owner_promotion"
    OWNER_REMOVAL = "owner_removal"
    LAST_OWNER = "last_owner"
    INSUFFICIENT_ROLE = "insufficient_role"


@dataclass(frozen=True)
class Allow:
    allowed = True

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Deny:
    code: DenyCode
    reason: str
    allowed = False

    def __bool__(self) -> bool:
        return False


Decision = Union[Allow, Deny]

ALLOW = Allow()


@dataclass(frozen=True)
class Member:
    """A (user, role) pair inside one organization."""
    user_id: uuid.UUID
    role: Role

    def __post_init__(self):
        object.__setattr__(self, "role", Role(self.role))


@dataclass(frozen=True)
class _Case:
    actor: Member
    target: Member
    owner_count: int
    new_role: Optional[Role] = None

    @property
    def is_self(self) -> bool:
        return self.actor.user_id == self.target.user_id

    @property
    def actor_is_owner(self) -> bool:
        return self.actor.role == Role.OWNER

    @property
    def target_is_owner(self) -> bool:
        return self.target.role == Role.OWNER

    @property
    def last_owner(self) -> bool:
        return self.owner_count <= 1


Rule = tuple[Callable[[_Case], bool], Deny]


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

ROLE_CHANGE_RULES: tuple[Rule, ...] = (
    (
        lambda c: c.is_self,
        Deny(DenyCode.SELF_CHANGE, "cannot change your own role"),
    ),
    (
        lambda c: c.new_role == Role.OWNER and not c.actor_is_owner,
        Deny(DenyCode.OWNER_PROMOTION, "only owners can promote members to owner"),
    ),
    (
        lambda c: c.target_is_owner and c.last_owner and c.new_role != Role.OWNER,
        Deny(DenyCode.LAST_OWNER, "cannot demote the last owner"),
    ),
    (
        lambda c: c.actor.role not in MANAGER_ROLES,
        Deny(DenyCode.INSUFFICIENT_ROLE, "insufficient role"),
    ),
)

REMOVE_MEMBER_RULES: tuple[Rule, ...] = (
    (
        lambda c: c.is_self,
        Deny(DenyCode.SELF_REMOVAL, "cannot remove yourself"),
    ),
    (
        lambda c: c.target_is_owner and not c.actor_is_owner,
        Deny(DenyCode.OWNER_REMOVAL, "only owners can remove other owners"),
    ),
    (
        lambda c: c.target_is_owner and c.last_owner,
        Deny(DenyCode.LAST_OWNER, "cannot remove the last owner"),
    ),
    (
        lambda c: c.actor.role not in MANAGER_ROLES,
        Deny(DenyCode.INSUFFICIENT_ROLE, "insufficient role"),
    ),
)


def _evaluate(rules: tuple[Rule, ...], case: _Case) -> Decision:
    for predicate, denial in rules:
        if predicate(case):
            return denial
    return ALLOW


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

def can_change_role(
    actor: Member, target: Member, new_role: Role | str, owner_count: int
) -> Decision:
    """Decide whether ``actor`` may set ``target``'s role to ``new_role``."""
    case = _Case(actor=actor, target=target, owner_count=owner_count, new_role=Role(new_role))
    return _evaluate(ROLE_CHANGE_RULES, case)


def can_remove_member(actor: Member, target: Member, owner_count: int) -> Decision:
    """Decide whether ``actor`` may remove ``target`` from the organization."""
    case = _Case(actor=actor, target=target, owner_count=owner_count)
    return _evaluate(REMOVE_MEMBER_RULES, case)


def can_manage_members(role: Role | str) -> Decision:
    """Listing members and managing invitations requires admin or owner."""
    if Role(role) in MANAGER_ROLES:
        return ALLOW
    return Deny(DenyCode.INSUFFICIENT_ROLE, "insufficient role")
