"""
Authorization policy engine tests.

The role-change and removal rules are checked cell by cell over every
(actor role, target role, new role, self/other, owner count) combination
against a hand-written reference table, then through the named scenarios.
"""

from __future__ import annotations

import itertools
import uuid

import pytest

from app.services.policy import (
    ALLOW,
    Allow,
    Deny,
    DenyCode,
    Member,
    can_change_role,
    can_manage_members,
    can_remove_member,
)
from tenant_access_shared.schemas.common import Role

ROLES = [r.value for r in Role]
OWNER_COUNTS = [1, 2]


def _pair(actor_role: str, target_role: str, is_self: bool) -> tuple[Member, Member]:
    actor_id = uuid.uuid4()
    target_id = actor_id if is_self else uuid.uuid4()
    return Member(actor_id, actor_role), Member(target_id, target_role)


def expected_role_change(actor, target, new, is_self, owners):
    """Reference table for role changes. None means allowed."""
    if is_self:
        return DenyCode.SELF_CHANGE
    if new == "owner":
        return None if actor == "owner" else DenyCode.OWNER_PROMOTION
    if target == "owner" and owners == 1:
        return DenyCode.LAST_OWNER
    if actor in ("owner", "admin"):
        return None
    return DenyCode.INSUFFICIENT_ROLE


def expected_removal(actor, target, is_self, owners):
    """Reference table for removals. None means allowed."""
    if is_self:
        return DenyCode.SELF_REMOVAL
    if target == "owner":
        if actor != "owner":
            return DenyCode.OWNER_REMOVAL
        if owners == 1:
            return DenyCode.LAST_OWNER
    if actor in ("owner", "admin"):
        return None
    return DenyCode.INSUFFICIENT_ROLE


# ---------------------------------------------------------------------------
# Decision table: role changes
# ---------------------------------------------------------------------------

ROLE_CHANGE_CELLS = list(itertools.product(ROLES, ROLES, ROLES, [True, False], OWNER_COUNTS))


@pytest.mark.parametrize(
    "actor_role,target_role,new_role,is_self,owner_count",
    ROLE_CHANGE_CELLS,
    ids=[f"{a}-{t}-to-{n}-{'self' if s else 'other'}-owners{c}" for a, t, n, s, c in ROLE_CHANGE_CELLS],
)
def test_role_change_table(actor_role, target_role, new_role, is_self, owner_count):
    actor, target = _pair(actor_role, target_role, is_self)
    decision = can_change_role(actor, target, new_role, owner_count)
    expected = expected_role_change(actor_role, target_role, new_role, is_self, owner_count)
    if expected is None:
        assert decision is ALLOW
    else:
        assert isinstance(decision, Deny)
        assert decision.code == expected


# ---------------------------------------------------------------------------
# Decision table: removals
# ---------------------------------------------------------------------------

REMOVAL_CELLS = list(itertools.product(ROLES, ROLES, [True, False], OWNER_COUNTS))


@pytest.mark.parametrize(
    "actor_role,target_role,is_self,owner_count",
    REMOVAL_CELLS,
    ids=[f"{a}-removes-{t}-{'self' if s else 'other'}-owners{c}" for a, t, s, c in REMOVAL_CELLS],
)
def test_removal_table(actor_role, target_role, is_self, owner_count):
    actor, target = _pair(actor_role, target_role, is_self)
    decision = can_remove_member(actor, target, owner_count)
    expected = expected_removal(actor_role, target_role, is_self, owner_count)
    if expected is None:
        assert decision is ALLOW
    else:
        assert isinstance(decision, Deny)
        assert decision.code == expected


# ---------------------------------------------------------------------------
# Reasons and decision objects
# ---------------------------------------------------------------------------

class TestDecisions:
    def test_allow_is_truthy_and_deny_is_falsy(self):
        assert bool(ALLOW) is True
        assert isinstance(ALLOW, Allow)
        assert bool(Deny(DenyCode.INSUFFICIENT_ROLE, "insufficient role")) is False

    def test_member_coerces_role_strings(self):
        member = Member(uuid.uuid4(), "admin")
        assert member.role is Role.ADMIN

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            Member(uuid.uuid4(), "superuser")

    def test_reasons_are_stable(self):
        actor, target = _pair("admin", "viewer", is_self=True)
        assert can_change_role(actor, target, "viewer", 2).reason == "cannot change your own role"

        actor, target = _pair("admin", "viewer", is_self=False)
        assert can_change_role(actor, target, "owner", 2).reason == (
            "only owners can promote members to owner"
        )

        actor, target = _pair("admin", "owner", is_self=False)
        assert can_change_role(actor, target, "admin", 1).reason == "cannot demote the last owner"

        actor, target = _pair("viewer", "editor", is_self=False)
        assert can_change_role(actor, target, "viewer", 1).reason == "insufficient role"

        actor, target = _pair("owner", "owner", is_self=True)
        assert can_remove_member(actor, target, 2).reason == "cannot remove yourself"

        actor, target = _pair("admin", "owner", is_self=False)
        assert can_remove_member(actor, target, 2).reason == "only owners can remove other owners"

        actor, target = _pair("owner", "owner", is_self=False)
        assert can_remove_member(actor, target, 1).reason == "cannot remove the last owner"

    @pytest.mark.parametrize("role", ["owner", "admin"])
    def test_managers_can_manage_members(self, role):
        assert can_manage_members(role)

    @pytest.mark.parametrize("role", ["editor", "viewer"])
    def test_others_cannot_manage_members(self, role):
        decision = can_manage_members(role)
        assert not decision
        assert decision.code == DenyCode.INSUFFICIENT_ROLE


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

class TestScenarios:
    def test_admin_cannot_demote_self(self):
        """Admin U changing their own role to viewer is refused."""
        uid = uuid.uuid4()
        decision = can_change_role(Member(uid, "admin"), Member(uid, "admin"), "viewer", 1)
        assert not decision
        assert decision.reason == "cannot change your own role"

    def test_self_change_refused_even_when_no_op(self):
        uid = uuid.uuid4()
        decision = can_change_role(Member(uid, "owner"), Member(uid, "owner"), "owner", 3)
        assert decision.code == DenyCode.SELF_CHANGE

    def test_admin_cannot_remove_sole_owner(self):
        decision = can_remove_member(
            Member(uuid.uuid4(), "admin"), Member(uuid.uuid4(), "owner"), 1
        )
        assert not decision
        assert "owner" in decision.reason

    @pytest.mark.parametrize("actor_role", ROLES)
    @pytest.mark.parametrize("new_role", ["admin", "editor", "viewer"])
    def test_sole_owner_never_demoted(self, actor_role, new_role):
        owner_id = uuid.uuid4()
        for actor_id in (owner_id, uuid.uuid4()):
            decision = can_change_role(
                Member(actor_id, actor_role if actor_id != owner_id else "owner"),
                Member(owner_id, "owner"),
                new_role,
                1,
            )
            assert not decision

    @pytest.mark.parametrize("actor_role", ROLES)
    def test_sole_owner_never_removed(self, actor_role):
        owner_id = uuid.uuid4()
        for actor_id in (owner_id, uuid.uuid4()):
            decision = can_remove_member(
                Member(actor_id, actor_role if actor_id != owner_id else "owner"),
                Member(owner_id, "owner"),
                1,
            )
            assert not decision

    def test_owner_can_demote_co_owner(self):
        decision = can_change_role(
            Member(uuid.uuid4(), "owner"), Member(uuid.uuid4(), "owner"), "admin", 2
        )
        assert decision is ALLOW

    def test_owner_can_promote_to_owner(self):
        decision = can_change_role(
            Member(uuid.uuid4(), "owner"), Member(uuid.uuid4(), "editor"), "owner", 1
        )
        assert decision is ALLOW

    def test_admin_can_remove_editor(self):
        decision = can_remove_member(
            Member(uuid.uuid4(), "admin"), Member(uuid.uuid4(), "editor"), 1
        )
        assert decision is ALLOW
