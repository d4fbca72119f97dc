"""
API tests through the ASGI app: authentication, the error envelope, and the
end-to-end organization, team and invitation flows.
"""

from __future__ import annotations

from urllib.parse import quote

import pytest
from sqlmodel import select

from app.models.membership import Membership
from app.models.user import User
from conftest import make_token


def _envelope(resp) -> dict:
    body = resp.json()
    assert set(body) == {"error"}
    assert set(body["error"]) == {"code", "message", "status"}
    assert body["error"]["status"] == resp.status_code
    return body["error"]


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_missing_credential(self, client):
        resp = await client.get("/api/v1/me")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_bad_signature(self, client):
        token = make_token("sub-1", "a@example.com", secret="wrong-secret-wrong-secret-wrong-secret")
        resp = await client.get("/api/v1/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_cookie_credential(self, client, seed):
        alice = await seed.user("alice@example.com")
        client.cookies.set("ta_session", seed.token(alice))
        resp = await client.get("/api/v1/me")
        assert resp.status_code == 200
        assert resp.json()["email"] == "alice@example.com"

    @pytest.mark.asyncio
    async def test_first_sign_in_creates_account(self, client, session_factory):
        token = make_token("provider-123", "Dana@Example.com")
        resp = await client.get("/api/v1/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["email"] == "dana@example.com"
        assert body["active_organization_id"] is None
        assert body["role"] is None

        async with session_factory() as s:
            user = (await s.execute(select(User).where(User.subject == "provider-123"))).scalar_one()
            assert user.first_authenticated_at is not None


class TestOrganizations:
    @pytest.mark.asyncio
    async def test_found_org_makes_caller_owner(self, client, seed):
        alice = await seed.user("alice@example.com")
        headers = seed.headers(alice)

        resp = await client.post("/api/v1/orgs", json={"name": "Acme Ventures"}, headers=headers)
        assert resp.status_code == 201
        org = resp.json()
        assert org["slug"] == "acme-ventures"

        resp = await client.get("/api/v1/orgs", headers=headers)
        assert resp.json()["data"] == [
            {
                "id": org["id"],
                "name": "Acme Ventures",
                "slug": "acme-ventures",
                "role": "owner",
                "is_active": True,
            }
        ]

        resp = await client.get("/api/v1/session/active-org", headers=headers)
        assert resp.json()["organization_id"] == org["id"]
        assert resp.json()["role"] == "owner"

    @pytest.mark.asyncio
    async def test_taken_slug_gets_suffix(self, client, seed):
        alice = await seed.user("alice@example.com")
        headers = seed.headers(alice)

        first = await client.post("/api/v1/orgs", json={"name": "Acme"}, headers=headers)
        second = await client.post("/api/v1/orgs", json={"name": "Acme"}, headers=headers)
        assert first.json()["slug"] == "acme"
        assert second.json()["slug"].startswith("acme-")
        assert second.json()["slug"] != "acme"


class TestSession:
    @pytest.mark.asyncio
    async def test_no_membership_envelope(self, client, seed):
        alice = await seed.user("alice@example.com")
        resp = await client.get("/api/v1/session/active-org", headers=seed.headers(alice))
        assert resp.status_code == 403
        assert _envelope(resp)["code"] == "NO_MEMBERSHIP"

    @pytest.mark.asyncio
    async def test_switch(self, client, seed):
        alice = await seed.user("alice@example.com")
        first = await seed.team("First", owner=alice)
        second = await seed.team("Second", viewer=alice)
        await seed.active(alice, first)

        resp = await client.post(f"/api/v1/session/switch/{second.id}", headers=seed.headers(alice))
        assert resp.status_code == 200
        assert resp.json()["organization_id"] == str(second.id)
        assert resp.json()["role"] == "viewer"

        resp = await client.get("/api/v1/me", headers=seed.headers(alice))
        assert resp.json()["active_organization_id"] == str(second.id)

    @pytest.mark.parametrize(
        "org_id", ["'; DROP TABLE x; --", "00000000-0000-0000-0000-000000000000", "abc"]
    )
    @pytest.mark.asyncio
    async def test_switch_to_unknown_org(self, client, seed, org_id):
        alice = await seed.user("alice@example.com")
        await seed.team(owner=alice)

        resp = await client.post(
            f"/api/v1/session/switch/{quote(org_id, safe='')}", headers=seed.headers(alice)
        )
        assert resp.status_code == 404
        error = _envelope(resp)
        assert error == {"code": "NOT_A_MEMBER", "message": "Organization not found", "status": 404}


class TestTeam:
    @pytest.mark.asyncio
    async def test_list_members_as_admin(self, client, seed):
        alice = await seed.user("alice@example.com")
        bob = await seed.user("bob@example.com")
        org = await seed.team(owner=alice, admin=bob)
        await seed.active(bob, org)

        resp = await client.get("/api/v1/team/members", headers=seed.headers(bob))
        assert resp.status_code == 200
        assert [m["role"] for m in resp.json()["data"]] == ["owner", "admin"]

    @pytest.mark.asyncio
    async def test_list_members_as_viewer(self, client, seed):
        alice = await seed.user("alice@example.com")
        bob = await seed.user("bob@example.com")
        org = await seed.team(owner=alice, viewer=bob)
        await seed.active(bob, org)

        resp = await client.get("/api/v1/team/members", headers=seed.headers(bob))
        assert resp.status_code == 403
        assert _envelope(resp) == {
            "code": "PERMISSION_DENIED",
            "message": "insufficient role",
            "status": 403,
        }

    @pytest.mark.asyncio
    async def test_change_role(self, client, seed):
        alice = await seed.user("alice@example.com")
        bob = await seed.user("bob@example.com")
        org = await seed.team(owner=alice, editor=bob)

        resp = await client.patch(
            f"/api/v1/team/members/{bob.id}", json={"role": "admin"}, headers=seed.headers(alice)
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "admin"
        assert resp.json()["user_id"] == str(bob.id)
        assert org.id

    @pytest.mark.asyncio
    async def test_change_own_role_refused(self, client, seed):
        alice = await seed.user("alice@example.com")
        bob = await seed.user("bob@example.com")
        await seed.team(owner=alice, admin=bob)

        resp = await client.patch(
            f"/api/v1/team/members/{bob.id}", json={"role": "viewer"}, headers=seed.headers(bob)
        )
        assert resp.status_code == 403
        assert _envelope(resp)["message"] == "cannot change your own role"

    @pytest.mark.asyncio
    async def test_remove_sole_owner_refused(self, client, seed, session_factory):
        alice = await seed.user("alice@example.com")
        bob = await seed.user("bob@example.com")
        org = await seed.team(owner=alice, admin=bob)

        resp = await client.delete(f"/api/v1/team/members/{alice.id}", headers=seed.headers(bob))
        assert resp.status_code == 403
        assert "owner" in _envelope(resp)["message"]

        async with session_factory() as s:
            owners = (
                await s.execute(
                    select(Membership).where(
                        Membership.organization_id == org.id, Membership.role == "owner"
                    )
                )
            ).scalars().all()
        assert [m.user_id for m in owners] == [alice.id]

    @pytest.mark.asyncio
    async def test_demote_last_owner_is_conflict(self, client, seed):
        alice = await seed.user("alice@example.com")
        bob = await seed.user("bob@example.com")
        await seed.team(owner=alice, admin=bob)

        resp = await client.patch(
            f"/api/v1/team/members/{alice.id}", json={"role": "viewer"}, headers=seed.headers(bob)
        )
        assert resp.status_code == 409
        assert _envelope(resp) == {
            "code": "CONFLICT",
            "message": "cannot demote the last owner",
            "status": 409,
        }

    @pytest.mark.asyncio
    async def test_remove_member(self, client, seed):
        alice = await seed.user("alice@example.com")
        bob = await seed.user("bob@example.com")
        await seed.team(owner=alice, viewer=bob)

        resp = await client.delete(f"/api/v1/team/members/{bob.id}", headers=seed.headers(alice))
        assert resp.status_code == 204

        resp = await client.get("/api/v1/session/active-org", headers=seed.headers(bob))
        assert resp.status_code == 403


class TestInvitationFlow:
    @pytest.mark.asyncio
    async def test_new_account_joins_on_first_sign_in(self, client, seed, session_factory):
        alice = await seed.user("alice@example.com")
        org = await seed.team(owner=alice)

        resp = await client.post(
            "/api/v1/team/invitations",
            json={"email": "erin@example.com", "role": "editor"},
            headers=seed.headers(alice),
        )
        assert resp.status_code == 201
        token = resp.json()["token"]

        resp = await client.get(f"/api/v1/invitations/{token}")
        assert resp.json()["status"] == "pending"
        assert resp.json()["organization_name"] == "Acme"

        erin_token = make_token("provider-erin", "erin@example.com")
        resp = await client.get("/api/v1/me", headers={"Authorization": f"Bearer {erin_token}"})
        assert resp.status_code == 200
        assert resp.json()["active_organization_id"] == str(org.id)
        assert resp.json()["role"] == "editor"

        resp = await client.get(f"/api/v1/invitations/{token}")
        assert resp.json()["status"] == "accepted"

        async with session_factory() as s:
            erin = (await s.execute(select(User).where(User.email == "erin@example.com"))).scalar_one()
            assert erin.subject == "provider-erin"
            rows = (
                await s.execute(select(Membership).where(Membership.user_id == erin.id))
            ).scalars().all()
        assert [(m.organization_id, m.role) for m in rows] == [(org.id, "editor")]

    @pytest.mark.asyncio
    async def test_existing_account_accepts_once(self, client, seed):
        alice = await seed.user("alice@example.com")
        bob = await seed.user("bob@example.com")
        org = await seed.team(owner=alice)

        resp = await client.post(
            "/api/v1/team/invitations",
            json={"email": "bob@example.com", "role": "viewer"},
            headers=seed.headers(alice),
        )
        token = resp.json()["token"]

        resp = await client.post(f"/api/v1/invitations/{token}/accept", headers=seed.headers(bob))
        assert resp.status_code == 200
        assert resp.json() == {"organization_id": str(org.id)}

        resp = await client.post(f"/api/v1/invitations/{token}/accept", headers=seed.headers(bob))
        assert resp.status_code == 409
        assert _envelope(resp)["code"] == "INVITATION_ALREADY_ACCEPTED"

    @pytest.mark.asyncio
    async def test_wrong_account_cannot_accept(self, client, seed):
        alice = await seed.user("alice@example.com")
        mallory = await seed.user("mallory@example.com")
        await seed.team(owner=alice)

        resp = await client.post(
            "/api/v1/team/invitations",
            json={"email": "bob@example.com", "role": "viewer"},
            headers=seed.headers(alice),
        )
        token = resp.json()["token"]

        resp = await client.post(f"/api/v1/invitations/{token}/accept", headers=seed.headers(mallory))
        assert resp.status_code == 403
        assert _envelope(resp)["code"] == "EMAIL_MISMATCH"

    @pytest.mark.asyncio
    async def test_owner_role_rejected_by_schema(self, client, seed):
        alice = await seed.user("alice@example.com")
        await seed.team(owner=alice)

        resp = await client.post(
            "/api/v1/team/invitations",
            json={"email": "bob@example.com", "role": "owner"},
            headers=seed.headers(alice),
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_viewer_cannot_invite(self, client, seed):
        alice = await seed.user("alice@example.com")
        bob = await seed.user("bob@example.com")
        org = await seed.team(owner=alice, viewer=bob)
        await seed.active(bob, org)

        resp = await client.post(
            "/api/v1/team/invitations",
            json={"email": "x@example.com", "role": "viewer"},
            headers=seed.headers(bob),
        )
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_pending_list(self, client, seed):
        alice = await seed.user("alice@example.com")
        await seed.team(owner=alice)

        await client.post(
            "/api/v1/team/invitations",
            json={"email": "x@example.com"},
            headers=seed.headers(alice),
        )
        resp = await client.get("/api/v1/team/invitations", headers=seed.headers(alice))
        assert resp.status_code == 200
        assert [(i["email"], i["role"]) for i in resp.json()["data"]] == [("x@example.com", "viewer")]

    @pytest.mark.asyncio
    async def test_unknown_token_preview(self, client):
        resp = await client.get("/api/v1/invitations/does-not-exist")
        assert resp.status_code == 404
        assert _envelope(resp)["code"] == "INVITATION_NOT_FOUND"
