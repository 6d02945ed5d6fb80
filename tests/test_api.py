from __future__ import annotations

import uuid

import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient

from licensehub.main import create_app
from licensehub.models import UserRole
from licensehub.rbac.dependencies import require_permission
from licensehub.snapshots import SubscriptionScope

from tests.conftest import PASSWORD

WEB = {"X-Platform": "web"}


@pytest_asyncio.fixture
async def client(kernel):
    app = create_app(kernel)

    @app.get("/api/warehouses")
    async def list_warehouses(scope: SubscriptionScope = Depends(require_permission("warehouse.view"))):
        return {"subscriber_id": str(scope.subscriber_id)}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


async def _login(client, email: str, platform: str = "web") -> dict:
    resp = await client.post(
        "/api/auth/login",
        json={"email": email, "password": PASSWORD},
        headers={"X-Platform": platform},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


def _bearer(tokens: dict) -> dict:
    return {"Authorization": f"Bearer {tokens['access_token']}", **WEB}


@pytest.mark.asyncio
async def test_register_login_and_me(client) -> None:
    resp = await client.post(
        "/api/auth/register",
        json={"email": "ada@example.com", "password": PASSWORD, "full_name": "Ada"},
    )
    assert resp.status_code == 201
    assert resp.json()["email"] == "ada@example.com"

    tokens = await _login(client, "ada@example.com")
    assert tokens["platform"] == "web"
    assert tokens["token_type"] == "bearer"

    me = await client.get("/api/auth/me", headers=_bearer(tokens))
    assert me.status_code == 200
    assert me.json()["full_name"] == "Ada"

    patched = await client.patch("/api/auth/me", json={"timezone": "Asia/Tokyo"}, headers=_bearer(tokens))
    assert patched.json()["timezone"] == "Asia/Tokyo"


@pytest.mark.asyncio
async def test_register_conflict_and_validation(client, register) -> None:
    await register("ada@example.com")

    dup = await client.post("/api/auth/register", json={"email": "ada@example.com", "password": PASSWORD})
    assert dup.status_code == 409
    assert dup.json()["code"] == "email_already_registered"

    weak = await client.post("/api/auth/register", json={"email": "new@example.com", "password": "x"})
    assert weak.status_code == 400


@pytest.mark.asyncio
async def test_login_errors(client, register) -> None:
    await register("ada@example.com")

    bad_platform = await client.post(
        "/api/auth/login",
        json={"email": "ada@example.com", "password": PASSWORD},
        headers={"X-Platform": "toaster"},
    )
    assert bad_platform.status_code == 400
    assert bad_platform.json()["code"] == "invalid_platform"

    missing_platform = await client.post(
        "/api/auth/login", json={"email": "ada@example.com", "password": PASSWORD}
    )
    assert missing_platform.status_code == 400

    wrong = await client.post(
        "/api/auth/login", json={"email": "ada@example.com", "password": "nope-nope"}, headers=WEB
    )
    assert wrong.status_code == 401
    assert wrong.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_protected_routes_need_a_live_session(client, register) -> None:
    await register("ada@example.com")

    assert (await client.get("/api/auth/me")).status_code == 401
    bogus = await client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
    assert bogus.status_code == 401
    assert bogus.json()["code"] == "token_invalid"

    tokens = await _login(client, "ada@example.com")
    out = await client.post("/api/auth/logout", headers=_bearer(tokens))
    assert out.status_code == 200

    after = await client.get("/api/auth/me", headers=_bearer(tokens))
    assert after.status_code == 401
    assert after.json()["code"] == "session_expired"


@pytest.mark.asyncio
async def test_refresh_and_sessions(client, register) -> None:
    await register("ada@example.com")
    web = await _login(client, "ada@example.com", "web")
    await _login(client, "ada@example.com", "mobile")

    sessions = await client.get("/api/auth/sessions", headers=_bearer(web))
    assert [g["platform"] for g in sessions.json()] == ["web", "mobile"]
    assert sessions.json()[0]["sessions"][0]["is_current"] is True

    rotated = await client.post("/api/auth/refresh", json={"refresh_token": web["refresh_token"]})
    assert rotated.status_code == 200
    assert rotated.json()["session_id"] == web["session_id"]

    replay = await client.post("/api/auth/refresh", json={"refresh_token": web["refresh_token"]})
    assert replay.status_code == 401


@pytest.mark.asyncio
async def test_manage_members_and_permissions(client, subscriber, register) -> None:
    await subscriber("owner@example.com", seats=1)
    member = await register("member@example.com")
    owner = await _login(client, "owner@example.com")
    auth = _bearer(owner)

    added = await client.post("/api/manage/members", json={"email": "member@example.com"}, headers=auth)
    assert added.status_code == 201
    assert added.json()["member_id"] == str(member.id)

    full = await client.post("/api/manage/members", json={"email": "other@example.com"}, headers=auth)
    assert full.status_code == 403
    assert full.json()["code"] == "seat_limit_reached"

    bad_email = await client.post("/api/manage/members", json={"email": "nope"}, headers=auth)
    assert bad_email.status_code == 400

    granted = await client.post(
        "/api/manage/permissions/grant",
        json={"member_id": str(member.id), "permission": "warehouse.view"},
        headers=auth,
    )
    assert granted.json()["permissions"] == ["warehouse.view"]

    unknown = await client.post(
        "/api/manage/permissions/grant",
        json={"member_id": str(member.id), "permission": "warehouse.fly"},
        headers=auth,
    )
    assert unknown.status_code == 400
    assert unknown.json()["code"] == "unknown_permission"

    stranger = await client.post(
        "/api/manage/permissions/grant",
        json={"member_id": str(uuid.uuid4()), "permission": "warehouse.view"},
        headers=auth,
    )
    assert stranger.status_code == 404

    batch = await client.put(
        "/api/manage/permissions",
        json={"member_id": str(member.id), "permissions": ["inventory.view"]},
        headers=auth,
    )
    assert batch.json()["permissions"] == ["inventory.view"]

    listing = await client.get("/api/manage/permissions", headers=auth)
    assert listing.json() == [
        {"member_id": str(member.id), "email": "member@example.com", "permissions": ["inventory.view"]}
    ]

    removed = await client.delete(f"/api/manage/members/{member.id}", headers=auth)
    assert removed.status_code == 200
    assert removed.json()["status"] == "removed"


@pytest.mark.asyncio
async def test_second_roster_is_a_conflict(client, subscriber, register) -> None:
    await subscriber("first@example.com")
    await subscriber("second@example.com")
    await register("shared@example.com")
    first = _bearer(await _login(client, "first@example.com"))
    second = _bearer(await _login(client, "second@example.com"))

    await client.post("/api/manage/members", json={"email": "shared@example.com"}, headers=first)
    clash = await client.post("/api/manage/members", json={"email": "shared@example.com"}, headers=second)

    assert clash.status_code == 409
    assert clash.json()["code"] == "already_in_other_roster"


@pytest.mark.asyncio
async def test_permission_dependency_gates_routes(client, subscriber, register, kernel) -> None:
    owner = await subscriber("owner@example.com")
    member = await register("member@example.com")
    await register("outsider@example.com")
    await kernel.roster.add_member(owner.id, member.email)

    as_owner = await client.get("/api/warehouses", headers=_bearer(await _login(client, "owner@example.com")))
    assert as_owner.status_code == 200
    assert as_owner.json() == {"subscriber_id": str(owner.id)}

    member_auth = _bearer(await _login(client, "member@example.com"))
    denied = await client.get("/api/warehouses", headers=member_auth)
    assert denied.status_code == 403
    assert "warehouse" not in denied.json()["detail"]

    await kernel.permissions.grant(owner.id, member.id, "warehouse.view")
    allowed = await client.get("/api/warehouses", headers=member_auth)
    assert allowed.json() == {"subscriber_id": str(owner.id)}

    outsider = await client.get(
        "/api/warehouses", headers=_bearer(await _login(client, "outsider@example.com"))
    )
    assert outsider.status_code == 403
    assert outsider.json()["code"] == "license_expired"


@pytest.mark.asyncio
async def test_license_request_round_trip(client, register, set_role) -> None:
    root = await register("root@example.com")
    await set_role(root.id, UserRole.SUPERADMINISTRATOR)
    await register("buyer@example.com")
    buyer = _bearer(await _login(client, "buyer@example.com"))
    admin = _bearer(await _login(client, "root@example.com"))

    assert (await client.get("/api/license", headers=buyer)).json() is None
    submitted = await client.post(
        "/api/license/requests",
        json={"requested_members": 3, "duration": "month", "request_type": "new"},
        headers=buyer,
    )
    assert submitted.status_code == 201
    request_id = submitted.json()["id"]

    forbidden = await client.get("/api/system/license-requests", headers=buyer)
    assert forbidden.status_code == 403

    pending = await client.get("/api/system/license-requests?status=pending", headers=admin)
    assert [r["id"] for r in pending.json()["items"]] == [request_id]

    approved = await client.post(
        f"/api/system/license-requests/{request_id}", json={"action": "approve"}, headers=admin
    )
    assert approved.json()["status"] == "approved"
    again = await client.post(
        f"/api/system/license-requests/{request_id}", json={"action": "approve"}, headers=admin
    )
    assert again.status_code == 409

    lic = (await client.get("/api/license", headers=buyer)).json()
    assert lic["max_members"] == 3
    assert lic["is_valid"] is True


@pytest.mark.asyncio
async def test_admin_surface_requires_admin_role(client, register, set_role) -> None:
    boss = await register("boss@example.com")
    target = await register("target@example.com")
    await set_role(boss.id, UserRole.ADMIN)
    user_auth = _bearer(await _login(client, "target@example.com"))
    admin_auth = _bearer(await _login(client, "boss@example.com"))

    assert (await client.get("/api/admin/users", headers=user_auth)).status_code == 403

    users = await client.get("/api/admin/users?search=target", headers=admin_auth)
    assert [u["email"] for u in users.json()["items"]] == ["target@example.com"]

    disabled = await client.post(f"/api/admin/users/{target.id}/disable", headers=admin_auth)
    assert disabled.json()["status"] == "disabled"
    assert (await client.get("/api/auth/me", headers=user_auth)).status_code == 401

    stats = await client.get("/api/admin/stats", headers=admin_auth)
    assert stats.json()["users"]["disabled"] == 1


@pytest.mark.asyncio
async def test_health(client) -> None:
    assert (await client.get("/health")).json() == {"status": "ok"}
