from __future__ import annotations

import uuid

import pytest

from licensehub.core.exceptions import (
    ProtectedAccount,
    SessionExpired,
    SessionNotFound,
    UserNotFound,
    ValidationFailed,
)
from licensehub.models import LoginAction, UserRole, UserStatus

from tests.conftest import PASSWORD


@pytest.mark.asyncio
async def test_list_users_searches_and_hides_deactivated(kernel, register) -> None:
    await register("ada@example.com", full_name="Ada Lovelace")
    await register("grace@example.com", full_name="Grace Hopper")
    gone = await register("gone@example.com")
    await kernel.auth.deactivate_account(gone.id)

    everyone = await kernel.admin.list_users()
    assert everyone.total == 2

    found = await kernel.admin.list_users(search="hopper")
    assert [u.email for u in found.items] == ["grace@example.com"]

    paged = await kernel.admin.list_users(page=2, limit=1)
    assert len(paged.items) == 1
    assert paged.total == 2


@pytest.mark.asyncio
async def test_disable_signs_out_and_enable_restores_login(kernel, register) -> None:
    user = await register("ada@example.com")
    login = await kernel.auth.login("ada@example.com", PASSWORD, "web")

    disabled = await kernel.admin.set_enabled(user.id, False)

    assert disabled.status == UserStatus.DISABLED
    with pytest.raises(SessionExpired):
        await kernel.auth.authenticate(login.tokens.access_token)

    enabled = await kernel.admin.set_enabled(user.id, True)
    assert enabled.status == UserStatus.ACTIVE
    await kernel.auth.login("ada@example.com", PASSWORD, "web")


@pytest.mark.asyncio
async def test_change_role(kernel, register) -> None:
    user = await register("ada@example.com")

    promoted = await kernel.admin.change_role(user.id, "admin")

    assert promoted.role == UserRole.ADMIN
    assert (await kernel.credentials.get_identity(user.id)).role == UserRole.ADMIN
    with pytest.raises(ValidationFailed):
        await kernel.admin.change_role(user.id, "superadministrator")
    with pytest.raises(ValidationFailed):
        await kernel.admin.change_role(user.id, "overlord")
    with pytest.raises(UserNotFound):
        await kernel.admin.change_role(uuid.uuid4(), "user")


@pytest.mark.asyncio
async def test_superadministrator_is_protected(kernel, register, set_role) -> None:
    root = await register("root@example.com")
    await set_role(root.id, UserRole.SUPERADMINISTRATOR)
    login = await kernel.auth.login("root@example.com", PASSWORD, "web")

    with pytest.raises(ProtectedAccount):
        await kernel.admin.set_enabled(root.id, False)
    with pytest.raises(ProtectedAccount):
        await kernel.admin.change_role(root.id, "user")
    with pytest.raises(ProtectedAccount):
        await kernel.admin.delete_user(root.id)
    with pytest.raises(ProtectedAccount):
        await kernel.admin.terminate_session(login.session.id)
    with pytest.raises(ProtectedAccount):
        await kernel.admin.terminate_user_sessions(root.id)


@pytest.mark.asyncio
async def test_delete_user_notifies_with_deletion_template(kernel, register, notifier) -> None:
    user = await register("ada@example.com")

    deleted = await kernel.admin.delete_user(user.id, "policy violation")
    await kernel.notifications.drain()

    assert deleted.status == UserStatus.DEACTIVATED
    assert notifier.of("user_deletion") == [("ada@example.com", {"reason": "policy violation"})]
    with pytest.raises(UserNotFound):
        await kernel.admin.delete_user(user.id)


@pytest.mark.asyncio
async def test_session_termination(kernel, register) -> None:
    await register("ada@example.com")
    web = await kernel.auth.login("ada@example.com", PASSWORD, "web")
    mobile = await kernel.auth.login("ada@example.com", PASSWORD, "mobile")

    ended = await kernel.admin.terminate_session(web.session.id)
    assert ended.is_active is False
    with pytest.raises(SessionNotFound):
        await kernel.admin.terminate_session(web.session.id)

    assert await kernel.admin.terminate_user_sessions(mobile.user.id) == 1
    with pytest.raises(SessionExpired):
        await kernel.auth.authenticate(mobile.tokens.access_token)
    assert (await kernel.admin.list_sessions()).total == 0


@pytest.mark.asyncio
async def test_stats(kernel, register, set_role) -> None:
    root = await register("root@example.com")
    await set_role(root.id, UserRole.SUPERADMINISTRATOR)
    await register("ada@example.com")
    bob = await register("bob@example.com")
    gone = await register("gone@example.com")
    await kernel.admin.set_enabled(bob.id, False)
    await kernel.auth.deactivate_account(gone.id)
    await kernel.auth.login("ada@example.com", PASSWORD, "web")
    await kernel.auth.login("ada@example.com", PASSWORD, "mobile")
    await kernel.auth.login("root@example.com", PASSWORD, "web")

    stats = await kernel.admin.stats()

    assert stats["users"] == {"total": 4, "active": 2, "disabled": 1, "deactivated": 1}
    assert stats["roles"] == {"user": 3, "admin": 0, "superadministrator": 1}
    assert stats["active_sessions"] == {"total": 3, "web": 2, "mobile": 1, "desktop": 0}


@pytest.mark.asyncio
async def test_login_logs_for_user(kernel, register) -> None:
    user = await register("ada@example.com")
    login = await kernel.auth.login("ada@example.com", PASSWORD, "web")
    await kernel.auth.refresh(login.tokens.refresh_token)

    logs = await kernel.audit.list_for_user(user.id)

    assert logs.total == 2
    assert {e.action for e in logs.items} == {LoginAction.LOGIN, LoginAction.REFRESH}
