from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from licensehub.core.exceptions import (
    AlreadyInOtherRoster,
    LicenseAlreadyActive,
    LicenseExpired,
    NoPendingRequest,
    PendingRequestExists,
    RequestAlreadyProcessed,
    RequestNotFound,
    SeatLimitReached,
    ValidationFailed,
)
from licensehub.models import LicenseStatus, RequestStatus, UserRole


@pytest.fixture
def admin(register, set_role):
    async def _admin():
        root = await register("root@example.com")
        await set_role(root.id, UserRole.SUPERADMINISTRATOR)
        return root

    return _admin


@pytest.mark.asyncio
async def test_submit_new_request_notifies_superadmin(kernel, register, notifier) -> None:
    user = await register("buyer@example.com")

    request = await kernel.license_requests.submit(user.id, 5, "year", "new")
    await kernel.notifications.drain()

    assert request.status == RequestStatus.PENDING
    assert (await kernel.license_requests.get_pending(user.id)).id == request.id
    [(to, params)] = notifier.of("license_request_submitted")
    assert to == "root@example.com"
    assert params["email"] == "buyer@example.com"
    assert params["requested_members"] == 5


@pytest.mark.asyncio
async def test_only_one_pending_request(kernel, register) -> None:
    user = await register("buyer@example.com")
    await kernel.license_requests.submit(user.id, 5, "month", "new")

    with pytest.raises(PendingRequestExists):
        await kernel.license_requests.submit(user.id, 2, "month", "new")

    await kernel.license_requests.cancel_pending(user.id)
    assert await kernel.license_requests.get_pending(user.id) is None
    with pytest.raises(NoPendingRequest):
        await kernel.license_requests.cancel_pending(user.id)
    await kernel.license_requests.submit(user.id, 2, "month", "new")


@pytest.mark.asyncio
async def test_submit_rules(kernel, register, subscriber, clock) -> None:
    fresh = await register("fresh@example.com")
    owner = await subscriber("owner@example.com")
    member = await register("member@example.com")
    await kernel.roster.add_member(owner.id, member.email)

    with pytest.raises(ValidationFailed):
        await kernel.license_requests.submit(fresh.id, 0, "month", "new")
    with pytest.raises(ValidationFailed):
        await kernel.license_requests.submit(fresh.id, 2, "decade", "new")
    with pytest.raises(ValidationFailed):
        await kernel.license_requests.submit(fresh.id, 2, "month", "upgrade")
    with pytest.raises(LicenseExpired):
        await kernel.license_requests.submit(fresh.id, 2, "month", "renew")
    with pytest.raises(LicenseExpired):
        await kernel.license_requests.submit(fresh.id, 2, "month", "add")
    with pytest.raises(LicenseAlreadyActive):
        await kernel.license_requests.submit(owner.id, 2, "month", "new")
    with pytest.raises(AlreadyInOtherRoster):
        await kernel.license_requests.submit(member.id, 2, "month", "new")

    clock.advance(days=31)
    with pytest.raises(LicenseExpired):
        await kernel.license_requests.submit(owner.id, 2, "month", "add")
    # an expired license may be replaced or renewed
    await kernel.license_requests.submit(owner.id, 2, "month", "renew")


@pytest.mark.asyncio
async def test_approving_new_request_creates_license(kernel, register, admin, notifier, clock) -> None:
    root = await admin()
    user = await register("buyer@example.com")
    request = await kernel.license_requests.submit(user.id, 4, "quarter", "new")

    processed = await kernel.license_requests.process(request.id, "approve", root.id)
    await kernel.notifications.drain()

    assert processed.status == RequestStatus.APPROVED
    assert processed.processed_by == root.id
    lic = await kernel.ledger.check_status(user.id)
    assert lic.status == LicenseStatus.ACTIVE
    assert lic.max_members == 4
    assert lic.end_date == clock.now + timedelta(days=90)
    [(to, params)] = notifier.of("license_request_processed")
    assert to == "buyer@example.com"
    assert params["status"] == "approved"


@pytest.mark.asyncio
async def test_renew_extends_from_current_end(kernel, subscriber, admin, clock) -> None:
    root = await admin()
    owner = await subscriber("owner@example.com", seats=2)
    start = clock.now
    clock.advance(days=10)

    request = await kernel.license_requests.submit(owner.id, 3, "month", "renew")
    await kernel.license_requests.process(request.id, "approve", root.id)

    lic = await kernel.ledger.check_status(owner.id)
    assert lic.end_date == start + timedelta(days=60)
    assert lic.max_members == 3


@pytest.mark.asyncio
async def test_renew_after_expiry_restarts_from_now(kernel, subscriber, admin, clock) -> None:
    root = await admin()
    owner = await subscriber("owner@example.com", seats=2)
    clock.advance(days=45)

    request = await kernel.license_requests.submit(owner.id, 2, "month", "renew")
    await kernel.license_requests.process(request.id, "approve", root.id)

    lic = await kernel.ledger.check_status(owner.id)
    assert lic.end_date == clock.now + timedelta(days=30)
    assert await kernel.ledger.is_valid(owner.id)


@pytest.mark.asyncio
async def test_add_request_raises_seat_maximum(kernel, subscriber, admin) -> None:
    root = await admin()
    owner = await subscriber("owner@example.com", seats=2)
    before = await kernel.ledger.check_status(owner.id)

    request = await kernel.license_requests.submit(owner.id, 3, "month", "add")
    await kernel.license_requests.process(request.id, "approve", root.id)

    lic = await kernel.ledger.check_status(owner.id)
    assert lic.max_members == 5
    assert lic.end_date == before.end_date


@pytest.mark.asyncio
async def test_add_to_trial_converts_it_to_active(kernel, register, admin) -> None:
    root = await admin()
    user = await register("trial@example.com")
    trial = await kernel.ledger.start_trial(user.id, seats=1)

    request = await kernel.license_requests.submit(user.id, 2, "month", "add")
    await kernel.license_requests.process(request.id, "approve", root.id)

    lic = await kernel.ledger.check_status(user.id)
    assert lic.status == LicenseStatus.ACTIVE
    assert lic.max_members == 3
    assert lic.end_date == trial.trial_end_date


@pytest.mark.asyncio
async def test_approval_that_would_strand_members_is_rolled_back(kernel, subscriber, admin) -> None:
    root = await admin()
    owner = await subscriber("owner@example.com", seats=3)
    await kernel.roster.add_member(owner.id, "a@example.com")
    await kernel.roster.add_member(owner.id, "b@example.com")
    request = await kernel.license_requests.submit(owner.id, 1, "month", "renew")

    with pytest.raises(SeatLimitReached):
        await kernel.license_requests.process(request.id, "approve", root.id)

    assert (await kernel.license_requests.get_pending(owner.id)).id == request.id
    assert (await kernel.ledger.check_status(owner.id)).max_members == 3


@pytest.mark.asyncio
async def test_process_guards(kernel, register, admin) -> None:
    root = await admin()
    user = await register("buyer@example.com")
    request = await kernel.license_requests.submit(user.id, 1, "month", "new")

    with pytest.raises(ValidationFailed):
        await kernel.license_requests.process(request.id, "maybe", root.id)
    with pytest.raises(RequestNotFound):
        await kernel.license_requests.process(uuid.uuid4(), "approve", root.id)

    rejected = await kernel.license_requests.process(request.id, "reject", root.id)
    assert rejected.status == RequestStatus.REJECTED
    assert await kernel.ledger.check_status(user.id) is None
    with pytest.raises(RequestAlreadyProcessed):
        await kernel.license_requests.process(request.id, "approve", root.id)


@pytest.mark.asyncio
async def test_list_requests_filters_by_status(kernel, register, admin) -> None:
    root = await admin()
    first = await register("first@example.com")
    second = await register("second@example.com")
    r1 = await kernel.license_requests.submit(first.id, 1, "month", "new")
    await kernel.license_requests.submit(second.id, 1, "month", "new")
    await kernel.license_requests.process(r1.id, "reject", root.id)

    assert (await kernel.license_requests.list_requests()).total == 2
    pending = await kernel.license_requests.list_requests(status="pending")
    assert [r.user_id for r in pending.items] == [second.id]
    with pytest.raises(ValidationFailed):
        await kernel.license_requests.list_requests(status="lost")
