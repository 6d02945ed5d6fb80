from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import update

from licensehub.core.cache import CacheKeys
from licensehub.core.database import transaction
from licensehub.core.exceptions import (
    LicenseAlreadyActive,
    LicenseExpired,
    SeatLimitReached,
    ValidationFailed,
)
from licensehub.models import License, LicenseStatus


@pytest.mark.asyncio
async def test_create_license_sets_window_and_seats(kernel, register, clock) -> None:
    user = await register("owner@example.com")

    lic = await kernel.ledger.create_license(user.id, 5, "quarter")

    assert lic.status == LicenseStatus.ACTIVE
    assert lic.max_members == 5
    assert lic.current_members == 0
    assert lic.end_date == clock.now + timedelta(days=90)
    assert await kernel.ledger.is_valid(user.id)


@pytest.mark.asyncio
async def test_create_license_rejects_bad_input(kernel, register) -> None:
    user = await register("owner@example.com")
    with pytest.raises(ValidationFailed):
        await kernel.ledger.create_license(user.id, -1, "month")
    with pytest.raises(ValidationFailed):
        await kernel.ledger.create_license(user.id, 2, "fortnight")


@pytest.mark.asyncio
async def test_validity_is_computed_at_read_time(kernel, register, clock) -> None:
    user = await register("owner@example.com")
    await kernel.ledger.create_license(user.id, 1, "month")

    clock.advance(days=30)
    assert await kernel.ledger.is_valid(user.id)
    clock.advance(seconds=1)
    assert not await kernel.ledger.is_valid(user.id)
    with pytest.raises(LicenseExpired):
        await kernel.ledger.require_valid(user.id)

    lic = await kernel.ledger.check_status(user.id)
    assert lic.status == LicenseStatus.ACTIVE
    assert lic.effective_status(clock.now) == LicenseStatus.EXPIRED


@pytest.mark.asyncio
async def test_missing_license_is_invalid(kernel, register) -> None:
    user = await register("nobody@example.com")
    assert await kernel.ledger.check_status(user.id) is None
    assert not await kernel.ledger.is_valid(user.id)


@pytest.mark.asyncio
async def test_trial_uses_trial_end_date(kernel, register, clock) -> None:
    user = await register("trial@example.com")

    lic = await kernel.ledger.start_trial(user.id, seats=2)

    assert lic.status == LicenseStatus.TRIAL
    assert lic.trial_end_date == clock.now + timedelta(days=15)
    assert lic.end_date is None
    clock.advance(days=16)
    assert not await kernel.ledger.is_valid(user.id)


@pytest.mark.asyncio
async def test_trial_only_once(kernel, register) -> None:
    user = await register("trial@example.com")
    await kernel.ledger.start_trial(user.id)
    with pytest.raises(LicenseAlreadyActive):
        await kernel.ledger.start_trial(user.id)


@pytest.mark.asyncio
async def test_seat_counter_stays_within_bounds(kernel, register) -> None:
    user = await register("owner@example.com")
    await kernel.ledger.create_license(user.id, 2, "month")

    assert (await kernel.ledger.increment_seats(user.id)).current_members == 1
    assert (await kernel.ledger.increment_seats(user.id)).current_members == 2
    with pytest.raises(SeatLimitReached):
        await kernel.ledger.increment_seats(user.id)

    assert (await kernel.ledger.decrement_seats(user.id)).current_members == 1
    assert (await kernel.ledger.decrement_seats(user.id)).current_members == 0
    # never goes negative
    assert (await kernel.ledger.decrement_seats(user.id)).current_members == 0


@pytest.mark.asyncio
async def test_seat_changes_without_license(kernel, register) -> None:
    user = await register("nobody@example.com")

    with pytest.raises(LicenseExpired):
        await kernel.ledger.increment_seats(user.id)
    with pytest.raises(LicenseExpired):
        await kernel.ledger.decrement_seats(user.id)


@pytest.mark.asyncio
async def test_concurrent_increments_never_overshoot(kernel, register) -> None:
    user = await register("owner@example.com")
    await kernel.ledger.create_license(user.id, 3, "month")

    results = await asyncio.gather(
        *(kernel.ledger.increment_seats(user.id) for _ in range(6)),
        return_exceptions=True,
    )

    assert sum(isinstance(r, SeatLimitReached) for r in results) == 3
    assert (await kernel.ledger.check_status(user.id)).current_members == 3


@pytest.mark.asyncio
async def test_seat_changes_evict_cached_license(kernel, register, redis) -> None:
    user = await register("owner@example.com")
    await kernel.ledger.create_license(user.id, 2, "month")
    await kernel.ledger.check_status(user.id)
    assert await redis.get(CacheKeys.license(user.id)) is not None

    await kernel.ledger.increment_seats(user.id)

    assert await redis.get(CacheKeys.license(user.id)) is None
    assert (await kernel.ledger.check_status(user.id)).current_members == 1


@pytest.mark.asyncio
async def test_reconcile_repairs_drifted_counter(kernel, subscriber) -> None:
    owner = await subscriber("owner@example.com", seats=3)
    await kernel.roster.add_member(owner.id, "m1@example.com")
    async with transaction(kernel.session_factory) as db:
        await db.execute(
            update(License).where(License.subscriber_id == owner.id).values(current_members=3)
        )

    lic = await kernel.ledger.reconcile_seats(owner.id)

    assert lic.current_members == 1


@pytest.mark.asyncio
async def test_shrinking_below_roster_is_refused(kernel, subscriber) -> None:
    owner = await subscriber("owner@example.com", seats=3)
    await kernel.roster.add_member(owner.id, "m1@example.com")
    await kernel.roster.add_member(owner.id, "m2@example.com")

    with pytest.raises(SeatLimitReached):
        await kernel.ledger.create_license(owner.id, 1, "month")
    assert (await kernel.ledger.check_status(owner.id)).max_members == 3
