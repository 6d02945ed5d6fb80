from __future__ import annotations

import asyncio

import pytest

from licensehub.core.cache import CacheKeys
from licensehub.core.exceptions import (
    AlreadyInOtherRoster,
    LicenseExpired,
    MemberNotFound,
    NotInRoster,
    SeatLimitReached,
    ValidationFailed,
)
from licensehub.models import MemberStatus


@pytest.mark.asyncio
async def test_add_registered_member_takes_a_seat(kernel, subscriber, register) -> None:
    owner = await subscriber("owner@example.com", seats=2)
    member = await register("member@example.com")

    record = await kernel.roster.add_member(owner.id, "Member@Example.com")

    assert record.member_id == member.id
    assert record.email == "member@example.com"
    assert record.status == MemberStatus.ACTIVE
    assert (await kernel.ledger.check_status(owner.id)).current_members == 1
    assert await kernel.roster.find_subscriber(member.id) == owner.id
    assert await kernel.roster.is_in_any_roster(member.id)


@pytest.mark.asyncio
async def test_invite_placeholder_is_linked_on_registration(kernel, subscriber, register) -> None:
    owner = await subscriber("owner@example.com")

    record = await kernel.roster.add_member(owner.id, "later@example.com")
    assert record.member_id is None

    later = await register("later@example.com")

    members = await kernel.roster.get_members(owner.id)
    assert [m.member_id for m in members] == [later.id]
    assert await kernel.roster.find_subscriber(later.id) == owner.id


@pytest.mark.asyncio
async def test_add_member_requires_valid_license(kernel, register, subscriber, clock) -> None:
    no_license = await register("free@example.com")
    with pytest.raises(LicenseExpired):
        await kernel.roster.add_member(no_license.id, "m@example.com")

    owner = await subscriber("owner@example.com")
    clock.advance(days=31)
    with pytest.raises(LicenseExpired):
        await kernel.roster.add_member(owner.id, "m@example.com")


@pytest.mark.asyncio
async def test_add_member_enforces_seat_limit(kernel, subscriber) -> None:
    owner = await subscriber("owner@example.com", seats=1)
    await kernel.roster.add_member(owner.id, "one@example.com")

    with pytest.raises(SeatLimitReached):
        await kernel.roster.add_member(owner.id, "two@example.com")
    assert len(await kernel.roster.get_members(owner.id)) == 1


@pytest.mark.asyncio
async def test_member_can_only_be_in_one_roster(kernel, subscriber, register) -> None:
    first = await subscriber("first@example.com")
    second = await subscriber("second@example.com")
    await register("shared@example.com")
    await kernel.roster.add_member(first.id, "shared@example.com")

    with pytest.raises(AlreadyInOtherRoster):
        await kernel.roster.add_member(second.id, "shared@example.com")
    with pytest.raises(AlreadyInOtherRoster):
        await kernel.roster.add_member(first.id, "shared@example.com")
    assert (await kernel.ledger.check_status(second.id)).current_members == 0


@pytest.mark.asyncio
async def test_add_member_rejects_bad_targets(kernel, subscriber) -> None:
    owner = await subscriber("owner@example.com")
    with pytest.raises(ValidationFailed):
        await kernel.roster.add_member(owner.id, "not-an-email")
    with pytest.raises(ValidationFailed):
        await kernel.roster.add_member(owner.id, "owner@example.com")


@pytest.mark.asyncio
async def test_concurrent_adds_respect_the_last_seat(kernel, subscriber) -> None:
    owner = await subscriber("owner@example.com", seats=1)

    results = await asyncio.gather(
        kernel.roster.add_member(owner.id, "a@example.com"),
        kernel.roster.add_member(owner.id, "b@example.com"),
        return_exceptions=True,
    )

    assert sum(isinstance(r, SeatLimitReached) for r in results) == 1
    assert (await kernel.ledger.check_status(owner.id)).current_members == 1


@pytest.mark.asyncio
async def test_remove_member_frees_seat_and_grants(kernel, subscriber, register) -> None:
    owner = await subscriber("owner@example.com")
    member = await register("member@example.com")
    await kernel.roster.add_member(owner.id, member.email)
    await kernel.permissions.grant(owner.id, member.id, "warehouse.view")

    removed = await kernel.roster.remove_member(owner.id, member.id)

    assert removed.status == MemberStatus.REMOVED
    assert removed.removed_at is not None
    assert (await kernel.ledger.check_status(owner.id)).current_members == 0
    assert await kernel.roster.find_subscriber(member.id) is None
    with pytest.raises(MemberNotFound):
        await kernel.roster.remove_member(owner.id, member.id)

    # re-adding starts from an empty grant set
    await kernel.roster.add_member(owner.id, member.email)
    assert await kernel.permissions.get_for_member(owner.id, member.id) == []


@pytest.mark.asyncio
async def test_remove_pending_invite_by_record_id(kernel, subscriber) -> None:
    owner = await subscriber("owner@example.com")
    invite = await kernel.roster.add_member(owner.id, "invitee@example.com")

    removed = await kernel.roster.remove_member(owner.id, invite.id)

    assert removed.id == invite.id
    assert await kernel.roster.get_members(owner.id) == []


@pytest.mark.asyncio
async def test_remove_member_of_someone_else_is_not_found(kernel, subscriber, register) -> None:
    owner = await subscriber("owner@example.com")
    other = await subscriber("other@example.com")
    member = await register("member@example.com")
    await kernel.roster.add_member(owner.id, member.email)

    with pytest.raises(MemberNotFound):
        await kernel.roster.remove_member(other.id, member.id)


@pytest.mark.asyncio
async def test_leave_releases_membership(kernel, subscriber, register) -> None:
    owner = await subscriber("owner@example.com")
    member = await register("member@example.com")
    await kernel.roster.add_member(owner.id, member.email)
    await kernel.roster.get_members(owner.id)

    left = await kernel.roster.leave(member.id)

    assert left.subscriber_id == owner.id
    assert await kernel.roster.get_members(owner.id) == []
    assert (await kernel.ledger.check_status(owner.id)).current_members == 0
    with pytest.raises(NotInRoster):
        await kernel.roster.leave(member.id)


@pytest.mark.asyncio
async def test_concurrent_leave_succeeds_exactly_once(kernel, subscriber, register) -> None:
    owner = await subscriber("owner@example.com")
    member = await register("member@example.com")
    await kernel.roster.add_member(owner.id, member.email)

    results = await asyncio.gather(
        kernel.roster.leave(member.id),
        kernel.roster.leave(member.id),
        return_exceptions=True,
    )

    assert sum(isinstance(r, NotInRoster) for r in results) == 1
    assert (await kernel.ledger.check_status(owner.id)).current_members == 0


@pytest.mark.asyncio
async def test_roster_reads_require_valid_license(kernel, subscriber, clock) -> None:
    owner = await subscriber("owner@example.com")
    await kernel.roster.add_member(owner.id, "m@example.com")
    clock.advance(days=31)

    with pytest.raises(LicenseExpired):
        await kernel.roster.get_members(owner.id)


@pytest.mark.asyncio
async def test_roster_writes_evict_cached_views(kernel, subscriber, register, redis) -> None:
    owner = await subscriber("owner@example.com")
    member = await register("member@example.com")
    await kernel.roster.get_members(owner.id)
    await kernel.roster.find_subscriber(member.id)
    assert await redis.get(CacheKeys.members(owner.id)) is not None
    assert await redis.get(CacheKeys.membership(member.id)) is not None

    await kernel.roster.add_member(owner.id, member.email)

    assert await redis.get(CacheKeys.members(owner.id)) is None
    assert await redis.get(CacheKeys.membership(member.id)) is None
    assert [m.member_id for m in await kernel.roster.get_members(owner.id)] == [member.id]
