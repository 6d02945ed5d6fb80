"""
Member roster — subscriber → member relationships.

Handles:
- Adding members by email (registered users or invite placeholders)
- Subscriber-initiated removal and member-initiated leave
- Roster listing and "is this user in any roster" lookups
- Reconciling invite placeholders when the invitee registers

Every roster write and the seat change it implies commit together.
Remove / leave flip the row with a conditional
`UPDATE ... WHERE status = 'active' RETURNING`, so of two concurrent
callers exactly one gets the row back; the other sees nothing to do.
A member's permission grants go with the membership.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from licensehub.core.cache import CacheKeys, CacheStore
from licensehub.core.config import settings
from licensehub.core.database import SessionFactory, reading, transaction
from licensehub.core.exceptions import (
    AlreadyInOtherRoster,
    LicenseExpired,
    MemberNotFound,
    NotInRoster,
    ValidationFailed,
)
from licensehub.models.base import utcnow
from licensehub.models.member import MemberRecord, MemberStatus
from licensehub.models.permission import PermissionGrant
from licensehub.models.user import User
from licensehub.services.license_service import (
    LicenseLedger,
    decrement_seats,
    get_license,
    increment_seats,
)
from licensehub.snapshots import LicenseSnapshot, MemberSnapshot

logger = logging.getLogger(__name__)

_email = TypeAdapter(EmailStr)


def normalize_email(value: object) -> str:
    try:
        return str(_email.validate_python(value)).strip().lower()
    except ValidationError:
        raise ValidationFailed("Invalid email address") from None


# ── In-transaction helpers ───────────────────────────────────────────


async def get_active_record(
    subscriber_id: uuid.UUID,
    member_id: uuid.UUID,
    db: AsyncSession,
) -> MemberRecord | None:
    """Active roster row of `member_id` (a user id) under `subscriber_id`."""
    stmt = select(MemberRecord).where(
        MemberRecord.subscriber_id == subscriber_id,
        MemberRecord.member_id == member_id,
        MemberRecord.status == MemberStatus.ACTIVE,
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_membership(user_id: uuid.UUID, db: AsyncSession) -> MemberRecord | None:
    """The user's active roster row anywhere, if any."""
    stmt = select(MemberRecord).where(
        MemberRecord.member_id == user_id,
        MemberRecord.status == MemberStatus.ACTIVE,
    )
    return (await db.execute(stmt)).scalars().first()


async def clear_grants(subscriber_id: uuid.UUID, member_id: uuid.UUID | None, db: AsyncSession) -> None:
    if member_id is None:
        return
    await db.execute(
        delete(PermissionGrant).where(
            PermissionGrant.subscriber_id == subscriber_id,
            PermissionGrant.member_id == member_id,
        )
    )


async def release_membership(
    member_user_id: uuid.UUID,
    db: AsyncSession,
    now: datetime,
) -> MemberRecord | None:
    """
    Flip the user's active roster row to REMOVED, give the seat back and
    drop their grants.  Returns None when there was nothing to release.
    """
    record = (
        await db.execute(
            update(MemberRecord)
            .where(
                MemberRecord.member_id == member_user_id,
                MemberRecord.status == MemberStatus.ACTIVE,
            )
            .values(status=MemberStatus.REMOVED, removed_at=now)
            .returning(MemberRecord)
        )
    ).scalars().first()
    if record is None:
        return None
    await decrement_seats(record.subscriber_id, db)
    await clear_grants(record.subscriber_id, record.member_id, db)
    return record


async def reconcile_invites(user_id: uuid.UUID, email: str, db: AsyncSession) -> list[uuid.UUID]:
    """
    Attach a newly registered user to the invite placeholders carrying
    their email.  Returns the subscriber ids whose rosters changed.
    """
    result = await db.execute(
        update(MemberRecord)
        .where(
            MemberRecord.email == email,
            MemberRecord.member_id.is_(None),
            MemberRecord.status == MemberStatus.ACTIVE,
        )
        .values(member_id=user_id)
        .returning(MemberRecord.subscriber_id)
    )
    return list(result.scalars().all())


# ── Roster ───────────────────────────────────────────────────────────


class MemberRoster:
    def __init__(
        self,
        session_factory: SessionFactory,
        cache: CacheStore,
        ledger: LicenseLedger,
        *,
        clock: Callable[[], datetime] = utcnow,
        cache_ttl: int | None = None,
    ) -> None:
        self._sf = session_factory
        self._cache = cache
        self._ledger = ledger
        self._clock = clock
        self._ttl = cache_ttl or settings.ENTITY_CACHE_TTL_SECONDS

    async def _forget(self, subscriber_id: uuid.UUID, *member_ids: uuid.UUID | None) -> None:
        await self._cache.delete(
            CacheKeys.license(subscriber_id),
            *CacheKeys.roster_keys(subscriber_id, *member_ids),
        )

    # ── Add ──────────────────────────────────────────────────────────

    async def add_member(self, subscriber_id: uuid.UUID, email: str) -> MemberSnapshot:
        email = normalize_email(email)
        now = self._clock()

        async with transaction(self._sf) as db:
            lic = await get_license(subscriber_id, db, lock=True)
            if lic is None or not LicenseSnapshot.model_validate(lic).is_valid(now):
                raise LicenseExpired()

            target = (
                await db.execute(select(User).where(User.email == email))
            ).scalar_one_or_none()
            if target is not None and target.id == subscriber_id:
                raise ValidationFailed("Subscribers cannot add themselves")
            member_id = target.id if target is not None else None

            clash = MemberRecord.email == email
            if member_id is not None:
                clash = or_(clash, MemberRecord.member_id == member_id)
            taken = (
                await db.execute(
                    select(MemberRecord.id).where(MemberRecord.status == MemberStatus.ACTIVE, clash)
                )
            ).first()
            if taken is not None:
                raise AlreadyInOtherRoster()

            await increment_seats(subscriber_id, db)
            record = MemberRecord(
                subscriber_id=subscriber_id,
                member_id=member_id,
                email=email,
                status=MemberStatus.ACTIVE,
                created_at=now,
                updated_at=now,
            )
            db.add(record)
            try:
                await db.flush()
            except IntegrityError:
                # Lost a race against a concurrent add of the same user.
                raise AlreadyInOtherRoster() from None
            snapshot = MemberSnapshot.model_validate(record)

        await self._forget(subscriber_id, member_id)
        logger.info("Member %s added to roster of %s", email, subscriber_id)
        return snapshot

    # ── Remove / leave ───────────────────────────────────────────────

    async def forget_membership(self, record: MemberSnapshot) -> None:
        """Evict everything a committed remove / leave of `record` made stale."""
        await self._forget(record.subscriber_id, record.member_id)

    async def remove_member(self, subscriber_id: uuid.UUID, member_id: uuid.UUID) -> MemberSnapshot:
        """
        Subscriber-initiated removal.  `member_id` may be the member's user
        id or, for invite placeholders, the roster record id.
        """
        now = self._clock()
        async with transaction(self._sf) as db:
            lic = await get_license(subscriber_id, db, lock=True)
            if lic is None or not LicenseSnapshot.model_validate(lic).is_valid(now):
                raise LicenseExpired()

            record = (
                await db.execute(
                    update(MemberRecord)
                    .where(
                        MemberRecord.subscriber_id == subscriber_id,
                        MemberRecord.status == MemberStatus.ACTIVE,
                        or_(MemberRecord.member_id == member_id, MemberRecord.id == member_id),
                    )
                    .values(status=MemberStatus.REMOVED, removed_at=now)
                    .returning(MemberRecord)
                )
            ).scalars().first()
            if record is None:
                raise MemberNotFound()
            await decrement_seats(record.subscriber_id, db)
            await clear_grants(record.subscriber_id, record.member_id, db)
            snapshot = MemberSnapshot.model_validate(record)

        await self._forget(subscriber_id, snapshot.member_id)
        logger.info("Member %s removed from roster of %s", snapshot.email, subscriber_id)
        return snapshot

    async def leave(self, member_user_id: uuid.UUID) -> MemberSnapshot:
        async with transaction(self._sf) as db:
            record = await release_membership(member_user_id, db, self._clock())
            if record is None:
                raise NotInRoster()
            snapshot = MemberSnapshot.model_validate(record)

        await self.forget_membership(snapshot)
        logger.info("User %s left roster of %s", member_user_id, snapshot.subscriber_id)
        return snapshot

    # ── Read ─────────────────────────────────────────────────────────

    async def get_members(self, subscriber_id: uuid.UUID) -> list[MemberSnapshot]:
        await self._ledger.require_valid(subscriber_id)

        key = CacheKeys.members(subscriber_id)
        cached = await self._cache.get_json(key)
        if cached is not None:
            return [MemberSnapshot.model_validate(item) for item in cached]

        async with reading(self._sf) as db:
            rows = (
                await db.execute(
                    select(MemberRecord)
                    .where(
                        MemberRecord.subscriber_id == subscriber_id,
                        MemberRecord.status == MemberStatus.ACTIVE,
                    )
                    .order_by(MemberRecord.created_at)
                )
            ).scalars().all()
            members = [MemberSnapshot.model_validate(r) for r in rows]
        await self._cache.set_json(key, [m.to_cache() for m in members], self._ttl)
        return members

    async def find_subscriber(self, user_id: uuid.UUID) -> uuid.UUID | None:
        """Subscriber whose roster the user is active in, if any."""
        key = CacheKeys.membership(user_id)
        cached = await self._cache.get_json(key)
        if cached is not None:
            sub = cached.get("subscriber_id")
            return uuid.UUID(sub) if sub else None

        async with reading(self._sf) as db:
            record = await get_membership(user_id, db)
            subscriber_id = record.subscriber_id if record is not None else None
        await self._cache.set_json(
            key,
            {"subscriber_id": str(subscriber_id) if subscriber_id else None},
            self._ttl,
        )
        return subscriber_id

    async def is_in_any_roster(self, user_id: uuid.UUID) -> bool:
        return await self.find_subscriber(user_id) is not None
