"""
License ledger — per-subscriber seat licenses.

Handles:
- Creating / resetting licenses and starting trials
- Read-time validity (trial → trial_end_date, active → end_date)
- Bounded seat increment / decrement
- Seat reconciliation from the roster
- Applying approved license requests

Seat changes are single conditional UPDATEs
(`... WHERE current_members < max_members` / `> 0`), so concurrent
callers can never push the counter outside its bounds.  The helpers
that take a `db` argument are meant to run inside the caller's
transaction, next to the roster write they account for.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from licensehub.core.cache import CacheKeys, CacheStore
from licensehub.core.config import settings
from licensehub.core.database import SessionFactory, reading, transaction
from licensehub.core.exceptions import (
    LicenseAlreadyActive,
    LicenseExpired,
    SeatLimitReached,
    ValidationFailed,
)
from licensehub.models.base import utcnow
from licensehub.models.license import License, LicenseStatus
from licensehub.models.license_request import LicenseDuration, LicenseRequest, RequestType
from licensehub.models.member import MemberRecord, MemberStatus
from licensehub.snapshots import LicenseSnapshot

logger = logging.getLogger(__name__)


def parse_duration(value: LicenseDuration | str) -> LicenseDuration:
    try:
        return LicenseDuration(value)
    except ValueError:
        raise ValidationFailed(f"Invalid duration: {value}") from None


def _check_seats(seats: object) -> int:
    if isinstance(seats, bool) or not isinstance(seats, int) or seats < 0:
        raise ValidationFailed("Seat count must be a non-negative integer")
    return seats


# ── In-transaction helpers ───────────────────────────────────────────


async def get_license(subscriber_id: uuid.UUID, db: AsyncSession, *, lock: bool = False) -> License | None:
    # populate_existing: seat counters are moved by bulk UPDATEs that
    # bypass the identity map.
    stmt = (
        select(License)
        .where(License.subscriber_id == subscriber_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def count_active_members(subscriber_id: uuid.UUID, db: AsyncSession) -> int:
    stmt = select(func.count()).select_from(MemberRecord).where(
        MemberRecord.subscriber_id == subscriber_id,
        MemberRecord.status == MemberStatus.ACTIVE,
    )
    return (await db.execute(stmt)).scalar_one()


async def increment_seats(subscriber_id: uuid.UUID, db: AsyncSession) -> None:
    """Take one seat.  Raises SeatLimitReached instead of clamping."""
    result = await db.execute(
        update(License)
        .where(
            License.subscriber_id == subscriber_id,
            License.current_members < License.max_members,
        )
        .values(current_members=License.current_members + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise SeatLimitReached()


async def decrement_seats(subscriber_id: uuid.UUID, db: AsyncSession) -> bool:
    """Release one seat.  Returns False if the counter was already at zero."""
    result = await db.execute(
        update(License)
        .where(
            License.subscriber_id == subscriber_id,
            License.current_members > 0,
        )
        .values(current_members=License.current_members - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("Seat counter for %s already at zero; reconcile recommended", subscriber_id)
        return False
    return True


async def apply_request(request: LicenseRequest, db: AsyncSession, now: datetime) -> License:
    """
    Mutate / create the requester's license for an approved request.

    - new:   (re)start an active license for the duration with the
             requested seat maximum
    - renew: extend from max(now, current end) and set the seat maximum;
             a trial becomes active
    - add:   raise the seat maximum; a trial becomes active until its
             trial end
    """
    lic = await get_license(request.user_id, db, lock=True)
    days = timedelta(days=LicenseDuration(request.duration).days)
    seats = request.requested_members

    if request.request_type == RequestType.ADD:
        if lic is None:
            raise LicenseExpired("No license to add seats to")
        lic.max_members = lic.max_members + seats
        if lic.status == LicenseStatus.TRIAL:
            lic.status = LicenseStatus.ACTIVE
            lic.start_date = now
            lic.end_date = lic.trial_end_date
        await db.flush()
        return lic

    if lic is None:
        lic = License(subscriber_id=request.user_id, current_members=0)
        db.add(lic)
    elif lic.current_members > seats:
        raise SeatLimitReached(
            "Active roster is larger than the requested seat count",
            current=lic.current_members,
            requested=seats,
        )

    if request.request_type == RequestType.RENEW and lic.status != LicenseStatus.TRIAL and lic.end_date:
        lic.end_date = max(now, lic.end_date) + days
        if lic.start_date is None:
            lic.start_date = now
    else:
        lic.start_date = now
        lic.end_date = now + days
    lic.status = LicenseStatus.ACTIVE
    lic.max_members = seats
    lic.trial_end_date = None
    await db.flush()
    return lic


# ── Ledger ───────────────────────────────────────────────────────────


class LicenseLedger:
    def __init__(
        self,
        session_factory: SessionFactory,
        cache: CacheStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        cache_ttl: int | None = None,
        trial_days: int | None = None,
    ) -> None:
        self._sf = session_factory
        self._cache = cache
        self._clock = clock
        self._ttl = cache_ttl or settings.ENTITY_CACHE_TTL_SECONDS
        self._trial_days = trial_days or settings.TRIAL_DAYS

    def now(self) -> datetime:
        return self._clock()

    async def _forget(self, subscriber_id: uuid.UUID) -> None:
        await self._cache.delete(CacheKeys.license(subscriber_id))

    # ── Create ───────────────────────────────────────────────────────

    async def create_license(
        self,
        subscriber_id: uuid.UUID,
        seats: int,
        duration: LicenseDuration | str,
    ) -> LicenseSnapshot:
        """Create (or restart) an active license for `duration`."""
        seats = _check_seats(seats)
        duration = parse_duration(duration)
        now = self._clock()
        async with transaction(self._sf) as db:
            lic = await get_license(subscriber_id, db, lock=True)
            if lic is None:
                lic = License(subscriber_id=subscriber_id, current_members=0)
                db.add(lic)
            elif lic.current_members > seats:
                raise SeatLimitReached("Active roster is larger than the requested seat count")
            lic.status = LicenseStatus.ACTIVE
            lic.max_members = seats
            lic.start_date = now
            lic.end_date = now + timedelta(days=duration.days)
            lic.trial_end_date = None
            await db.flush()
            snapshot = LicenseSnapshot.model_validate(lic)
        await self._forget(subscriber_id)
        logger.info("License for %s set to %d seats for %s", subscriber_id, seats, duration.value)
        return snapshot

    async def start_trial(self, subscriber_id: uuid.UUID, seats: int = 0) -> LicenseSnapshot:
        seats = _check_seats(seats)
        now = self._clock()
        async with transaction(self._sf) as db:
            if await get_license(subscriber_id, db, lock=True) is not None:
                raise LicenseAlreadyActive("A license or trial already exists for this account")
            lic = License(
                subscriber_id=subscriber_id,
                status=LicenseStatus.TRIAL,
                max_members=seats,
                current_members=0,
                start_date=now,
                trial_end_date=now + timedelta(days=self._trial_days),
            )
            db.add(lic)
            await db.flush()
            snapshot = LicenseSnapshot.model_validate(lic)
        await self._forget(subscriber_id)
        logger.info("Trial started for %s until %s", subscriber_id, snapshot.trial_end_date)
        return snapshot

    # ── Read ─────────────────────────────────────────────────────────

    async def check_status(self, subscriber_id: uuid.UUID) -> LicenseSnapshot | None:
        key = CacheKeys.license(subscriber_id)
        cached = await self._cache.get_json(key)
        if cached is not None:
            return LicenseSnapshot.model_validate(cached)

        async with reading(self._sf) as db:
            lic = await get_license(subscriber_id, db)
            if lic is None:
                return None
            snapshot = LicenseSnapshot.model_validate(lic)
        await self._cache.set_json(key, snapshot.to_cache(), self._ttl)
        return snapshot

    async def is_valid(self, subscriber_id: uuid.UUID) -> bool:
        snapshot = await self.check_status(subscriber_id)
        return snapshot is not None and snapshot.is_valid(self._clock())

    async def require_valid(self, subscriber_id: uuid.UUID) -> LicenseSnapshot:
        snapshot = await self.check_status(subscriber_id)
        if snapshot is None or not snapshot.is_valid(self._clock()):
            raise LicenseExpired()
        return snapshot

    # ── Seats ────────────────────────────────────────────────────────

    async def increment_seats(self, subscriber_id: uuid.UUID) -> LicenseSnapshot:
        async with transaction(self._sf) as db:
            if await get_license(subscriber_id, db) is None:
                raise LicenseExpired("No license for subscriber")
            await increment_seats(subscriber_id, db)
            snapshot = LicenseSnapshot.model_validate(await get_license(subscriber_id, db))
        await self._forget(subscriber_id)
        return snapshot

    async def decrement_seats(self, subscriber_id: uuid.UUID) -> LicenseSnapshot:
        async with transaction(self._sf) as db:
            await decrement_seats(subscriber_id, db)
            lic = await get_license(subscriber_id, db)
            if lic is None:
                raise LicenseExpired("No license for subscriber")
            snapshot = LicenseSnapshot.model_validate(lic)
        await self._forget(subscriber_id)
        return snapshot

    async def reconcile_seats(self, subscriber_id: uuid.UUID) -> LicenseSnapshot:
        """Recompute `current_members` from the active roster rows."""
        async with transaction(self._sf) as db:
            lic = await get_license(subscriber_id, db, lock=True)
            if lic is None:
                raise LicenseExpired("No license for subscriber")
            actual = await count_active_members(subscriber_id, db)
            if actual > lic.max_members:
                logger.error(
                    "Roster of %s holds %d members for %d seats",
                    subscriber_id, actual, lic.max_members,
                )
                raise SeatLimitReached("Active roster exceeds license capacity")
            if actual != lic.current_members:
                logger.warning(
                    "Seat drift for %s: counter=%d roster=%d",
                    subscriber_id, lic.current_members, actual,
                )
                lic.current_members = actual
            await db.flush()
            snapshot = LicenseSnapshot.model_validate(lic)
        await self._forget(subscriber_id)
        return snapshot
