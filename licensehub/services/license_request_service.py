"""
License request service.

Handles:
- Submitting new / renew / add requests (one pending per user)
- Cancelling the pending request
- Superadministrator review: paginated listing, approve / reject

Approval mutates the license and flips the request status in the same
transaction; the requester and the superadministrator are notified
out-of-band.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from licensehub.core.cache import CacheKeys, CacheStore
from licensehub.core.config import settings
from licensehub.core.database import SessionFactory, reading, transaction
from licensehub.core.exceptions import (
    AlreadyInOtherRoster,
    LicenseAlreadyActive,
    LicenseExpired,
    NoPendingRequest,
    PendingRequestExists,
    RequestAlreadyProcessed,
    RequestNotFound,
    ValidationFailed,
)
from licensehub.models.base import utcnow
from licensehub.models.license_request import LicenseRequest, RequestStatus, RequestType
from licensehub.models.user import User
from licensehub.services.email_service import NotificationDispatcher
from licensehub.services.license_service import apply_request, get_license, parse_duration
from licensehub.services.member_service import get_membership
from licensehub.snapshots import LicenseRequestSnapshot, LicenseSnapshot, Page

logger = logging.getLogger(__name__)

ACTIONS = {"approve": RequestStatus.APPROVED, "reject": RequestStatus.REJECTED}


def _parse_type(value: RequestType | str) -> RequestType:
    try:
        return RequestType(value)
    except ValueError:
        raise ValidationFailed(f"Invalid request type: {value}") from None


class LicenseRequestService:
    def __init__(
        self,
        session_factory: SessionFactory,
        cache: CacheStore,
        notifications: NotificationDispatcher,
        *,
        clock: Callable[[], datetime] = utcnow,
        cache_ttl: int | None = None,
        superadmin_email: str | None = None,
    ) -> None:
        self._sf = session_factory
        self._cache = cache
        self._notifications = notifications
        self._clock = clock
        self._ttl = cache_ttl or settings.ENTITY_CACHE_TTL_SECONDS
        self._superadmin_email = superadmin_email if superadmin_email is not None else settings.SUPERADMIN_EMAIL

    # ── Subscriber side ──────────────────────────────────────────────

    async def submit(
        self,
        user_id: uuid.UUID,
        requested_members: int,
        duration: str,
        request_type: str,
    ) -> LicenseRequestSnapshot:
        if isinstance(requested_members, bool) or not isinstance(requested_members, int) or requested_members < 1:
            raise ValidationFailed("Requested seats must be a positive integer")
        duration = parse_duration(duration)
        request_type = _parse_type(request_type)
        now = self._clock()

        async with transaction(self._sf) as db:
            user = await db.get(User, user_id)
            if user is None:
                raise ValidationFailed("Unknown user")
            if await get_membership(user_id, db) is not None:
                raise AlreadyInOtherRoster("Members of another subscription cannot request a license")

            lic = await get_license(user_id, db)
            valid = lic is not None and LicenseSnapshot.model_validate(lic).is_valid(now)
            if request_type == RequestType.NEW and valid:
                raise LicenseAlreadyActive()
            if request_type == RequestType.RENEW and lic is None:
                raise LicenseExpired("There is no license to renew")
            if request_type == RequestType.ADD and not valid:
                raise LicenseExpired("Seats can only be added to a valid license")

            pending = (
                await db.execute(
                    select(LicenseRequest.id).where(
                        LicenseRequest.user_id == user_id,
                        LicenseRequest.status == RequestStatus.PENDING,
                    )
                )
            ).first()
            if pending is not None:
                raise PendingRequestExists()

            request = LicenseRequest(
                user_id=user_id,
                requested_members=requested_members,
                duration=duration,
                request_type=request_type,
                status=RequestStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            db.add(request)
            try:
                await db.flush()
            except IntegrityError:
                raise PendingRequestExists() from None
            snapshot = LicenseRequestSnapshot.model_validate(request)
            requester_email = user.email

        await self._cache.delete(CacheKeys.license_requests(user_id))
        logger.info("License request %s (%s) submitted by %s", snapshot.id, request_type.value, user_id)
        self._notifications.notify(
            self._superadmin_email,
            "license_request_submitted",
            {
                "email": requester_email,
                "request_type": request_type.value,
                "requested_members": requested_members,
                "duration": duration.value,
            },
        )
        return snapshot

    async def get_pending(self, user_id: uuid.UUID) -> LicenseRequestSnapshot | None:
        key = CacheKeys.license_requests(user_id)
        cached = await self._cache.get_json(key)
        if cached is not None:
            pending = cached.get("pending")
            return LicenseRequestSnapshot.model_validate(pending) if pending else None

        async with reading(self._sf) as db:
            row = (
                await db.execute(
                    select(LicenseRequest).where(
                        LicenseRequest.user_id == user_id,
                        LicenseRequest.status == RequestStatus.PENDING,
                    )
                )
            ).scalar_one_or_none()
            snapshot = LicenseRequestSnapshot.model_validate(row) if row is not None else None
        await self._cache.set_json(key, {"pending": snapshot.to_cache() if snapshot else None}, self._ttl)
        return snapshot

    async def cancel_pending(self, user_id: uuid.UUID) -> LicenseRequestSnapshot:
        now = self._clock()
        async with transaction(self._sf) as db:
            row = (
                await db.execute(
                    update(LicenseRequest)
                    .where(
                        LicenseRequest.user_id == user_id,
                        LicenseRequest.status == RequestStatus.PENDING,
                    )
                    .values(status=RequestStatus.CANCELLED, processed_at=now, updated_at=now)
                    .returning(LicenseRequest)
                )
            ).scalars().first()
            if row is None:
                raise NoPendingRequest()
            snapshot = LicenseRequestSnapshot.model_validate(row)
        await self._cache.delete(CacheKeys.license_requests(user_id))
        logger.info("License request %s cancelled by %s", snapshot.id, user_id)
        return snapshot

    # ── Superadministrator side ──────────────────────────────────────

    async def list_requests(
        self,
        page: int = 1,
        limit: int = 20,
        status: RequestStatus | str | None = None,
    ) -> Page[LicenseRequestSnapshot]:
        filters = []
        if status is not None:
            try:
                filters.append(LicenseRequest.status == RequestStatus(status))
            except ValueError:
                raise ValidationFailed(f"Invalid status: {status}") from None

        async with reading(self._sf) as db:
            total = (
                await db.execute(select(func.count()).select_from(LicenseRequest).where(*filters))
            ).scalar_one()
            rows = (
                await db.execute(
                    select(LicenseRequest)
                    .where(*filters)
                    .order_by(LicenseRequest.created_at.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).scalars().all()
            items = [LicenseRequestSnapshot.model_validate(r) for r in rows]
        return Page[LicenseRequestSnapshot](items=items, total=total, page=page, limit=limit)

    async def process(self, request_id: uuid.UUID, action: str, admin_id: uuid.UUID) -> LicenseRequestSnapshot:
        if action not in ACTIONS:
            raise ValidationFailed("Action must be 'approve' or 'reject'")
        outcome = ACTIONS[action]
        now = self._clock()

        async with transaction(self._sf) as db:
            request = (
                await db.execute(
                    select(LicenseRequest).where(LicenseRequest.id == request_id).with_for_update()
                )
            ).scalar_one_or_none()
            if request is None:
                raise RequestNotFound()
            if request.status != RequestStatus.PENDING:
                raise RequestAlreadyProcessed()

            if outcome == RequestStatus.APPROVED:
                await apply_request(request, db, now)
            request.status = outcome
            request.processed_by = admin_id
            request.processed_at = now
            await db.flush()
            snapshot = LicenseRequestSnapshot.model_validate(request)
            requester = await db.get(User, request.user_id)
            requester_email = requester.email if requester is not None else None

        await self._cache.delete(
            CacheKeys.license_requests(snapshot.user_id),
            CacheKeys.license(snapshot.user_id),
        )
        logger.info("License request %s %s by %s", snapshot.id, outcome.value, admin_id)
        self._notifications.notify(
            requester_email,
            "license_request_processed",
            {
                "status": outcome.value,
                "request_type": snapshot.request_type.value,
                "requested_members": snapshot.requested_members,
            },
        )
        return snapshot
