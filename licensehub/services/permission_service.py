"""
Permission registry — per-member capability grants under a subscriber.

Handles:
- Single grant / revoke
- Atomic replacement of a member's whole grant set
- Cached reads per member and per subscriber

Every mutation checks, before writing anything:
1. all codes belong to the vocabulary (`UnknownPermission`),
2. the subscriber's license is currently valid (`LicenseExpired`),
3. the member is active in the subscriber's roster (`MemberNotFound`).
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from licensehub.core.cache import CacheKeys, CacheStore
from licensehub.core.config import settings
from licensehub.core.database import SessionFactory, reading, transaction
from licensehub.core.exceptions import LicenseExpired, MemberNotFound, UnknownPermission, ValidationFailed
from licensehub.models.base import utcnow
from licensehub.models.member import MemberRecord, MemberStatus
from licensehub.models.permission import PermissionGrant
from licensehub.rbac.permission_catalog import first_unknown, is_known
from licensehub.services.license_service import LicenseLedger, get_license
from licensehub.services.member_service import get_active_record
from licensehub.snapshots import LicenseSnapshot, MemberPermissions

logger = logging.getLogger(__name__)


async def get_grants(subscriber_id: uuid.UUID, member_id: uuid.UUID, db: AsyncSession) -> list[str]:
    stmt = (
        select(PermissionGrant.permission)
        .where(
            PermissionGrant.subscriber_id == subscriber_id,
            PermissionGrant.member_id == member_id,
        )
        .order_by(PermissionGrant.permission)
    )
    return list((await db.execute(stmt)).scalars().all())


class PermissionRegistry:
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

    async def _forget(self, subscriber_id: uuid.UUID, member_id: uuid.UUID) -> None:
        await self._cache.delete(
            CacheKeys.member_permissions(subscriber_id, member_id),
            CacheKeys.all_member_permissions(subscriber_id),
        )

    async def _preconditions(self, db: AsyncSession, subscriber_id: uuid.UUID, member_id: uuid.UUID) -> None:
        lic = await get_license(subscriber_id, db)
        if lic is None or not LicenseSnapshot.model_validate(lic).is_valid(self._clock()):
            raise LicenseExpired("Subscriber license is invalid or expired")
        if await get_active_record(subscriber_id, member_id, db) is None:
            raise MemberNotFound()

    # ── Mutations ────────────────────────────────────────────────────

    async def grant(self, subscriber_id: uuid.UUID, member_id: uuid.UUID, permission: str) -> list[str]:
        if not is_known(permission):
            raise UnknownPermission(permission)
        async with transaction(self._sf) as db:
            await self._preconditions(db, subscriber_id, member_id)
            current = await get_grants(subscriber_id, member_id, db)
            if permission not in current:
                db.add(PermissionGrant(subscriber_id=subscriber_id, member_id=member_id, permission=permission))
                await db.flush()
                current = sorted([*current, permission])
        await self._forget(subscriber_id, member_id)
        logger.info("Granted %s to %s under %s", permission, member_id, subscriber_id)
        return current

    async def revoke(self, subscriber_id: uuid.UUID, member_id: uuid.UUID, permission: str) -> list[str]:
        if not is_known(permission):
            raise UnknownPermission(permission)
        async with transaction(self._sf) as db:
            await self._preconditions(db, subscriber_id, member_id)
            await db.execute(
                delete(PermissionGrant).where(
                    PermissionGrant.subscriber_id == subscriber_id,
                    PermissionGrant.member_id == member_id,
                    PermissionGrant.permission == permission,
                )
            )
            current = await get_grants(subscriber_id, member_id, db)
        await self._forget(subscriber_id, member_id)
        logger.info("Revoked %s from %s under %s", permission, member_id, subscriber_id)
        return current

    async def batch_set(
        self,
        subscriber_id: uuid.UUID,
        member_id: uuid.UUID,
        permissions: list[str] | None,
    ) -> list[str]:
        """
        Replace the member's grant set.  An empty list clears it; a missing
        list is a validation error; one unknown code rejects the whole call.
        """
        if permissions is None or isinstance(permissions, (str, bytes)):
            raise ValidationFailed("A list of permissions is required")
        permissions = list(permissions)
        unknown = first_unknown(permissions)
        if unknown is not None:
            raise UnknownPermission(unknown)
        wanted = sorted(set(permissions))

        async with transaction(self._sf) as db:
            await self._preconditions(db, subscriber_id, member_id)
            await db.execute(
                delete(PermissionGrant).where(
                    PermissionGrant.subscriber_id == subscriber_id,
                    PermissionGrant.member_id == member_id,
                )
            )
            db.add_all(
                PermissionGrant(subscriber_id=subscriber_id, member_id=member_id, permission=code)
                for code in wanted
            )
            await db.flush()
        await self._forget(subscriber_id, member_id)
        logger.info("Replaced grant set of %s under %s (%d codes)", member_id, subscriber_id, len(wanted))
        return wanted

    # ── Reads ────────────────────────────────────────────────────────

    async def get_for_member(self, subscriber_id: uuid.UUID, member_id: uuid.UUID) -> list[str]:
        await self._ledger.require_valid(subscriber_id)

        key = CacheKeys.member_permissions(subscriber_id, member_id)
        cached = await self._cache.get_json(key)
        if cached is not None:
            return list(cached)

        async with reading(self._sf) as db:
            if await get_active_record(subscriber_id, member_id, db) is None:
                raise MemberNotFound()
            grants = await get_grants(subscriber_id, member_id, db)
        await self._cache.set_json(key, grants, self._ttl)
        return grants

    async def get_for_all_members(self, subscriber_id: uuid.UUID) -> list[MemberPermissions]:
        await self._ledger.require_valid(subscriber_id)

        key = CacheKeys.all_member_permissions(subscriber_id)
        cached = await self._cache.get_json(key)
        if cached is not None:
            return [MemberPermissions.model_validate(item) for item in cached]

        async with reading(self._sf) as db:
            records = (
                await db.execute(
                    select(MemberRecord)
                    .where(
                        MemberRecord.subscriber_id == subscriber_id,
                        MemberRecord.status == MemberStatus.ACTIVE,
                        MemberRecord.member_id.is_not(None),
                    )
                    .order_by(MemberRecord.created_at)
                )
            ).scalars().all()
            grants = (
                await db.execute(
                    select(PermissionGrant.member_id, PermissionGrant.permission)
                    .where(PermissionGrant.subscriber_id == subscriber_id)
                    .order_by(PermissionGrant.permission)
                )
            ).all()
        by_member: dict[uuid.UUID, list[str]] = {}
        for mid, code in grants:
            by_member.setdefault(mid, []).append(code)
        result = [
            MemberPermissions(member_id=r.member_id, email=r.email, permissions=by_member.get(r.member_id, []))
            for r in records
        ]
        await self._cache.set_json(key, [m.model_dump(mode="json") for m in result], self._ttl)
        return result

    async def has_permission(self, subscriber_id: uuid.UUID, member_id: uuid.UUID, code: str) -> bool:
        try:
            return code in await self.get_for_member(subscriber_id, member_id)
        except (MemberNotFound, LicenseExpired):
            return False
