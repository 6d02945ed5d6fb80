"""
Session store — lifecycle of user sessions with per-platform SSO.

Handles:
- Creating sessions (one active session per user *per platform*)
- Invalidating sessions by platform, for a whole user, or one at a time
- Refresh-token lookup and rotation
- Read-through caching of active sessions

Ordering rules:
- SSO: the owning user row is locked, prior sessions on the platform are
  deactivated, then the new row is inserted in the same transaction.
- Cache: write & commit first, then drop / overwrite cache entries.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from licensehub.core.cache import CacheKeys, CacheStore
from licensehub.core.config import settings
from licensehub.core.database import SessionFactory, reading, transaction
from licensehub.core.exceptions import AccountDisabled, SessionExpired, SessionNotFound, UserNotFound
from licensehub.core.security import hash_token
from licensehub.models.base import utcnow
from licensehub.models.session import Platform, UserSession
from licensehub.models.user import User
from licensehub.services.credential_service import check_timezone
from licensehub.services.token_service import TokenService, TokenSubject
from licensehub.snapshots import OpenedSession, Page, SessionSnapshot

logger = logging.getLogger(__name__)

# Called with the open transaction and the written session row.
SessionHook = Callable[[AsyncSession, SessionSnapshot], None]


# ── In-transaction helpers ───────────────────────────────────────────


async def get_active_sessions(user_id: uuid.UUID, db: AsyncSession) -> list[UserSession]:
    """Return all active sessions for a user."""
    stmt = (
        select(UserSession)
        .where(
            UserSession.user_id == user_id,
            UserSession.is_active == True,  # noqa: E712
        )
        .order_by(UserSession.created_at)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def deactivate_user_sessions(
    user_id: uuid.UUID,
    db: AsyncSession,
    platform: Platform | None = None,
) -> list[uuid.UUID]:
    """
    Deactivate the user's active sessions (optionally only on one platform).

    Returns the ids of the sessions affected so the caller can evict
    them from the cache once the transaction commits.
    """
    stmt = update(UserSession).where(
        UserSession.user_id == user_id,
        UserSession.is_active == True,  # noqa: E712
    )
    if platform is not None:
        stmt = stmt.where(UserSession.platform == platform)
    stmt = stmt.values(is_active=False).returning(UserSession.id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ── Store ────────────────────────────────────────────────────────────


class SessionStore:
    def __init__(
        self,
        session_factory: SessionFactory,
        cache: CacheStore,
        tokens: TokenService,
        *,
        clock: Callable[[], datetime] = utcnow,
        cache_ttl: int | None = None,
    ) -> None:
        self._sf = session_factory
        self._cache = cache
        self._tokens = tokens
        self._clock = clock
        self._ttl = cache_ttl or settings.SESSION_CACHE_TTL_SECONDS

    async def evict(self, user_id: uuid.UUID, session_ids=()) -> None:
        """Drop cached state for the given sessions and the user's session list."""
        await self._cache.delete(*CacheKeys.session_keys(user_id, *session_ids))

    # ── Create ───────────────────────────────────────────────────────

    async def create_session(
        self,
        user_id: uuid.UUID,
        platform: Platform | str,
        device_info: str | None = None,
        ip: str | None = None,
        timezone: str | None = None,
        *,
        audit: SessionHook | None = None,
    ) -> OpenedSession:
        """
        Open a session, replacing any active one on the same platform.

        `audit` runs inside the transaction once the row is flushed; if it
        raises, the whole login rolls back and the replaced session stays
        active.
        """
        platform = Platform.parse(platform)
        timezone = check_timezone(timezone) if timezone else None
        if device_info:
            device_info = device_info[:512]
        if ip:
            ip = ip[:64]
        now = self._clock()
        session_id = uuid.uuid4()

        async with transaction(self._sf) as db:
            # Serialises concurrent logins of the same user.
            user = (
                await db.execute(select(User).where(User.id == user_id).with_for_update())
            ).scalar_one_or_none()
            if user is None:
                raise UserNotFound()
            if not user.is_active:
                raise AccountDisabled()

            replaced = await deactivate_user_sessions(user_id, db, platform=platform)

            tz = timezone or user.timezone
            tokens = self._tokens.issue(user, session_id, timezone_name=tz)
            row = UserSession(
                id=session_id,
                user_id=user_id,
                platform=platform,
                device_info=device_info,
                ip_address=ip,
                timezone=tz,
                access_token_hash=hash_token(tokens.access_token),
                refresh_token_hash=hash_token(tokens.refresh_token),
                access_expires_at=tokens.access_expires_at,
                refresh_expires_at=tokens.refresh_expires_at,
                created_at=now,
                last_active_at=now,
                is_active=True,
            )
            db.add(row)
            await db.flush()
            snapshot = SessionSnapshot.model_validate(row)
            if audit is not None:
                audit(db, snapshot)

        await self.evict(user_id, replaced)
        await self._cache.set_json(CacheKeys.session(session_id), snapshot.to_cache(), self._ttl)
        logger.info(
            "Session %s created for user %s on %s (%d replaced)",
            session_id, user_id, platform.value, len(replaced),
        )
        return OpenedSession(session=snapshot, tokens=tokens)

    # ── Invalidate ───────────────────────────────────────────────────

    async def invalidate_by_platform(self, user_id: uuid.UUID, platform: Platform | str) -> int:
        platform = Platform.parse(platform)
        async with transaction(self._sf) as db:
            ids = await deactivate_user_sessions(user_id, db, platform=platform)
        await self.evict(user_id, ids)
        logger.info("Invalidated %d %s session(s) for user %s", len(ids), platform.value, user_id)
        return len(ids)

    async def invalidate_all(self, user_id: uuid.UUID) -> int:
        async with transaction(self._sf) as db:
            ids = await deactivate_user_sessions(user_id, db)
        await self.evict(user_id, ids)
        logger.info("Invalidated all %d session(s) for user %s", len(ids), user_id)
        return len(ids)

    async def terminate(self, session_id: uuid.UUID) -> SessionSnapshot:
        async with transaction(self._sf) as db:
            row = (
                await db.execute(
                    update(UserSession)
                    .where(
                        UserSession.id == session_id,
                        UserSession.is_active == True,  # noqa: E712
                    )
                    .values(is_active=False)
                    .returning(UserSession)
                )
            ).scalar_one_or_none()
            if row is None:
                raise SessionNotFound()
            snapshot = SessionSnapshot.model_validate(row)
        await self.evict(snapshot.user_id, [session_id])
        logger.info("Session %s terminated", session_id)
        return snapshot

    # ── Lookup ───────────────────────────────────────────────────────

    async def get_active(self, session_id: uuid.UUID) -> SessionSnapshot | None:
        key = CacheKeys.session(session_id)
        cached = await self._cache.get_json(key)
        if cached is not None:
            snapshot = SessionSnapshot.model_validate(cached)
            if snapshot.is_active:
                return snapshot

        async with reading(self._sf) as db:
            row = (
                await db.execute(
                    select(UserSession).where(
                        UserSession.id == session_id,
                        UserSession.is_active == True,  # noqa: E712
                    )
                )
            ).scalar_one_or_none()
            if row is None:
                return None
            snapshot = SessionSnapshot.model_validate(row)
        await self._cache.set_json(key, snapshot.to_cache(), self._ttl)
        return snapshot

    async def find_active_by_user(self, user_id: uuid.UUID) -> list[SessionSnapshot]:
        key = CacheKeys.user_sessions(user_id)
        cached = await self._cache.get_json(key)
        if cached is not None:
            return [SessionSnapshot.model_validate(item) for item in cached]

        async with reading(self._sf) as db:
            rows = await get_active_sessions(user_id, db)
            sessions = [SessionSnapshot.model_validate(r) for r in rows]
        await self._cache.set_json(key, [s.to_cache() for s in sessions], self._ttl)
        return sessions

    async def find_by_refresh_token(self, token: str) -> SessionSnapshot:
        """
        Resolve the active session holding this refresh token.

        Raises SessionNotFound when no active session matches, and
        SessionExpired (after terminating the row) when the refresh window
        has elapsed.
        """
        expired = False
        async with transaction(self._sf) as db:
            row = (
                await db.execute(
                    select(UserSession)
                    .where(
                        UserSession.refresh_token_hash == hash_token(token),
                        UserSession.is_active == True,  # noqa: E712
                    )
                    .with_for_update()
                )
            ).scalar_one_or_none()
            if row is None:
                raise SessionNotFound()
            if self._clock() >= row.refresh_expires_at:
                row.is_active = False
                expired = True
            snapshot = SessionSnapshot.model_validate(row)

        if expired:
            await self.evict(snapshot.user_id, [snapshot.id])
            logger.info("Session %s refresh window elapsed; terminated", snapshot.id)
            raise SessionExpired()
        return snapshot

    # ── Rotate ───────────────────────────────────────────────────────

    async def rotate(
        self,
        session_id: uuid.UUID,
        user: TokenSubject,
        *,
        audit: SessionHook | None = None,
    ) -> OpenedSession:
        """Issue a fresh token pair for an active session and extend its expiry."""
        now = self._clock()
        async with transaction(self._sf) as db:
            row = (
                await db.execute(
                    select(UserSession)
                    .where(
                        UserSession.id == session_id,
                        UserSession.is_active == True,  # noqa: E712
                    )
                    .with_for_update()
                )
            ).scalar_one_or_none()
            if row is None:
                raise SessionNotFound()
            tokens = self._tokens.issue(user, row.id, timezone_name=row.timezone)
            row.access_token_hash = hash_token(tokens.access_token)
            row.refresh_token_hash = hash_token(tokens.refresh_token)
            row.access_expires_at = tokens.access_expires_at
            row.refresh_expires_at = tokens.refresh_expires_at
            row.last_active_at = now
            await db.flush()
            snapshot = SessionSnapshot.model_validate(row)
            if audit is not None:
                audit(db, snapshot)

        await self._cache.delete(CacheKeys.user_sessions(snapshot.user_id))
        await self._cache.set_json(CacheKeys.session(session_id), snapshot.to_cache(), self._ttl)
        return OpenedSession(session=snapshot, tokens=tokens)

    # ── Administration ───────────────────────────────────────────────

    async def list_active(self, page: int = 1, limit: int = 20) -> Page[SessionSnapshot]:
        async with reading(self._sf) as db:
            total = (
                await db.execute(
                    select(func.count()).select_from(UserSession).where(
                        UserSession.is_active == True  # noqa: E712
                    )
                )
            ).scalar_one()
            rows = (
                await db.execute(
                    select(UserSession)
                    .where(UserSession.is_active == True)  # noqa: E712
                    .order_by(UserSession.last_active_at.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).scalars().all()
            items = [SessionSnapshot.model_validate(r) for r in rows]
        return Page[SessionSnapshot](items=items, total=total, page=page, limit=limit)

    async def count_by_platform(self) -> dict[str, int]:
        async with reading(self._sf) as db:
            rows = (
                await db.execute(
                    select(UserSession.platform, func.count())
                    .where(UserSession.is_active == True)  # noqa: E712
                    .group_by(UserSession.platform)
                )
            ).all()
        counts = {p.value: 0 for p in Platform}
        for platform, count in rows:
            counts[Platform(platform).value] = count
        return counts
