"""
Admin service — user & session administration.

Handles:
- Paginated user listing with search
- Enable / disable (disable signs the user out everywhere)
- Role changes and admin-initiated soft delete
- Session listing / termination and platform statistics

Superadministrator accounts are never touched by these operations.
"""

import logging
import uuid

from sqlalchemy import func, or_, select

from licensehub.core.database import SessionFactory, reading, transaction
from licensehub.core.exceptions import ProtectedAccount, UserNotFound, ValidationFailed
from licensehub.models.user import User, UserRole, UserStatus
from licensehub.services.auth_service import AuthService
from licensehub.services.credential_service import CredentialVerifier
from licensehub.services.session_service import SessionStore, deactivate_user_sessions
from licensehub.snapshots import Page, SessionSnapshot, UserIdentity

logger = logging.getLogger(__name__)


async def get_user_for_update(user_id: uuid.UUID, db) -> User:
    """Load a live, non-protected user row with a write lock."""
    user = (
        await db.execute(select(User).where(User.id == user_id).with_for_update())
    ).scalar_one_or_none()
    if user is None or user.status == UserStatus.DEACTIVATED:
        raise UserNotFound()
    if user.is_protected:
        raise ProtectedAccount()
    return user


class AdminService:
    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        credentials: CredentialVerifier,
        sessions: SessionStore,
        auth: AuthService,
    ) -> None:
        self._sf = session_factory
        self._credentials = credentials
        self._sessions = sessions
        self._auth = auth

    # ── Users ────────────────────────────────────────────────────────

    async def list_users(self, page: int = 1, limit: int = 20, search: str | None = None) -> Page[UserIdentity]:
        filters = [User.status != UserStatus.DEACTIVATED]
        if search:
            pattern = f"%{search.strip().lower()}%"
            filters.append(or_(User.email.ilike(pattern), User.full_name.ilike(pattern)))

        async with reading(self._sf) as db:
            total = (
                await db.execute(select(func.count()).select_from(User).where(*filters))
            ).scalar_one()
            rows = (
                await db.execute(
                    select(User)
                    .where(*filters)
                    .order_by(User.created_at.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).scalars().all()
            items = [UserIdentity.model_validate(u) for u in rows]
        return Page[UserIdentity](items=items, total=total, page=page, limit=limit)

    async def set_enabled(self, user_id: uuid.UUID, enabled: bool) -> UserIdentity:
        ids: list[uuid.UUID] = []
        async with transaction(self._sf) as db:
            user = await get_user_for_update(user_id, db)
            user.status = UserStatus.ACTIVE if enabled else UserStatus.DISABLED
            if not enabled:
                # Immediately invalidate every active session for this user
                ids = await deactivate_user_sessions(user_id, db)
            identity = UserIdentity.model_validate(user)

        await self._sessions.evict(user_id, ids)
        await self._credentials.forget(user_id)
        logger.info("User %s %s", user_id, "enabled" if enabled else "disabled")
        return identity

    async def change_role(self, user_id: uuid.UUID, role: UserRole | str) -> UserIdentity:
        try:
            role = UserRole(role)
        except ValueError:
            raise ValidationFailed(f"Invalid role: {role}") from None
        if role == UserRole.SUPERADMINISTRATOR:
            raise ValidationFailed("The superadministrator role cannot be assigned")

        async with transaction(self._sf) as db:
            user = await get_user_for_update(user_id, db)
            user.role = role
            identity = UserIdentity.model_validate(user)
        await self._credentials.forget(user_id)
        logger.info("User %s role changed to %s", user_id, role.value)
        return identity

    async def delete_user(self, user_id: uuid.UUID, reason: str | None = None) -> UserIdentity:
        return await self._auth.deactivate_account(user_id, reason, template_key="user_deletion")

    # ── Sessions ─────────────────────────────────────────────────────

    async def list_sessions(self, page: int = 1, limit: int = 20) -> Page[SessionSnapshot]:
        return await self._sessions.list_active(page, limit)

    async def _guard(self, user_id: uuid.UUID) -> None:
        identity = await self._credentials.get_identity(user_id)
        if identity.role == UserRole.SUPERADMINISTRATOR:
            raise ProtectedAccount()

    async def terminate_session(self, session_id: uuid.UUID) -> SessionSnapshot:
        session = await self._sessions.get_active(session_id)
        if session is not None:
            await self._guard(session.user_id)
        return await self._sessions.terminate(session_id)

    async def terminate_user_sessions(self, user_id: uuid.UUID) -> int:
        await self._guard(user_id)
        return await self._sessions.invalidate_all(user_id)

    # ── Stats ────────────────────────────────────────────────────────

    async def stats(self) -> dict:
        async with reading(self._sf) as db:
            by_status = dict(
                (await db.execute(select(User.status, func.count()).group_by(User.status))).all()
            )
            by_role = dict(
                (await db.execute(select(User.role, func.count()).group_by(User.role))).all()
            )
        sessions = await self._sessions.count_by_platform()
        return {
            "users": {
                "total": sum(by_status.values()),
                **{UserStatus(s).value: by_status.get(s, 0) for s in UserStatus},
            },
            "roles": {UserRole(r).value: by_role.get(r, 0) for r in UserRole},
            "active_sessions": {"total": sum(sessions.values()), **sessions},
        }
