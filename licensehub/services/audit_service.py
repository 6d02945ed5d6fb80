"""
Login audit trail — append-only writer and admin reader.
"""

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from licensehub.core.database import SessionFactory, reading, transaction
from licensehub.models.login_log import LoginAction, UserLoginLog
from licensehub.models.session import Platform
from licensehub.snapshots import LoginLogEntry, Page

logger = logging.getLogger(__name__)


class LoginAuditLog:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._sf = session_factory

    @staticmethod
    def add(
        db: AsyncSession,
        action: LoginAction,
        *,
        success: bool,
        user_id: uuid.UUID | None = None,
        session_id: uuid.UUID | None = None,
        email: str | None = None,
        ip: str | None = None,
        device_info: str | None = None,
        platform: Platform | str | None = None,
        failure_reason: str | None = None,
    ) -> None:
        """Stage a log row in the caller's transaction."""
        platform_value = platform.value if isinstance(platform, Platform) else platform
        db.add(
            UserLoginLog(
                user_id=user_id,
                session_id=session_id,
                email=email,
                ip_address=ip[:64] if ip else None,
                device_info=device_info[:512] if device_info else None,
                platform=platform_value[:16] if platform_value else None,
                success=success,
                failure_reason=failure_reason,
                action=action,
            )
        )

    async def record(self, action: LoginAction, *, success: bool, **fields) -> None:
        async with transaction(self._sf) as db:
            self.add(db, action, success=success, **fields)
        if not success:
            logger.info(
                "%s failed for %s: %s",
                action.value, fields.get("email") or fields.get("user_id"), fields.get("failure_reason"),
            )

    async def list_for_user(self, user_id: uuid.UUID, page: int = 1, limit: int = 20) -> Page[LoginLogEntry]:
        async with reading(self._sf) as db:
            total = (
                await db.execute(
                    select(func.count()).select_from(UserLoginLog).where(UserLoginLog.user_id == user_id)
                )
            ).scalar_one()
            rows = (
                await db.execute(
                    select(UserLoginLog)
                    .where(UserLoginLog.user_id == user_id)
                    .order_by(UserLoginLog.created_at.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                )
            ).scalars().all()
            items = [LoginLogEntry.model_validate(r) for r in rows]
        return Page[LoginLogEntry](items=items, total=total, page=page, limit=limit)
