"""
Login audit log — append-only.

One row per login attempt (successful or not), token refresh and
logout.  Rows are never updated or deleted by application code.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from licensehub.models.base import Base, UTCDateTime, enum_column, utcnow


class LoginAction(str, enum.Enum):
    LOGIN = "login"
    REFRESH = "refresh"
    LOGOUT = "logout"


class UserLoginLog(Base):
    __tablename__ = "user_login_logs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # Weak reference; sessions may be gone long before the audit trail.
    session_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    device_info: Mapped[str | None] = mapped_column(String(512), nullable=True)
    platform: Mapped[str | None] = mapped_column(String(16), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(String(128), nullable=True)
    action: Mapped[LoginAction] = mapped_column(enum_column(LoginAction, "login_action"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<UserLoginLog user={self.user_id} action={self.action.value} ok={self.success}>"
