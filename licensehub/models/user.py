from __future__ import annotations

"""
User model.

Design decisions:
- Email is unique among *live* rows only.  Deactivation moves the
  address into `deleted_email` and nulls `email`, so the address can
  register again later.
- `password_hash` is null for federation-only accounts.
- Lifecycle is exposed as a tagged value (`Active | Disabled |
  Deactivated`) via `User.lifecycle` instead of making callers
  interpret nullable columns.
"""

import enum
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from licensehub.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
    enum_column,
)


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERADMINISTRATOR = "superadministrator"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    DISABLED = "disabled"
    DEACTIVATED = "deactivated"


# ── Lifecycle states ─────────────────────────────────────────────────


@dataclass(frozen=True)
class Active:
    email: str


@dataclass(frozen=True)
class Disabled:
    email: str


@dataclass(frozen=True)
class Deactivated:
    reason: str | None
    at: datetime | None
    former_email: str | None


Lifecycle = Active | Disabled | Deactivated


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "users"

    email: Mapped[str | None] = mapped_column(String(256), nullable=True, index=True)
    password_hash: Mapped[str | None] = mapped_column(String(512), nullable=True)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    role: Mapped[UserRole] = mapped_column(
        enum_column(UserRole, "user_role"),
        default=UserRole.USER,
        nullable=False,
    )
    status: Mapped[UserStatus] = mapped_column(
        enum_column(UserStatus, "user_status"),
        default=UserStatus.ACTIVE,
        nullable=False,
    )
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    federated_id: Mapped[str | None] = mapped_column(String(256), nullable=True, unique=True)
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # ── Deactivation metadata ────────────────────────────────────────
    deleted_email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    deleted_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        Index(
            "uq_users_live_email",
            "email",
            unique=True,
            postgresql_where=text("email IS NOT NULL"),
            sqlite_where=text("email IS NOT NULL"),
        ),
    )

    @property
    def lifecycle(self) -> Lifecycle:
        if self.status == UserStatus.DEACTIVATED:
            return Deactivated(
                reason=self.deleted_reason,
                at=self.deleted_at,
                former_email=self.deleted_email,
            )
        if self.status == UserStatus.DISABLED:
            return Disabled(email=self.email or "")
        return Active(email=self.email or "")

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_protected(self) -> bool:
        return self.role == UserRole.SUPERADMINISTRATOR

    def deactivate(self, reason: str | None, at: datetime) -> None:
        self.deleted_email = self.email
        self.email = None
        self.deleted_reason = reason
        self.deleted_at = at
        self.status = UserStatus.DEACTIVATED

    def __repr__(self) -> str:
        return f"<User {self.email or self.deleted_email} [{self.status.value}]>"
