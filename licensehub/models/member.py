from __future__ import annotations

"""
Roster membership model — subscriber → member edge.

- `member_id` is null while the invitee has not registered; the row is
  reconciled on registration.
- Rows are never deleted; remove / leave flip `status` to REMOVED.
- A member user (or invited email) can be ACTIVE in at most one roster;
  both rules are backed by partial unique indexes.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from licensehub.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
    enum_column,
)


class MemberStatus(str, enum.Enum):
    ACTIVE = "active"
    REMOVED = "removed"


class MemberRecord(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "user_members"

    subscriber_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    member_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    email: Mapped[str] = mapped_column(String(256), nullable=False)
    status: Mapped[MemberStatus] = mapped_column(
        enum_column(MemberStatus, "member_status"),
        default=MemberStatus.ACTIVE,
        nullable=False,
    )
    removed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        Index(
            "uq_user_members_active_member",
            "member_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index(
            "uq_user_members_active_email",
            "email",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<MemberRecord sub={self.subscriber_id} {self.email} [{self.status.value}]>"
