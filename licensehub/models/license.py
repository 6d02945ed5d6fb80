from __future__ import annotations

"""
License model — one row per subscribing user.

`current_members` is a denormalised seat counter.  It is only ever
moved by conditional UPDATEs in the same transaction as the roster
write, the CHECK constraint rejects anything outside
0 <= current <= max, and `LicenseLedger.reconcile_seats` can recompute
it from the roster at any time.

Expiry is computed at read time from the stored window; nothing flips
`status` to EXPIRED on a timer.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from licensehub.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
    enum_column,
)


class LicenseStatus(str, enum.Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"


class License(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "user_licenses"

    subscriber_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    max_members: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_members: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[LicenseStatus] = mapped_column(
        enum_column(LicenseStatus, "license_status"),
        nullable=False,
    )
    start_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    trial_end_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "current_members >= 0 AND current_members <= max_members",
            name="ck_user_licenses_seat_bounds",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<License sub={self.subscriber_id} {self.status.value} "
            f"{self.current_members}/{self.max_members}>"
        )
