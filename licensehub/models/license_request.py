from __future__ import annotations

"""
License request model.

A subscriber asks for seats / duration; a superadministrator approves
or rejects.  The partial unique index guarantees one PENDING request
per user even under concurrent submits.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, text
from sqlalchemy.orm import Mapped, mapped_column

from licensehub.models.base import (
    Base,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
    enum_column,
)


class RequestType(str, enum.Enum):
    NEW = "new"
    RENEW = "renew"
    ADD = "add"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class LicenseDuration(str, enum.Enum):
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"

    @property
    def days(self) -> int:
        return {"month": 30, "quarter": 90, "year": 365}[self.value]


class LicenseRequest(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "license_requests"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requested_members: Mapped[int] = mapped_column(Integer, nullable=False)
    duration: Mapped[LicenseDuration] = mapped_column(
        enum_column(LicenseDuration, "license_duration"),
        nullable=False,
    )
    request_type: Mapped[RequestType] = mapped_column(
        enum_column(RequestType, "license_request_type"),
        nullable=False,
    )
    status: Mapped[RequestStatus] = mapped_column(
        enum_column(RequestStatus, "license_request_status"),
        default=RequestStatus.PENDING,
        nullable=False,
    )
    processed_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        Index(
            "uq_license_requests_one_pending",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<LicenseRequest {self.request_type.value} user={self.user_id} [{self.status.value}]>"
