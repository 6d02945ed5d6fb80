from __future__ import annotations

"""
Password reset code model.

`request_password_reset` stores a hashed six-digit code with an expiry;
`reset_password` consumes it.  Only the latest unconsumed code per user
is honoured.
"""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from licensehub.models.base import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin


class PasswordResetCode(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "password_reset_codes"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    code_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<PasswordResetCode user={self.user_id} consumed={self.consumed_at is not None}>"
