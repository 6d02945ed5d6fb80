from __future__ import annotations

"""
Permission grant model.

One row per (subscriber, member, permission code).  Codes are immutable
strings from the vocabulary in `licensehub.rbac.permission_catalog`;
the registry refuses anything else before a row is written.
"""

import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from licensehub.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class PermissionGrant(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "permissions"

    subscriber_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    member_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    permission: Mapped[str] = mapped_column(String(128), nullable=False)

    __table_args__ = (
        UniqueConstraint("subscriber_id", "member_id", "permission", name="uq_permissions_grant"),
    )

    def __repr__(self) -> str:
        return f"<PermissionGrant {self.permission} member={self.member_id}>"
