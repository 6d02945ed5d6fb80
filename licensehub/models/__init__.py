"""
Models package — import every model so SQLAlchemy's Base.metadata
knows about all tables (critical for `create_all` / Alembic).
"""

from licensehub.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, UTCDateTime
from licensehub.models.user import User, UserRole, UserStatus
from licensehub.models.session import Platform, UserSession
from licensehub.models.login_log import LoginAction, UserLoginLog
from licensehub.models.license import License, LicenseStatus
from licensehub.models.license_request import (
    LicenseDuration,
    LicenseRequest,
    RequestStatus,
    RequestType,
)
from licensehub.models.member import MemberRecord, MemberStatus
from licensehub.models.permission import PermissionGrant
from licensehub.models.password_reset import PasswordResetCode

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "UTCDateTime",
    "User",
    "UserRole",
    "UserStatus",
    "Platform",
    "UserSession",
    "LoginAction",
    "UserLoginLog",
    "License",
    "LicenseStatus",
    "LicenseDuration",
    "LicenseRequest",
    "RequestStatus",
    "RequestType",
    "MemberRecord",
    "MemberStatus",
    "PermissionGrant",
    "PasswordResetCode",
]
