"""
Typed results returned by the kernel services.

These are the only shapes that cross a service boundary: ORM rows stay
inside the unit of work that loaded them.  Every snapshot round-trips
through JSON (`model_dump(mode="json")` / `model_validate`) so the same
type is used for cache entries and for live results.
"""

import uuid
from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from licensehub.models.license import LicenseStatus
from licensehub.models.license_request import LicenseDuration, RequestStatus, RequestType
from licensehub.models.login_log import LoginAction
from licensehub.models.member import MemberStatus
from licensehub.models.session import Platform
from licensehub.models.user import UserRole, UserStatus

T = TypeVar("T")


class Snapshot(BaseModel):
    model_config = {"from_attributes": True}

    def to_cache(self) -> dict:
        return self.model_dump(mode="json")


# ── Identity ─────────────────────────────────────────────────────────
class UserIdentity(Snapshot):
    id: uuid.UUID
    email: str | None
    full_name: str
    role: UserRole
    status: UserStatus
    timezone: str
    federated_id: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime


# ── Sessions & tokens ────────────────────────────────────────────────
class SessionSnapshot(Snapshot):
    id: uuid.UUID
    user_id: uuid.UUID
    platform: Platform
    device_info: str | None = None
    ip_address: str | None = None
    timezone: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    created_at: datetime
    last_active_at: datetime
    is_active: bool


class IssuedTokens(BaseModel):
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


class OpenedSession(BaseModel):
    """A freshly created or rotated session together with its token pair."""

    session: SessionSnapshot
    tokens: IssuedTokens


class Claims(BaseModel):
    user_id: uuid.UUID
    role: UserRole
    session_id: uuid.UUID
    timezone: str
    token_type: str
    expires_at: datetime


class Principal(BaseModel):
    """The authenticated caller of a request."""

    user_id: uuid.UUID
    role: UserRole
    session_id: uuid.UUID
    platform: Platform
    timezone: str
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.SUPERADMINISTRATOR)


class LoginResult(BaseModel):
    user: UserIdentity
    session: SessionSnapshot
    tokens: IssuedTokens


class PlatformSessions(BaseModel):
    platform: Platform
    sessions: list[SessionSnapshot]
    current_session_id: uuid.UUID | None = None


class LoginLogEntry(Snapshot):
    id: uuid.UUID
    user_id: uuid.UUID | None
    session_id: uuid.UUID | None
    ip_address: str | None
    device_info: str | None
    platform: str | None
    success: bool
    failure_reason: str | None
    action: LoginAction
    created_at: datetime


# ── Licensing ────────────────────────────────────────────────────────
class LicenseSnapshot(Snapshot):
    subscriber_id: uuid.UUID
    max_members: int
    current_members: int
    status: LicenseStatus
    start_date: datetime | None = None
    end_date: datetime | None = None
    trial_end_date: datetime | None = None

    @property
    def valid_until(self) -> datetime | None:
        if self.status == LicenseStatus.TRIAL:
            return self.trial_end_date
        if self.status == LicenseStatus.ACTIVE:
            return self.end_date
        return None

    def is_valid(self, now: datetime) -> bool:
        """Pure function of `now` and the stored window."""
        until = self.valid_until
        return until is not None and now <= until

    def effective_status(self, now: datetime) -> LicenseStatus:
        return self.status if self.is_valid(now) else LicenseStatus.EXPIRED


class LicenseStatusView(BaseModel):
    license: LicenseSnapshot | None
    is_valid: bool
    effective_status: LicenseStatus | None


class LicenseRequestSnapshot(Snapshot):
    id: uuid.UUID
    user_id: uuid.UUID
    requested_members: int
    duration: LicenseDuration
    request_type: RequestType
    status: RequestStatus
    processed_by: uuid.UUID | None = None
    processed_at: datetime | None = None
    created_at: datetime


# ── Roster & permissions ─────────────────────────────────────────────
class MemberSnapshot(Snapshot):
    id: uuid.UUID
    subscriber_id: uuid.UUID
    member_id: uuid.UUID | None
    email: str
    status: MemberStatus
    created_at: datetime
    removed_at: datetime | None = None


class MemberPermissions(BaseModel):
    member_id: uuid.UUID
    email: str
    permissions: list[str] = Field(default_factory=list)


class SubscriptionScope(BaseModel):
    """Who the caller acts for and what they may do there."""

    subscriber_id: uuid.UUID
    is_owner: bool
    permissions: frozenset[str]

    def allows(self, code: str) -> bool:
        return code in self.permissions


# ── Paging ───────────────────────────────────────────────────────────
class Page(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
