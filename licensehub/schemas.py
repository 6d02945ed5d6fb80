"""
Pydantic schemas for request / response serialization.

Kept in a single file for now; split per-domain when it grows.
Schemas are deliberately decoupled from the kernel snapshots so the
API surface can evolve independently of the services.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from licensehub.snapshots import (
    LicenseRequestSnapshot,
    LicenseSnapshot,
    LoginResult,
    MemberSnapshot,
    SessionSnapshot,
    UserIdentity,
)


# ── Auth ─────────────────────────────────────────────────────────────
class RegisterRequest(BaseModel):
    email: str
    password: str
    full_name: str = ""
    timezone: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str
    device_info: str | None = None
    timezone: str | None = None


class FederatedLoginRequest(BaseModel):
    grant: str
    device_info: str | None = None
    timezone: str | None = None


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirm(BaseModel):
    email: str
    code: str
    new_password: str


class DeactivateRequest(BaseModel):
    reason: str | None = None


class UpdateProfileRequest(BaseModel):
    full_name: str | None = None
    timezone: str | None = None


# ── User ─────────────────────────────────────────────────────────────
class UserOut(BaseModel):
    id: uuid.UUID
    email: str | None
    full_name: str
    role: str
    status: str
    timezone: str
    last_login_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_identity(cls, user: UserIdentity) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role.value,
            status=user.status.value,
            timezone=user.timezone,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_expires_at: datetime
    refresh_expires_at: datetime
    session_id: uuid.UUID
    platform: str
    user: UserOut

    @classmethod
    def from_result(cls, result: LoginResult) -> "TokenResponse":
        return cls(
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
            access_expires_at=result.tokens.access_expires_at,
            refresh_expires_at=result.tokens.refresh_expires_at,
            session_id=result.session.id,
            platform=result.session.platform.value,
            user=UserOut.from_identity(result.user),
        )


# ── Sessions ─────────────────────────────────────────────────────────
class SessionOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    platform: str
    device_info: str | None = None
    ip_address: str | None = None
    created_at: datetime
    last_active_at: datetime
    refresh_expires_at: datetime
    is_current: bool = False

    @classmethod
    def from_snapshot(cls, s: SessionSnapshot, current_id: uuid.UUID | None = None) -> "SessionOut":
        return cls(
            id=s.id,
            user_id=s.user_id,
            platform=s.platform.value,
            device_info=s.device_info,
            ip_address=s.ip_address,
            created_at=s.created_at,
            last_active_at=s.last_active_at,
            refresh_expires_at=s.refresh_expires_at,
            is_current=s.id == current_id,
        )


class PlatformSessionsOut(BaseModel):
    platform: str
    sessions: list[SessionOut]


# ── License ──────────────────────────────────────────────────────────
class StartTrialRequest(BaseModel):
    seats: int = Field(default=0, ge=0)


class LicenseOut(BaseModel):
    max_members: int
    current_members: int
    status: str
    is_valid: bool
    start_date: datetime | None = None
    end_date: datetime | None = None
    trial_end_date: datetime | None = None

    @classmethod
    def from_snapshot(cls, lic: LicenseSnapshot, now: datetime) -> "LicenseOut":
        return cls(
            max_members=lic.max_members,
            current_members=lic.current_members,
            status=lic.effective_status(now).value,
            is_valid=lic.is_valid(now),
            start_date=lic.start_date,
            end_date=lic.end_date,
            trial_end_date=lic.trial_end_date,
        )


class LicenseRequestCreate(BaseModel):
    requested_members: int
    duration: str
    request_type: str


class LicenseRequestOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    requested_members: int
    duration: str
    request_type: str
    status: str
    processed_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_snapshot(cls, r: LicenseRequestSnapshot) -> "LicenseRequestOut":
        return cls(
            id=r.id,
            user_id=r.user_id,
            requested_members=r.requested_members,
            duration=r.duration.value,
            request_type=r.request_type.value,
            status=r.status.value,
            processed_at=r.processed_at,
            created_at=r.created_at,
        )


class ProcessRequestBody(BaseModel):
    action: str


# ── Members & permissions ────────────────────────────────────────────
class AddMemberRequest(BaseModel):
    email: str


class MemberOut(BaseModel):
    id: uuid.UUID
    member_id: uuid.UUID | None
    email: str
    status: str
    created_at: datetime

    @classmethod
    def from_snapshot(cls, m: MemberSnapshot) -> "MemberOut":
        return cls(id=m.id, member_id=m.member_id, email=m.email, status=m.status.value, created_at=m.created_at)


class PermissionChange(BaseModel):
    member_id: uuid.UUID
    permission: str


class BatchPermissions(BaseModel):
    member_id: uuid.UUID
    permissions: list[str] | None = None


class MemberPermissionsOut(BaseModel):
    member_id: uuid.UUID
    email: str | None = None
    permissions: list[str]


class ScopeOut(BaseModel):
    subscriber_id: uuid.UUID
    is_owner: bool
    permissions: list[str]


# ── Admin ────────────────────────────────────────────────────────────
class RoleChangeRequest(BaseModel):
    role: str


class AdminDeleteRequest(BaseModel):
    reason: str | None = None


# ── Generic ──────────────────────────────────────────────────────────
class MessageResponse(BaseModel):
    detail: str


class PageOut(BaseModel):
    items: list
    total: int
    page: int
    limit: int
