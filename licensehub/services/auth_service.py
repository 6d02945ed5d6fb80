"""
Authentication service.

Handles:
- Login (password & federated) with per-platform SSO sessions
- Refresh-token rotation
- Per-request authentication (token → active session → principal)
- Logout of the caller's platform, session listing
- Password reset (cooldown, hashed one-time code, global sign-out)
- Self-service account deactivation

Every login attempt, refresh and logout is written to the audit log.
Controllers call these methods and translate results to DTOs; nothing
here knows about HTTP.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import select

from licensehub.core.cache import CacheKeys, CacheStore
from licensehub.core.config import settings
from licensehub.core.database import SessionFactory, transaction
from licensehub.core.exceptions import (
    AccountDisabled,
    InvalidCredentials,
    InvalidResetCode,
    ProtectedAccount,
    SessionExpired,
    TokenInvalid,
    TooManyRequests,
    UserNotFound,
)
from licensehub.core.security import PasswordHasher, generate_reset_code, hash_token, tokens_match
from licensehub.models.base import utcnow
from licensehub.models.login_log import LoginAction
from licensehub.models.password_reset import PasswordResetCode
from licensehub.models.session import Platform
from licensehub.models.user import User, UserStatus
from licensehub.services.audit_service import LoginAuditLog
from licensehub.services.credential_service import (
    CredentialVerifier,
    check_password_strength,
    get_user_by_email,
)
from licensehub.services.email_service import NotificationDispatcher
from licensehub.services.member_service import MemberRoster, normalize_email, release_membership
from licensehub.services.session_service import SessionStore, deactivate_user_sessions
from licensehub.services.token_service import TokenService
from licensehub.snapshots import (
    LoginResult,
    MemberSnapshot,
    PlatformSessions,
    Principal,
    SessionSnapshot,
    UserIdentity,
)

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        session_factory: SessionFactory,
        cache: CacheStore,
        *,
        credentials: CredentialVerifier,
        sessions: SessionStore,
        tokens: TokenService,
        roster: MemberRoster,
        audit: LoginAuditLog,
        hasher: PasswordHasher,
        notifications: NotificationDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sf = session_factory
        self._cache = cache
        self._credentials = credentials
        self._sessions = sessions
        self._tokens = tokens
        self._roster = roster
        self._audit = audit
        self._hasher = hasher
        self._notifications = notifications
        self._clock = clock

    # ── Login ────────────────────────────────────────────────────────

    async def login(
        self,
        email: str,
        password: str,
        platform: Platform | str,
        *,
        device_info: str | None = None,
        ip: str | None = None,
        timezone: str | None = None,
    ) -> LoginResult:
        platform = Platform.parse(platform)
        try:
            user = await self._credentials.verify_password(email, password)
        except (InvalidCredentials, AccountDisabled) as exc:
            await self._audit.record(
                LoginAction.LOGIN,
                success=False,
                email=(email or "")[:256],
                ip=ip,
                device_info=device_info,
                platform=platform,
                failure_reason=exc.code,
            )
            raise
        return await self._open(user, platform, device_info=device_info, ip=ip, timezone=timezone)

    async def login_federated(
        self,
        grant: str,
        platform: Platform | str,
        *,
        device_info: str | None = None,
        ip: str | None = None,
        timezone: str | None = None,
    ) -> LoginResult:
        platform = Platform.parse(platform)
        try:
            user = await self._credentials.verify_federated(grant)
        except (InvalidCredentials, AccountDisabled) as exc:
            await self._audit.record(
                LoginAction.LOGIN,
                success=False,
                ip=ip,
                device_info=device_info,
                platform=platform,
                failure_reason=exc.code,
            )
            raise
        return await self._open(user, platform, device_info=device_info, ip=ip, timezone=timezone)

    async def _open(
        self,
        user: UserIdentity,
        platform: Platform,
        *,
        device_info: str | None,
        ip: str | None,
        timezone: str | None,
    ) -> LoginResult:
        def audit(db, session: SessionSnapshot) -> None:
            self._audit.add(
                db,
                LoginAction.LOGIN,
                success=True,
                user_id=user.id,
                session_id=session.id,
                email=user.email,
                ip=session.ip_address,
                device_info=session.device_info,
                platform=platform,
            )

        opened = await self._sessions.create_session(
            user.id, platform, device_info, ip, timezone, audit=audit
        )
        return LoginResult(user=user, session=opened.session, tokens=opened.tokens)

    # ── Refresh ──────────────────────────────────────────────────────

    async def refresh(self, refresh_token: str, *, ip: str | None = None) -> LoginResult:
        claims = self._tokens.verify_refresh(refresh_token, check_expiry=False)
        if claims is None:
            raise TokenInvalid()

        session = await self._sessions.find_by_refresh_token(refresh_token)
        if session.user_id != claims.user_id:
            raise TokenInvalid()

        user = await self._credentials.get_identity(session.user_id)
        if user.status != UserStatus.ACTIVE:
            await self._sessions.terminate(session.id)
            raise AccountDisabled()

        def audit(db, rotated: SessionSnapshot) -> None:
            self._audit.add(
                db,
                LoginAction.REFRESH,
                success=True,
                user_id=user.id,
                session_id=rotated.id,
                ip=ip,
                device_info=rotated.device_info,
                platform=rotated.platform,
            )

        opened = await self._sessions.rotate(session.id, user, audit=audit)
        return LoginResult(user=user, session=opened.session, tokens=opened.tokens)

    # ── Per-request authentication ───────────────────────────────────

    async def authenticate(self, access_token: str) -> Principal:
        """
        Resolve a bearer token to the calling principal.

        TokenInvalid  → bad signature, malformed or expired token.
        SessionExpired → token is fine but its session is no longer active.
        """
        claims = self._tokens.verify(access_token)
        if claims is None:
            raise TokenInvalid()

        session = await self._sessions.get_active(claims.session_id)
        if session is None or session.user_id != claims.user_id:
            raise SessionExpired()

        try:
            user = await self._credentials.get_identity(claims.user_id)
        except UserNotFound:
            raise SessionExpired() from None
        if user.status != UserStatus.ACTIVE:
            raise AccountDisabled()

        return Principal(
            user_id=user.id,
            role=user.role,
            session_id=session.id,
            platform=session.platform,
            timezone=claims.timezone,
            email=user.email,
        )

    # ── Logout & sessions ────────────────────────────────────────────

    async def logout(self, principal: Principal, platform: Platform | str | None = None) -> int:
        """Sign out every session of the caller on their declared platform only."""
        platform = Platform.parse(platform) if platform is not None else principal.platform
        count = await self._sessions.invalidate_by_platform(principal.user_id, platform)
        await self._audit.record(
            LoginAction.LOGOUT,
            success=True,
            user_id=principal.user_id,
            session_id=principal.session_id,
            platform=platform,
        )
        return count

    async def list_sessions(self, principal: Principal) -> list[PlatformSessions]:
        sessions = await self._sessions.find_active_by_user(principal.user_id)
        grouped: list[PlatformSessions] = []
        for platform in Platform:
            on_platform = [s for s in sessions if s.platform == platform]
            if not on_platform:
                continue
            current = next((s.id for s in on_platform if s.id == principal.session_id), None)
            grouped.append(
                PlatformSessions(platform=platform, sessions=on_platform, current_session_id=current)
            )
        return grouped

    # ── Password reset ───────────────────────────────────────────────

    async def request_password_reset(self, email: str) -> None:
        """
        Email a one-time code.  Unknown or inactive addresses succeed
        silently so the endpoint cannot be used to probe for accounts.
        """
        email = normalize_email(email)
        attempts = await self._cache.incr(CacheKeys.reset_cooldown(email), settings.RESET_COOLDOWN_SECONDS)
        if attempts > 1:
            raise TooManyRequests()

        now = self._clock()
        code = None
        async with transaction(self._sf) as db:
            user = await get_user_by_email(email, db)
            if user is not None and user.status == UserStatus.ACTIVE:
                code = generate_reset_code()
                db.add(
                    PasswordResetCode(
                        user_id=user.id,
                        code_hash=hash_token(code),
                        expires_at=now + timedelta(seconds=settings.RESET_CODE_TTL_SECONDS),
                        created_at=now,
                        updated_at=now,
                    )
                )
                full_name = user.full_name

        if code is None:
            logger.info("Password reset requested for unknown or inactive address")
            return
        self._notifications.notify(
            email,
            "reset_password",
            {
                "email": email,
                "full_name": full_name,
                "code": code,
                "expires_minutes": settings.RESET_CODE_TTL_SECONDS // 60,
            },
        )

    async def reset_password(self, email: str, code: str, new_password: str) -> None:
        email = normalize_email(email)
        check_password_strength(new_password)
        now = self._clock()

        async with transaction(self._sf) as db:
            user = (
                await db.execute(select(User).where(User.email == email).with_for_update())
            ).scalar_one_or_none()
            if user is None or user.status != UserStatus.ACTIVE:
                raise InvalidResetCode()
            row = (
                await db.execute(
                    select(PasswordResetCode)
                    .where(
                        PasswordResetCode.user_id == user.id,
                        PasswordResetCode.consumed_at.is_(None),
                    )
                    .order_by(PasswordResetCode.created_at.desc())
                    .limit(1)
                )
            ).scalar_one_or_none()
            if row is None or now > row.expires_at or not tokens_match(str(code or ""), row.code_hash):
                raise InvalidResetCode()

            row.consumed_at = now
            user.password_hash = self._hasher.hash(new_password)
            ids = await deactivate_user_sessions(user.id, db)
            user_id = user.id

        await self._sessions.evict(user_id, ids)
        await self._credentials.forget(user_id)
        logger.info("Password reset for %s; %d session(s) signed out", user_id, len(ids))

    # ── Deactivation ─────────────────────────────────────────────────

    async def deactivate_account(
        self,
        user_id: uuid.UUID,
        reason: str | None = None,
        *,
        template_key: str = "account_deactivation",
    ) -> UserIdentity:
        """
        Soft-delete into the Deactivated state: sessions signed out, any
        roster seat released, former address kept in `deleted_email`.
        """
        now = self._clock()
        async with transaction(self._sf) as db:
            user = (
                await db.execute(select(User).where(User.id == user_id).with_for_update())
            ).scalar_one_or_none()
            if user is None or user.status == UserStatus.DEACTIVATED:
                raise UserNotFound()
            if user.is_protected:
                raise ProtectedAccount()

            membership = await release_membership(user_id, db, now)
            released = MemberSnapshot.model_validate(membership) if membership is not None else None
            former_email = user.email
            user.deactivate(reason, now)
            ids = await deactivate_user_sessions(user_id, db)
            identity = UserIdentity.model_validate(user)

        await self._sessions.evict(user_id, ids)
        await self._credentials.forget(user_id)
        if released is not None:
            await self._roster.forget_membership(released)
        logger.info("Account %s deactivated (%d session(s) signed out)", user_id, len(ids))
        self._notifications.notify(former_email, template_key, {"reason": reason or ""})
        return identity
