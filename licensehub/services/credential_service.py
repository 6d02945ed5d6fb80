"""
Credential verifier — turns credentials into a canonical user identity.

Handles:
- Email/password verification
- Federated verification through an injected `IdentityProvider`
- Registration (with invite-placeholder reconciliation)
- Cached identity lookup & profile updates

Authentication failures are deliberately generic: unknown email, wrong
password and password-less accounts all raise the same
`InvalidCredentials`.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from licensehub.core.cache import CacheKeys, CacheStore
from licensehub.core.config import settings
from licensehub.core.database import SessionFactory, reading, transaction
from licensehub.core.exceptions import (
    AccountDisabled,
    EmailAlreadyRegistered,
    InvalidCredentials,
    UserNotFound,
    ValidationFailed,
)
from licensehub.core.security import FederatedIdentity, IdentityProvider, PasswordHasher
from licensehub.models.base import utcnow
from licensehub.models.user import User, UserRole, UserStatus
from licensehub.services.email_service import NotificationDispatcher
from licensehub.services.member_service import normalize_email, reconcile_invites
from licensehub.snapshots import UserIdentity

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def check_password_strength(password: object) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def check_timezone(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value or len(value) > 64:
        raise ValidationFailed("Invalid timezone")
    return value


async def get_user_by_email(email: str, db: AsyncSession) -> User | None:
    stmt = select(User).where(User.email == email)
    return (await db.execute(stmt)).scalar_one_or_none()


class CredentialVerifier:
    def __init__(
        self,
        session_factory: SessionFactory,
        cache: CacheStore,
        hasher: PasswordHasher,
        notifications: NotificationDispatcher,
        *,
        identity_provider: IdentityProvider | None = None,
        clock: Callable[[], datetime] = utcnow,
        cache_ttl: int | None = None,
    ) -> None:
        self._sf = session_factory
        self._cache = cache
        self._hasher = hasher
        self._notifications = notifications
        self._idp = identity_provider
        self._clock = clock
        self._ttl = cache_ttl or settings.ENTITY_CACHE_TTL_SECONDS

    async def forget(self, user_id: uuid.UUID) -> None:
        await self._cache.delete(CacheKeys.user(user_id))

    # ── Verification ─────────────────────────────────────────────────

    async def verify_password(self, email: str, password: str) -> UserIdentity:
        try:
            email = normalize_email(email)
        except ValidationFailed:
            raise InvalidCredentials() from None

        async with transaction(self._sf) as db:
            user = await get_user_by_email(email, db)
            if user is None or not user.password_hash:
                raise InvalidCredentials()
            if not self._hasher.verify(password or "", user.password_hash):
                raise InvalidCredentials()
            if user.status != UserStatus.ACTIVE:
                raise AccountDisabled()
            user.last_login_at = self._clock()
            identity = UserIdentity.model_validate(user)
        await self.forget(identity.id)
        return identity

    async def verify_federated(self, grant: str) -> UserIdentity:
        """
        Exchange an external grant and resolve it to a local account:
        by external id, else by email (linking it), else a new
        password-less account.
        """
        if self._idp is None:
            raise InvalidCredentials("Federated login is not available")
        external: FederatedIdentity = await self._idp.exchange(grant)
        email = normalize_email(external.email)
        reconciled: list[uuid.UUID] = []
        created = False

        async with transaction(self._sf) as db:
            user = (
                await db.execute(select(User).where(User.federated_id == external.external_id))
            ).scalar_one_or_none()
            if user is None:
                user = await get_user_by_email(email, db)
                if user is not None:
                    user.federated_id = external.external_id
            if user is None:
                user = User(
                    email=email,
                    full_name=external.display_name or email,
                    federated_id=external.external_id,
                    role=UserRole.USER,
                    status=UserStatus.ACTIVE,
                )
                db.add(user)
                await db.flush()
                reconciled = await reconcile_invites(user.id, email, db)
                created = True
            if user.status != UserStatus.ACTIVE:
                raise AccountDisabled()
            user.last_login_at = self._clock()
            await db.flush()
            identity = UserIdentity.model_validate(user)

        if created:
            await self._after_register(identity, reconciled)
        else:
            await self.forget(identity.id)
        return identity

    # ── Registration ─────────────────────────────────────────────────

    async def register(
        self,
        email: str,
        password: str,
        full_name: str = "",
        timezone: str | None = None,
    ) -> UserIdentity:
        email = normalize_email(email)
        check_password_strength(password)
        timezone = check_timezone(timezone) or "UTC"

        async with transaction(self._sf) as db:
            if await get_user_by_email(email, db) is not None:
                raise EmailAlreadyRegistered()
            user = User(
                email=email,
                password_hash=self._hasher.hash(password),
                full_name=(full_name or "").strip(),
                timezone=timezone,
                role=UserRole.USER,
                status=UserStatus.ACTIVE,
            )
            db.add(user)
            try:
                await db.flush()
            except IntegrityError:
                # concurrent registration of the same address
                raise EmailAlreadyRegistered() from None
            reconciled = await reconcile_invites(user.id, email, db)
            identity = UserIdentity.model_validate(user)

        await self._after_register(identity, reconciled)
        return identity

    async def _after_register(self, identity: UserIdentity, reconciled: list[uuid.UUID]) -> None:
        for subscriber_id in reconciled:
            await self._cache.delete(*CacheKeys.roster_keys(subscriber_id, identity.id))
        if reconciled:
            logger.info("Linked %s to %d pending roster invite(s)", identity.email, len(reconciled))
        logger.info("User registered: %s", identity.email)
        self._notifications.notify(
            identity.email,
            "welcome",
            {"email": identity.email, "full_name": identity.full_name},
        )

    # ── Profile ──────────────────────────────────────────────────────

    async def get_identity(self, user_id: uuid.UUID) -> UserIdentity:
        key = CacheKeys.user(user_id)
        cached = await self._cache.get_json(key)
        if cached is not None:
            return UserIdentity.model_validate(cached)

        async with reading(self._sf) as db:
            user = await db.get(User, user_id)
            if user is None:
                raise UserNotFound()
            identity = UserIdentity.model_validate(user)
        await self._cache.set_json(key, identity.to_cache(), self._ttl)
        return identity

    async def update_profile(
        self,
        user_id: uuid.UUID,
        *,
        full_name: str | None = None,
        timezone: str | None = None,
    ) -> UserIdentity:
        timezone = check_timezone(timezone)
        async with transaction(self._sf) as db:
            user = await db.get(User, user_id, with_for_update=True)
            if user is None or user.status == UserStatus.DEACTIVATED:
                raise UserNotFound()
            if full_name is not None:
                user.full_name = full_name.strip()
            if timezone is not None:
                user.timezone = timezone
            await db.flush()
            identity = UserIdentity.model_validate(user)
        await self.forget(user_id)
        return identity
