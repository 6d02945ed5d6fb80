"""
Kernel wiring.

Builds every service from explicit inputs (engine, cache client,
notifier, hasher, identity provider, clock).  There are no module-level
database or cache clients: the application factory builds one `Kernel`
and stores it on `app.state`; tests build their own.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from licensehub.core.cache import CacheStore
from licensehub.core.config import Settings, settings as default_settings
from licensehub.core.database import SessionFactory, create_engine, create_session_factory
from licensehub.core.security import BcryptPasswordHasher, IdentityProvider, Notifier, PasswordHasher
from licensehub.models.base import utcnow
from licensehub.services.admin_service import AdminService
from licensehub.services.audit_service import LoginAuditLog
from licensehub.services.auth_service import AuthService
from licensehub.services.credential_service import CredentialVerifier
from licensehub.services.email_service import NotificationDispatcher, SmtpNotifier
from licensehub.services.license_request_service import LicenseRequestService
from licensehub.services.license_service import LicenseLedger
from licensehub.services.member_service import MemberRoster
from licensehub.services.permission_service import PermissionRegistry
from licensehub.services.session_service import SessionStore
from licensehub.services.token_service import TokenService


@dataclass
class Kernel:
    settings: Settings
    engine: AsyncEngine
    session_factory: SessionFactory
    cache: CacheStore
    notifications: NotificationDispatcher
    hasher: PasswordHasher
    tokens: TokenService
    sessions: SessionStore
    credentials: CredentialVerifier
    ledger: LicenseLedger
    roster: MemberRoster
    permissions: PermissionRegistry
    license_requests: LicenseRequestService
    audit: LoginAuditLog
    auth: AuthService
    admin: AdminService

    async def close(self) -> None:
        await self.notifications.drain()
        await self.cache.close()
        await self.engine.dispose()


def build_kernel(
    *,
    config: Settings | None = None,
    engine: AsyncEngine | None = None,
    redis: Redis | None = None,
    notifier: Notifier | None = None,
    hasher: PasswordHasher | None = None,
    identity_provider: IdentityProvider | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Kernel:
    config = config or default_settings
    engine = engine or create_engine(config.DATABASE_URL)
    session_factory = create_session_factory(engine)
    if redis is not None:
        cache = CacheStore(redis, config.CACHE_OP_TIMEOUT_SECONDS)
    else:
        cache = CacheStore.from_url(config.REDIS_URL, config.CACHE_OP_TIMEOUT_SECONDS)
    notifications = NotificationDispatcher(notifier or SmtpNotifier())
    hasher = hasher or BcryptPasswordHasher(config.BCRYPT_ROUNDS)

    tokens = TokenService(
        secret_key=config.SECRET_KEY,
        refresh_secret_key=config.REFRESH_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
        access_ttl=config.ACCESS_TOKEN_EXPIRE_SECONDS,
        refresh_ttl=config.REFRESH_TOKEN_EXPIRE_SECONDS,
        clock=clock,
    )
    sessions = SessionStore(
        session_factory, cache, tokens, clock=clock, cache_ttl=config.SESSION_CACHE_TTL_SECONDS
    )
    credentials = CredentialVerifier(
        session_factory,
        cache,
        hasher,
        notifications,
        identity_provider=identity_provider,
        clock=clock,
        cache_ttl=config.ENTITY_CACHE_TTL_SECONDS,
    )
    ledger = LicenseLedger(
        session_factory,
        cache,
        clock=clock,
        cache_ttl=config.ENTITY_CACHE_TTL_SECONDS,
        trial_days=config.TRIAL_DAYS,
    )
    roster = MemberRoster(session_factory, cache, ledger, clock=clock, cache_ttl=config.ENTITY_CACHE_TTL_SECONDS)
    permissions = PermissionRegistry(
        session_factory, cache, ledger, clock=clock, cache_ttl=config.ENTITY_CACHE_TTL_SECONDS
    )
    license_requests = LicenseRequestService(
        session_factory,
        cache,
        notifications,
        clock=clock,
        cache_ttl=config.ENTITY_CACHE_TTL_SECONDS,
        superadmin_email=config.SUPERADMIN_EMAIL,
    )
    audit = LoginAuditLog(session_factory)
    auth = AuthService(
        session_factory,
        cache,
        credentials=credentials,
        sessions=sessions,
        tokens=tokens,
        roster=roster,
        audit=audit,
        hasher=hasher,
        notifications=notifications,
        clock=clock,
    )
    admin = AdminService(session_factory, credentials=credentials, sessions=sessions, auth=auth)

    return Kernel(
        settings=config,
        engine=engine,
        session_factory=session_factory,
        cache=cache,
        notifications=notifications,
        hasher=hasher,
        tokens=tokens,
        sessions=sessions,
        credentials=credentials,
        ledger=ledger,
        roster=roster,
        permissions=permissions,
        license_requests=license_requests,
        audit=audit,
        auth=auth,
        admin=admin,
    )
