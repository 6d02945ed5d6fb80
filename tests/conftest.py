from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer
from sqlalchemy import update

from licensehub.core.config import Settings
from licensehub.core.database import create_engine, transaction
from licensehub.core.exceptions import InvalidCredentials
from licensehub.core.security import BcryptPasswordHasher, FederatedIdentity
from licensehub.kernel import build_kernel
from licensehub.models import Base, User, UserRole

PASSWORD = "correct-horse-9"


class FrozenClock:
    """Injectable clock; tests move time explicitly."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []

    async def send(self, recipient: str, template_key: str, params: dict[str, Any]) -> None:
        self.sent.append((recipient, template_key, params))

    def of(self, template_key: str) -> list[tuple[str, dict[str, Any]]]:
        return [(to, params) for to, key, params in self.sent if key == template_key]


class StubIdentityProvider:
    def __init__(self) -> None:
        self.grants: dict[str, FederatedIdentity] = {}

    async def exchange(self, grant: str) -> FederatedIdentity:
        if grant not in self.grants:
            raise InvalidCredentials("Federated grant rejected")
        return self.grants[grant]


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def identity_provider() -> StubIdentityProvider:
    return StubIdentityProvider()


@pytest.fixture
def config(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'licensehub.db'}",
        SECRET_KEY="test-access-secret",
        REFRESH_SECRET_KEY="test-refresh-secret",
        BCRYPT_ROUNDS=4,
        SUPERADMIN_EMAIL="root@example.com",
        TRIAL_DAYS=15,
    )


@pytest_asyncio.fixture
async def redis():
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True)
    yield client


@pytest_asyncio.fixture
async def kernel(config, redis, notifier, identity_provider, clock):
    engine = create_engine(config.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    kernel = build_kernel(
        config=config,
        engine=engine,
        redis=redis,
        notifier=notifier,
        hasher=BcryptPasswordHasher(4),
        identity_provider=identity_provider,
        clock=clock,
    )
    yield kernel
    await kernel.close()


@pytest.fixture
def register(kernel):
    async def _register(email: str, password: str = PASSWORD, full_name: str = ""):
        return await kernel.credentials.register(email, password, full_name or email.split("@")[0])

    return _register


@pytest.fixture
def subscriber(kernel, register):
    """Register a user and give them an active license."""

    async def _subscriber(email: str, seats: int = 3, duration: str = "month"):
        user = await register(email)
        await kernel.ledger.create_license(user.id, seats, duration)
        return user

    return _subscriber


@pytest.fixture
def set_role(kernel):
    async def _set_role(user_id, role: UserRole) -> None:
        async with transaction(kernel.session_factory) as db:
            await db.execute(update(User).where(User.id == user_id).values(role=role))
        await kernel.credentials.forget(user_id)

    return _set_role
