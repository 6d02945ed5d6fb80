"""
Database engine, session factory & unit-of-work helper.

Nothing here is a process-wide singleton: the application factory (or a
test) builds an engine, hands the resulting `async_sessionmaker` to each
kernel component, and disposes the engine on shutdown.

`transaction()` is the only way services write.  It commits on success,
rolls back on any exception, and converts raw SQLAlchemy failures into
`StorageError` so callers never see driver exceptions.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from licensehub.core.config import settings
from licensehub.core.exceptions import KernelError, StorageError

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


def create_engine(url: str | None = None, **kwargs) -> AsyncEngine:
    return create_async_engine(url or settings.DATABASE_URL, echo=False, **kwargs)


def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(engine, expire_on_commit=False)


@asynccontextmanager
async def transaction(session_factory: SessionFactory) -> AsyncIterator[AsyncSession]:
    """
    Open a session, begin a transaction, and commit when the block exits.

    Kernel errors raised inside the block roll the transaction back and
    propagate unchanged; anything SQLAlchemy raises becomes StorageError.
    """
    try:
        async with session_factory() as db:
            async with db.begin():
                yield db
    except KernelError:
        raise
    except SQLAlchemyError as exc:
        logger.error("Datastore failure: %s", exc.__class__.__name__)
        raise StorageError() from exc


@asynccontextmanager
async def reading(session_factory: SessionFactory) -> AsyncIterator[AsyncSession]:
    """Read-only counterpart of `transaction()`: same error mapping, no commit."""
    try:
        async with session_factory() as db:
            yield db
    except KernelError:
        raise
    except SQLAlchemyError as exc:
        logger.error("Datastore failure: %s", exc.__class__.__name__)
        raise StorageError() from exc

