"""Async engine and session factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from bakeriq_api.core.settings import settings

engine = create_async_engine(settings.database_url, future=True, pool_pre_ping=True)

async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""

    async with async_session() as session:
        yield session


@asynccontextmanager
async def discarding_session_factory(
    bind: AsyncEngine | None = None,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Yield a session factory whose writes are all rolled back on exit.

    Sessions join one outer transaction and their ``commit()`` calls only
    release savepoints, so code that commits as it goes leaves nothing behind.
    """

    async with (bind or engine).connect() as connection:
        transaction = await connection.begin()
        try:
            yield async_sessionmaker(
                bind=connection,
                expire_on_commit=False,
                class_=AsyncSession,
                join_transaction_mode="create_savepoint",
            )
        finally:
            await transaction.rollback()
