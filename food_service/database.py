from contextlib import asynccontextmanager

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def create_database(database_url: str, **engine_options):
    """Build the process-wide engine and its session factory.

    The caller owns both: open them at startup, dispose the engine at shutdown.
    """
    engine = create_async_engine(database_url, **engine_options)
    return engine, make_sessionmaker(engine)


def make_sessionmaker(engine: AsyncEngine):
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine):
    # Register every table on Base.metadata before creating them
    from food_service import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session(request: Request):
    async with request.app.state.sessionmaker() as session:
        yield session


@asynccontextmanager
async def transaction(session: AsyncSession):
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
