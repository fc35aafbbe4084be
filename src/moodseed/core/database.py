"""Database session factory setup."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel


def setup_db_session(db_url: str, pool_size: int = 20) -> async_sessionmaker[AsyncSession]:
    """Create async database session factory.

    Args:
        db_url: Database URL (postgresql+psycopg://... or sqlite+aiosqlite://...)
        pool_size: Maximum number of connections in the pool (ignored for SQLite)

    Returns:
        Async session factory for creating database sessions
    """
    if db_url.startswith("sqlite"):
        # SQLite has no server-side pool; a busy timeout lets concurrent writers queue up
        engine = create_async_engine(
            db_url,
            connect_args={"timeout": 30},
            echo=False,
        )
    else:
        engine = create_async_engine(
            db_url,
            pool_size=pool_size,
            max_overflow=0,  # No overflow beyond pool_size
            pool_pre_ping=True,  # Verify connections before using
            echo=False,  # Don't log SQL queries (use structlog instead)
        )

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Checkpointed records stay usable after commit
    )

    return session_factory


async def create_tables(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Create all tables registered on SQLModel metadata.

    Used for local SQLite databases and tests; PostgreSQL deployments run
    Alembic migrations instead.
    """
    import moodseed.models  # noqa: F401  (registers tables on the metadata)

    engine = session_factory.kw["bind"]
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
