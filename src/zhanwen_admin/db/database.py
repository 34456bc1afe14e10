"""Database connection and session management."""

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from zhanwen_admin.settings import settings


def _engine_options(url: str) -> dict:
    """In-memory SQLite must share one connection across the pool."""
    if url.startswith("sqlite") and ":memory:" in url:
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {}


def sync_url(url: str) -> str:
    """Map an async driver URL onto its sync counterpart for Celery workers."""
    if url.startswith("postgresql+asyncpg://"):
        return url.replace("postgresql+asyncpg://", "postgresql+psycopg://", 1)
    if url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite+aiosqlite://", "sqlite://", 1)
    return url


# Create async engine for FastAPI
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
    **_engine_options(settings.database_url),
)

# Create async session factory for FastAPI
AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# Create sync engine for Celery workers
sync_database_url = sync_url(settings.database_url)
if sync_database_url.startswith("postgresql"):
    sync_engine = create_engine(
        sync_database_url,
        echo=settings.debug,
        pool_pre_ping=True,  # Verify connections before using them
        pool_recycle=3600,  # Recycle connections after 1 hour
        connect_args={"options": "-c timezone=utc"},  # Ensure UTC timezone
    )
else:
    sync_engine = create_engine(
        sync_database_url, echo=settings.debug, **_engine_options(sync_database_url)
    )

# Create sync session factory for Celery workers
SyncSessionLocal = sessionmaker(
    sync_engine,
    class_=Session,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Base class for models
Base = declarative_base()


async def get_db() -> AsyncSession:
    """Get database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database tables."""
    # Register every table on Base.metadata before creating them
    from zhanwen_admin import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
