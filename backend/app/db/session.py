"""
Database session management.

WHY: Async database sessions match the async scheduler job and FastAPI app.
The escalation dispatcher opens one session per ticket from the session
factory, so each ticket's changes commit independently.
"""

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.core.config import settings


# Create async engine
# WHY: pool_pre_ping recycles stale connections between scheduler runs
engine = create_async_engine(
    settings.async_database_url,
    echo=settings.DEBUG,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
)

# Create session factory
# WHY: expire_on_commit=False keeps ticket attributes readable after the
# per-ticket commit, when notification payloads are built.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

