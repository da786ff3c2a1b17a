"""
Database connection and session management.

The worker builds one async engine per queue batch and hands its session
factory to every concurrent task of that batch. Each repository call opens
its own short-lived session, so tasks share the pool but never a session.
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
import logging

from backend.core.config import Settings

logger = logging.getLogger(__name__)


def to_async_url(database_url: str) -> str:
    """
    Convert a PostgreSQL URL to its asyncpg form.

    postgres:// and postgresql:// both become postgresql+asyncpg://.
    URLs that already name a driver are returned unchanged.
    """
    # Railway and Heroku sometimes hand out postgres://
    if database_url.startswith('postgres://'):
        database_url = database_url.replace('postgres://', 'postgresql://', 1)
    if database_url.startswith('postgresql://'):
        database_url = database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return database_url


def create_engine_for(settings: Settings) -> AsyncEngine:
    """
    Create the async engine used by one batch.

    Args:
        settings: Application settings (database_url, pool size, timeout)

    Returns:
        AsyncEngine with pre-ping enabled
    """
    url = to_async_url(settings.database_url)
    engine_kwargs = {}
    if url.startswith('postgresql+asyncpg://'):
        engine_kwargs = {
            'pool_size': settings.database_pool_size,
            'max_overflow': 0,
            'connect_args': {'timeout': settings.database_connect_timeout},
        }

    # SQLite (dev and tests) keeps the driver's default pool
    engine = create_async_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        echo=False,
        **engine_kwargs,
    )
    logger.debug(f"Database engine created: {url.split('@')[1] if '@' in url else 'local'}")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the batch engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
