"""Async engine creation for runwatch."""

import os

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from runwatch.db.exceptions import ConfigurationError

DATABASE_URL_ENV = "RUNWATCH_DATABASE_URL"


def normalize_url(url: str) -> str:
    """Ensure URL uses an async driver (asyncpg for PostgreSQL, aiosqlite for SQLite)."""
    u = url.strip()
    if u.startswith("postgresql://"):
        return "postgresql+asyncpg://" + u[len("postgresql://") :]
    if u.startswith("postgresql+asyncpg://"):
        return u
    if u.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + u[len("sqlite://") :]
    if u.startswith("sqlite+aiosqlite://"):
        return u
    raise ConfigurationError(
        "Database URL must be PostgreSQL (postgresql+asyncpg://) or SQLite (sqlite+aiosqlite://)."
    )


def _get_url(database_url: str | None) -> str:
    """Resolve database URL from argument or environment."""
    if database_url is not None and database_url.strip():
        return normalize_url(database_url)
    url = os.environ.get(DATABASE_URL_ENV)
    if not url or not url.strip():
        raise ConfigurationError(
            f"Database URL not set. Set {DATABASE_URL_ENV} or database.url in runwatch.yaml."
        )
    return normalize_url(url)


def create_engine(
    database_url: str | None = None,
    *,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_timeout: float = 30.0,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
    echo: bool = False,
) -> AsyncEngine:
    """Create an async database engine.

    Pool options only apply to PostgreSQL; SQLite uses the dialect's default pool.

    Args:
        database_url: Database URL. If None, uses RUNWATCH_DATABASE_URL.
        pool_size: Connection pool size.
        max_overflow: Extra connections beyond pool_size when busy.
        pool_timeout: Seconds to wait for a connection.
        pool_recycle: Seconds after which connections are recycled.
        pool_pre_ping: Ping connections before use.
        echo: Log SQL (for development).

    Raises:
        ConfigurationError: URL missing or not a supported async driver.
    """
    url = _get_url(database_url)
    if url.startswith("sqlite+aiosqlite://"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
        echo=echo,
    )
