"""Database connection management using SQLModel on an async engine."""

import ssl
from typing import AsyncGenerator, Optional
from urllib.parse import urlparse, urlunparse

from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.config.settings import settings
from app.config.logger import app_logger
from app.services.exceptions import PersistenceFailure

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


def get_db_url() -> str:
    """Get database URL for SQLAlchemy with an async driver."""
    db_url = settings.effective_database_url
    if not db_url:
        raise ValueError("DATABASE_URL not configured")
    if db_url.startswith("sqlite"):
        if db_url.startswith("sqlite://"):
            return db_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return db_url

    # For Postgres URLs, normalize and strip sslmode (asyncpg handles SSL via connect_args)
    parsed = urlparse(db_url)
    query_parts = [p for p in parsed.query.split("&") if not p.startswith("sslmode=") and p]
    query = "&".join(query_parts)
    clean_url = urlunparse(
        (
            parsed.scheme,
            parsed.netloc,
            parsed.path,
            parsed.params,
            query,
            parsed.fragment,
        )
    )

    if clean_url.startswith("postgresql://"):
        clean_url = clean_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    elif clean_url.startswith("postgres://"):
        clean_url = clean_url.replace("postgres://", "postgresql+asyncpg://", 1)

    return clean_url


def create_engine_for_url(db_url: str) -> AsyncEngine:
    """Build an async engine; pool sizing and SSL only apply to Postgres."""
    if db_url.startswith("postgresql+asyncpg://"):
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        return create_async_engine(
            db_url,
            echo=False,
            pool_size=5,
            max_overflow=0,
            connect_args={"ssl": ssl_context},
        )
    return create_async_engine(db_url, echo=False)


async def create_tables(engine: AsyncEngine) -> None:
    # Registers every table on SQLModel.metadata
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def init_db() -> None:
    """Initialize the database engine and create tables.

    Raises:
        PersistenceFailure: If the sync state store cannot be reached.
    """
    global _engine, _session_maker

    if _engine is not None:
        return

    try:
        db_url = get_db_url()
        app_logger.info("Initializing database connection")
        engine = create_engine_for_url(db_url)
        await create_tables(engine)
    except (ValueError, SQLAlchemyError, OSError) as e:
        app_logger.error(f"Failed to initialize database: {e}")
        app_logger.error(f"Error type: {type(e).__name__}")
        raise PersistenceFailure(f"Sync state store unavailable: {e}", cause=e) from e

    _engine = engine
    _session_maker = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    app_logger.info("Database initialized successfully")


async def close_db() -> None:
    """Close the database engine."""
    global _engine, _session_maker

    if _engine:
        await _engine.dispose()
        _engine = None
        _session_maker = None
        app_logger.info("Database connection closed")


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get a database session."""
    if not _session_maker:
        from fastapi import HTTPException
        raise HTTPException(
            status_code=503,
            detail="Database unavailable. The sync state store has not been initialized.",
        )

    async with _session_maker() as session:
        yield session


@asynccontextmanager
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Async context manager for batch runs outside a request."""
    if not _session_maker:
        raise PersistenceFailure("Database not initialized. Call init_db() first.")

    async with _session_maker() as session:
        yield session


async def ping_database() -> tuple[bool, str]:
    """Run a lightweight health query against the database."""
    if not _engine or not _session_maker:
        return False, "Database not initialized"

    try:
        from sqlalchemy import text
        async with _session_maker() as session:
            result = await session.execute(text("SELECT 1"))
            row = result.scalar()
            if row == 1:
                return True, "Database connection healthy"
            return False, f"Unexpected response: {row}"
    except Exception as e:
        return False, f"Database query failed: {str(e)}"
