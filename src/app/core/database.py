"""Async SQLAlchemy engine, declarative base, and session factory.

Provides:
- Base: Declarative base for all lifecycle tables
- get_session(): Async generator yielding an AsyncSession, used as the
  ``session_factory`` injected into every repository
- init_db() / close_db(): Startup and shutdown hooks for the FastAPI lifespan
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Iterator
from contextlib import contextmanager

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.app.config import get_settings
from src.app.core.errors import NotFoundError, PersistenceError

logger = structlog.get_logger(__name__)

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=10,
            max_overflow=5,
            pool_pre_ping=True,
            echo=False,
        )
    return _engine


# ── Declarative Base ────────────────────────────────────────────────────────


class Base(DeclarativeBase):
    """Base class for deal, proposal, contract, firm offer and project models."""


# ── Session Factory ─────────────────────────────────────────────────────────


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession bound to the shared engine."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


# ── Repository Helpers ──────────────────────────────────────────────────────


@contextmanager
def persistence_guard(operation: str) -> Iterator[None]:
    """Translate SQLAlchemy failures into PersistenceError.

    The driver message is kept on ``PersistenceError.detail`` for operators
    and logged here; it is never returned to API callers.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("database.operation_failed", operation=operation, error=str(exc))
        raise PersistenceError(
            f"Database operation failed: {operation}", detail=str(exc)
        ) from exc


def parse_uuid(value: str | uuid.UUID, entity: str) -> uuid.UUID:
    """Parse an id from a URL or payload; malformed ids resolve to nothing."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise NotFoundError(entity, str(value)) from exc


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db() -> None:
    """Create lifecycle tables if they don't exist.

    Alembic owns the schema in deployed environments; this keeps local
    development and fresh databases usable without running migrations.
    """
    # Import models so they register on Base.metadata
    from src.app.contracts import models as _contracts  # noqa: F401
    from src.app.deals import models as _deals  # noqa: F401
    from src.app.firm_offers import models as _firm_offers  # noqa: F401
    from src.app.projects import models as _projects  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
