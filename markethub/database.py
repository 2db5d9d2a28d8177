"""
Database engine construction and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - Base: Declarative base class that all ORM models inherit from
  - create_engine(): builds the async engine (connection pool) for a URL
  - create_session_factory(): AsyncSession factory bound to an engine

Architecture note:
  Unlike a module-level engine, nothing here is created at import time.
  The engine belongs to the SqlStorage instance built in the application
  lifespan, so its lifecycle is tied to process start/stop and tests can
  build as many isolated engines as they like. Moving from SQLite to
  PostgreSQL only requires changing DATABASE_URL (asyncpg driver).
"""

from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models inherit from this class, which provides metadata tracking
    for create_all() at startup and for Alembic migrations.
    """
    pass


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create the async engine for a database URL.

    For file-backed SQLite the parent directory is created first, so the
    default ./data/markethub.db works on a fresh checkout.
    echo=True logs all SQL statements — invaluable for development.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_async_engine(database_url, echo=echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory: creates new AsyncSession instances.

    expire_on_commit=False prevents lazy-load errors after commit —
    without this, accessing attributes on a committed object would trigger
    a synchronous DB call, which fails in async context.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
