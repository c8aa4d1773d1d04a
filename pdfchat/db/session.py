from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def _get_database_url() -> str:
    """
    Return the async database URL for chunk storage and the full-text index.

    Falls back to a local SQLite file so tests and local development can
    run with minimal configuration. The full-text index needs SQLite FTS5.
    """
    return os.getenv(
        "DATABASE_URL",
        "sqlite+aiosqlite:///./data/pdfchat.db",
    )


def make_engine(url: str) -> AsyncEngine:
    """Create an async engine, making sure a SQLite file's directory exists."""
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database not in (None, "", ":memory:"):
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    return create_async_engine(url, echo=False, future=True)


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        class_=AsyncSession,
    )


DATABASE_URL = _get_database_url()
