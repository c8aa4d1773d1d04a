"""
Schema creation for chunk storage and its SQLite FTS5 full-text index.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from .models import Base

logger = logging.getLogger(__name__)

FTS_TABLE = "document_chunks_fts"

# The FTS table mirrors document_chunks; triggers keep it in sync on write.
_FTS_STATEMENTS = (
    f"""
    CREATE VIRTUAL TABLE IF NOT EXISTS {FTS_TABLE} USING fts5(
        id UNINDEXED,
        document_id UNINDEXED,
        text,
        session_id UNINDEXED
    )
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS document_chunks_ai
    AFTER INSERT ON document_chunks
    BEGIN
        INSERT INTO {FTS_TABLE}(id, document_id, text, session_id)
        VALUES (new.id, new.document_id, new.text, new.session_id);
    END
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS document_chunks_ad
    AFTER DELETE ON document_chunks
    BEGIN
        DELETE FROM {FTS_TABLE} WHERE id = old.id;
    END
    """,
    f"""
    CREATE TRIGGER IF NOT EXISTS document_chunks_au
    AFTER UPDATE ON document_chunks
    BEGIN
        DELETE FROM {FTS_TABLE} WHERE id = old.id;
        INSERT INTO {FTS_TABLE}(id, document_id, text, session_id)
        VALUES (new.id, new.document_id, new.text, new.session_id);
    END
    """,
)


async def create_schema(engine: AsyncEngine) -> None:
    """Create ORM tables plus the full-text table and its sync triggers."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if engine.dialect.name != "sqlite":
            logger.warning("Full-text index requires SQLite FTS5; skipping on %s", engine.dialect.name)
            return
        for statement in _FTS_STATEMENTS:
            await conn.execute(text(statement))
