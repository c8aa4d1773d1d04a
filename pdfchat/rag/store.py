"""
Chunk storage lookup backed by the document_chunks table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdfchat.db.models import DocumentChunk

from .index import ChunkRecord


@dataclass
class SqlChunkStore:
    """ChunkStore reading chunks through an async SQLAlchemy session."""

    sessionmaker: async_sessionmaker[AsyncSession]

    async def get_chunks_by_ids(self, ids: Sequence[str]) -> List[ChunkRecord]:
        """Fetch chunks in one query. Unknown ids are absent; order is unspecified."""
        if not ids:
            return []
        stmt = select(DocumentChunk).where(DocumentChunk.id.in_(set(ids)))
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()
        return [
            ChunkRecord(
                id=row.id,
                document_id=row.document_id or "",
                session_id=row.session_id or "",
                text=row.text,
            )
            for row in rows
        ]

    async def add_chunks(self, chunks: Sequence[ChunkRecord]) -> int:
        """Insert chunks that are not stored yet; the FTS triggers index them."""
        if not chunks:
            return 0
        async with self.sessionmaker() as session:
            existing = await session.execute(
                select(DocumentChunk.id).where(DocumentChunk.id.in_([c.id for c in chunks]))
            )
            known = set(existing.scalars().all())
            inserted = 0
            for chunk in chunks:
                if chunk.id in known:
                    continue
                session.add(
                    DocumentChunk(
                        id=chunk.id,
                        document_id=chunk.document_id or None,
                        text=chunk.text,
                        session_id=chunk.session_id,
                    )
                )
                known.add(chunk.id)
                inserted += 1
            if inserted:
                await session.commit()
        return inserted
