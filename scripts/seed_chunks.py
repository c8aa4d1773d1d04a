"""
Utility script for loading a JSONL chunk dump into chunk storage and the vector index.

Two modes:
- Default (dry-run): summarize the chunks file (counts by session and
  document), no writes.
- Apply mode (--apply): insert chunks into the database (the FTS triggers
  index them) and embed them into the persisted vector index.

Each line is {"id", "document_id", "session_id", "text"}.
"""

from __future__ import annotations

import argparse
import asyncio
from collections import Counter
from pathlib import Path
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdfchat.db.models import Document
from pdfchat.db.schema import create_schema
from pdfchat.db.session import DATABASE_URL, make_engine, make_sessionmaker
from pdfchat.rag import ChunkRecord, InMemoryVectorIndex, SqlChunkStore, create_embedder, load_chunks
from pdfchat.rag.dense import VECTOR_INDEX_PATH, index_chunks
from pdfchat.rag.index import CHUNKS_PATH


def summarize_chunks(chunks: List[ChunkRecord]) -> None:
    total = len(chunks)
    print(f"Loaded {total} chunks")
    if total == 0:
        return

    by_session: Counter = Counter(c.session_id for c in chunks)
    by_document: Counter = Counter(c.document_id for c in chunks)

    print("\nBy session:")
    for session_id, count in sorted(by_session.items(), key=lambda x: x[0]):
        pct = (count / total) * 100
        print(f"  {session_id:36s}: {count:5d} ({pct:5.1f}%)")

    print(f"\nDocuments: {len(by_document)}")


async def _insert_rows(sessionmaker: async_sessionmaker[AsyncSession], chunks: List[ChunkRecord]) -> int:
    """Create missing Document rows, then insert chunks; returns the number of new chunks."""
    async with sessionmaker() as session:
        doc_sessions = {c.document_id: c.session_id for c in chunks if c.document_id}
        result = await session.execute(select(Document.id).where(Document.id.in_(list(doc_sessions))))
        existing = set(result.scalars().all())
        for doc_id, session_id in doc_sessions.items():
            if doc_id not in existing:
                session.add(Document(id=doc_id, session_id=session_id))
        await session.commit()

    return await SqlChunkStore(sessionmaker).add_chunks(chunks)


async def apply_seed(chunks: List[ChunkRecord], index_path: Path) -> None:
    """Insert documents and chunks, then embed every chunk into the vector index."""
    if not chunks:
        print("No chunks to seed.")
        return

    engine = make_engine(DATABASE_URL)
    try:
        await create_schema(engine)
        inserted = await _insert_rows(make_sessionmaker(engine), chunks)
    finally:
        await engine.dispose()

    index = InMemoryVectorIndex.load(index_path)
    embedder = create_embedder()
    embedded = await index_chunks(embedder, index, chunks)
    index.save(index_path)

    print("\nSeeding complete.")
    print(f"  Inserted chunks:       {inserted}")
    print(f"  Skipped existing:      {len(chunks) - inserted}")
    print(f"  Embedded vectors:      {embedded} (index size {len(index)})")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--chunks", type=Path, default=CHUNKS_PATH, help="JSONL chunk dump")
    parser.add_argument("--session-id", default=None, help="Only seed chunks of this session")
    parser.add_argument("--index-path", type=Path, default=VECTOR_INDEX_PATH, help="Vector index .npz path")
    parser.add_argument("--apply", action="store_true", help="Write to the database and vector index")
    args = parser.parse_args()

    chunks = load_chunks(args.chunks, session_id=args.session_id)
    summarize_chunks(chunks)
    if args.apply:
        asyncio.run(apply_seed(chunks, args.index_path))
    else:
        print("\nDry run; pass --apply to write.")


if __name__ == "__main__":
    main()
