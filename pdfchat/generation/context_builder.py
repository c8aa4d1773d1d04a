"""
Context assembly for answer generation.

Resolves fused chunk ids to text and formats them as numbered citation
blocks "[1]: ...", "[2]: ..." so the model can cite sources.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from pdfchat.rag.index import ChunkRecord
from pdfchat.rag.retriever import ChunkStore

logger = logging.getLogger(__name__)


def order_chunks(ids: Sequence[str], chunks: Sequence[ChunkRecord]) -> List[ChunkRecord]:
    """
    Put fetched chunks back into the caller's rank order.

    Ids with no fetched chunk are dropped; each id is emitted at most once.
    """
    by_id: Dict[str, ChunkRecord] = {c.id: c for c in chunks}
    ordered: List[ChunkRecord] = []
    seen: set[str] = set()
    for cid in ids:
        chunk = by_id.get(cid)
        if chunk is None or cid in seen:
            continue
        seen.add(cid)
        ordered.append(chunk)
    return ordered


def build_context(chunks: Sequence[ChunkRecord]) -> str:
    """
    Format chunks into a single context string with citation markers.

    Returns:
        "[1]: first text\\n\\n[2]: second text" (empty string for no chunks).
    """
    return "\n\n".join(f"[{i}]: {chunk.text}" for i, chunk in enumerate(chunks, 1))


async def assemble_context(store: ChunkStore, ids: Sequence[str]) -> List[ChunkRecord]:
    """Batch-fetch ``ids`` in one storage call and return them in rank order."""
    if not ids:
        return []
    fetched = await store.get_chunks_by_ids(list(ids))
    ordered = order_chunks(ids, fetched)
    if len(ordered) < len(ids):
        logger.info("Dropped %s unresolvable chunk ids", len(ids) - len(ordered))
    return ordered
