"""
Lexical retrieval over the SQLite FTS5 index of chunk text.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdfchat.db.schema import FTS_TABLE

from .retriever import LexicalIndex, RankedHit

logger = logging.getLogger(__name__)

_NON_WORD_RE = re.compile(r"[^\w\s]")


def sanitize_term(term: str) -> str:
    """Drop every character that is neither a word character nor whitespace; collapse whitespace runs."""
    return " ".join(_NON_WORD_RE.sub("", term).split())


def match_expression(term: str) -> str:
    """Quote each token so FTS5 never reads one as an operator (AND, OR, NOT, NEAR)."""
    return " ".join('"' + tok.replace('"', '""') + '"' for tok in term.split())


@dataclass
class SqliteFullTextIndex:
    """LexicalIndex backed by the document_chunks_fts table."""

    sessionmaker: async_sessionmaker[AsyncSession]

    async def search(
        self,
        term: str,
        limit: int,
        session_id: Optional[str] = None,
    ) -> List[RankedHit]:
        """
        MATCH ``term`` against the FTS table, best first.

        FTS5's ``rank`` is a bm25 value where lower means more relevant, so
        the returned score is its negation.
        """
        expression = match_expression(term)
        if not expression:
            return []
        session_clause = f"AND {FTS_TABLE}.session_id = :session_id" if session_id else ""
        stmt = text(
            f"""
            SELECT document_chunks.id AS id, {FTS_TABLE}.rank AS rank
            FROM {FTS_TABLE}
            JOIN document_chunks ON {FTS_TABLE}.id = document_chunks.id
            WHERE {FTS_TABLE} MATCH :term {session_clause}
            ORDER BY rank
            LIMIT :limit
            """
        )
        params = {"term": expression, "limit": limit}
        if session_id:
            params["session_id"] = session_id
        async with self.sessionmaker() as session:
            result = await session.execute(stmt, params)
            rows = result.all()
        return [RankedHit(id=row.id, score=-float(row.rank or 0.0)) for row in rows]


async def search_one(
    index: LexicalIndex,
    query: str,
    limit: int = 5,
    session_id: Optional[str] = None,
) -> List[RankedHit]:
    """Sanitize one query and search it; an empty sanitized term yields no hits."""
    term = sanitize_term(query)
    if not term:
        return []
    return await index.search(term, limit, session_id=session_id)


async def search_lexical(
    index: LexicalIndex,
    queries: Sequence[str],
    *,
    limit: int = 5,
    pool_size: int = 10,
    session_id: Optional[str] = None,
) -> List[RankedHit]:
    """
    Search every query concurrently and merge into one pool.

    A failing query contributes nothing. The concatenated hits are sorted by
    score descending and capped at ``pool_size``.
    """
    results = await asyncio.gather(
        *(search_one(index, q, limit=limit, session_id=session_id) for q in queries),
        return_exceptions=True,
    )
    merged: List[RankedHit] = []
    for query, result in zip(queries, results):
        if isinstance(result, BaseException):
            logger.warning("Full-text search failed for %r: %r", query, result)
            continue
        merged.extend(result)
    merged.sort(key=lambda hit: hit.score, reverse=True)
    return merged[:pool_size]
