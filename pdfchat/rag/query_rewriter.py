"""
LLM query expansion: rewrite one user message into several search queries.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from pdfchat.generation.prompts import QUERY_EXPANSION_PROMPT

from .retriever import TextGenerator

logger = logging.getLogger(__name__)

# "1.", "2)", "(3)", "-", "*", "•" and "Query 4:" style prefixes
_ORDINAL_RE = re.compile(r"^\s*(?:query\s*\d+\s*[:.)-]\s*|\(?\d{1,2}[.):]\s+|[-*•]\s+)", re.IGNORECASE)
_QUOTES = "\"'`“”‘’"


def clean_query_line(line: str) -> str:
    """Strip a leading ordinal or bullet marker and surrounding quotes from one line."""
    text = _ORDINAL_RE.sub("", line.strip(), count=1)
    return text.strip().strip(_QUOTES).strip()


def parse_queries(text: str, limit: int = 5) -> List[str]:
    """Turn raw model output into at most ``limit`` distinct, non-blank queries."""
    queries: List[str] = []
    seen: set[str] = set()
    for line in text.splitlines():
        q = clean_query_line(line)
        if not q:
            continue
        key = q.lower()
        if key in seen:
            continue
        seen.add(key)
        queries.append(q)
        if len(queries) >= limit:
            break
    return queries


@dataclass
class QueryExpander:
    """Rewrites a user message into diversified search queries via the LLM."""

    client: TextGenerator
    max_queries: int = 5
    timeout: Optional[float] = None
    max_tokens: int = 256
    temperature: float = 0.4

    async def expand(self, query: str) -> List[str]:
        """
        Return 1..max_queries search queries for ``query``.

        Any model failure, timeout or unusable output falls back to
        ``[query]`` so retrieval can still run.
        """
        prompt = QUERY_EXPANSION_PROMPT.format(count=self.max_queries, message=query)
        try:
            response = await asyncio.wait_for(
                self.client.generate_single(
                    prompt,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning("Query expansion failed, using original query: %r", e)
            return [query]

        queries = parse_queries(response or "", limit=self.max_queries)
        if not queries:
            logger.warning("Query expansion returned no usable lines, using original query")
            return [query]
        return queries
