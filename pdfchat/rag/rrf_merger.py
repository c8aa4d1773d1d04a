"""
Reciprocal Rank Fusion (RRF) for combining lexical and vector result lists.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from .retriever import FusedHit, RankedHit, VectorMatches


def rrf_merge(
    result_lists: Sequence[Sequence[Tuple[Optional[str], float]]],
    k: Optional[int] = None,
    k_rrf: int = 60,
) -> List[Tuple[str, float]]:
    """
    Merge multiple ranked lists using Reciprocal Rank Fusion.

    Args:
        result_lists: Ranked lists from different retrievers.
                     Each inner list is [(chunk_id, score), ...] sorted best first.
        k: Number of final results to return (all when None).
        k_rrf: Constant in 1 / (k_rrf + rank + 1), typically 60.

    Returns:
        Merged list of (chunk_id, score) tuples sorted by RRF score.
        Entries without an id are skipped. Ties keep no particular order.
    """
    scores: Dict[str, float] = defaultdict(float)

    for results in result_lists:
        for rank, (chunk_id, _score) in enumerate(results):
            if not chunk_id:
                continue
            scores[chunk_id] += 1.0 / (k_rrf + rank + 1)

    merged = sorted(scores.items(), key=lambda x: x[1], reverse=True)
    if k is None:
        return merged
    return merged[:k]


def fuse_results(
    lexical_hits: Sequence[RankedHit],
    vector_results: Sequence[VectorMatches],
    k: Optional[int] = None,
    k_rrf: int = 60,
) -> List[FusedHit]:
    """
    Fuse the merged lexical pool with one match list per expanded query.

    The lexical pool counts as a single ranked list; every vector query
    contributes its own list. A chunk present in several lists accumulates
    every contribution, so no separate de-duplication happens.
    """
    lists: List[List[Tuple[Optional[str], float]]] = [
        [(hit.id, hit.score) for hit in lexical_hits]
    ]
    for result in vector_results:
        lists.append([(match.id, match.score) for match in result.matches or []])
    return [FusedHit(id=cid, score=score) for cid, score in rrf_merge(lists, k=k, k_rrf=k_rrf)]
