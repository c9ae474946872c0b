"""
Semantic Aggregation
Aggregates bounded top-K chunk similarity hits per district.

Retrieval is bounded to the top-K chunks above a similarity floor so the
semantic signal stays query-specific. Full-corpus scans let the
query-invariant keyword scores dominate every ranking.
"""
from dataclasses import dataclass
from typing import Iterable

from .models import SemanticAggregate

SEMANTIC_TOP_K = 500
SEMANTIC_SIMILARITY_FLOOR = 0.25


@dataclass(frozen=True)
class ChunkHit:
    """One chunk returned by the similarity index."""

    nces_id: str
    document_id: str
    similarity: float


def aggregate_chunk_hits(
    hits: Iterable[ChunkHit],
    top_k: int = SEMANTIC_TOP_K,
    floor: float = SEMANTIC_SIMILARITY_FLOOR,
) -> dict[str, SemanticAggregate]:
    """
    Aggregate chunk hits per district.

    Hits are expected in descending similarity order, as the index returns
    them. Only the first top_k hits at or above the floor are used.

    Args:
        hits: Ranked chunk hits.
        top_k: Maximum number of chunks considered.
        floor: Minimum similarity for a chunk to count.

    Returns:
        Mapping of NCES id to max/average similarity and the number of
        distinct documents matched.
    """
    similarities: dict[str, list[float]] = {}
    documents: dict[str, set[str]] = {}

    considered = 0
    for hit in hits:
        if considered >= top_k:
            break
        if hit.similarity < floor:
            continue
        considered += 1
        similarities.setdefault(hit.nces_id, []).append(hit.similarity)
        documents.setdefault(hit.nces_id, set()).add(hit.document_id)

    return {
        nces_id: SemanticAggregate(
            max_similarity=max(values),
            avg_similarity=sum(values) / len(values),
            hit_count=len(documents[nces_id]),
        )
        for nces_id, values in similarities.items()
    }
