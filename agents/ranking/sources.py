"""
Upstream collaborator interfaces for the ranking pipeline.

Rows are plain dicts keyed by column name (nces_id, name, state, ...,
readiness_score, ..., keyword_matches) and are mapped into
CandidateEntity by candidate_from_row.
"""
from typing import TYPE_CHECKING, Any, Optional, Protocol

from .semantic import ChunkHit

if TYPE_CHECKING:
    from .documents import SemanticSearchParams


class EmbeddingProvider(Protocol):
    """Text in, fixed-dimension vector out."""

    async def embed(self, text: str) -> list[float]: ...


class SemanticIndex(Protocol):
    """Vector similarity index over document chunks."""

    async def top_chunks(self, embedding: list[float], top_k: int, floor: float) -> list[ChunkHit]:
        """Top-K chunks by similarity at or above the floor, most similar first."""
        ...


class ScoreStore(Protocol):
    """Keyword-score store joined with registry attributes."""

    async def fetch_scored(self) -> list[dict[str, Any]]:
        """All districts that have taxonomy scores."""
        ...


class EntityRegistry(Protocol):
    """District registry."""

    async def fetch_many(self, nces_ids: list[str]) -> list[dict[str, Any]]: ...

    async def fetch_one(self, nces_id: str) -> Optional[dict[str, Any]]:
        """Registry row left-joined with scores, or None when absent."""
        ...

    async def document_urls(self, document_ids: list[str]) -> dict[str, str]: ...


class DocumentIndex(Protocol):
    """Chunk and document level similarity search."""

    async def search_chunks(self, embedding: list[float], params: "SemanticSearchParams") -> list[dict[str, Any]]:
        """Chunks within the distance threshold, closest first, joined with document and district."""
        ...

    async def similar_documents(
        self, document_id: str, limit: int, max_distance: float
    ) -> Optional[list[dict[str, Any]]]:
        """Documents near the source document, or None when it has no embeddings."""
        ...
