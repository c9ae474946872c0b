"""
Document Search
Chunk-level semantic search over district documents and
document-to-document similarity.
"""

import asyncio
from datetime import date
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from backend.core.config import settings

from .exceptions import DocumentNotFoundError, RankingUnavailableError
from .sources import DocumentIndex, EmbeddingProvider

logger = structlog.get_logger().bind(agent="document_search")

# Cosine distance ranges over [0, 2]; relevance maps it onto [0, 1]
MAX_COSINE_DISTANCE = 2.0
DEFAULT_DISTANCE_THRESHOLD = 0.5
SIMILAR_DOCUMENT_MAX_DISTANCE = 0.7


class DocumentSummary(BaseModel):
    id: str
    nces_id: str
    document_url: str
    document_type: str
    document_title: Optional[str] = None
    document_category: Optional[str] = None


class DistrictSummary(BaseModel):
    nces_id: str
    name: str
    state: Optional[str] = None
    city: Optional[str] = None
    superintendent_name: Optional[str] = None
    superintendent_email: Optional[str] = None


class DocumentMatch(BaseModel):
    """A document chunk matching a semantic query."""

    document: DocumentSummary
    district: DistrictSummary
    chunk_text: str
    distance: float
    relevance_score: float


class SimilarDocument(BaseModel):
    """A document related to a source document."""

    document: DocumentSummary
    district: DistrictSummary
    similarity: float


class SemanticSearchParams(BaseModel):
    """Filters for chunk-level semantic search."""

    query: str
    limit: int = Field(default=20, ge=1, le=100)
    state: Optional[str] = None
    distance_threshold: float = Field(default=DEFAULT_DISTANCE_THRESHOLD, gt=0, le=MAX_COSINE_DISTANCE)
    document_types: Optional[list[str]] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class SemanticSearchResult(BaseModel):
    results: list[DocumentMatch]
    query: str
    total: int


class SimilarDocumentsResult(BaseModel):
    results: list[SimilarDocument]
    source_document_id: str
    total: int


def distance_to_score(distance: Any) -> float:
    """Map a cosine distance to a 0-1 relevance score."""
    return 1 - float(distance) / MAX_COSINE_DISTANCE


def _summaries(row: dict[str, Any]) -> tuple[DocumentSummary, DistrictSummary]:
    document = DocumentSummary(
        id=str(row["document_id"]),
        nces_id=str(row["nces_id"]),
        document_url=row["document_url"],
        document_type=row["document_type"],
        document_title=row.get("document_title"),
        document_category=row.get("document_category"),
    )
    district = DistrictSummary(
        nces_id=str(row["nces_id"]),
        name=row.get("district_name") or str(row["nces_id"]),
        state=row.get("state"),
        city=row.get("city"),
        superintendent_name=row.get("superintendent_name"),
        superintendent_email=row.get("superintendent_email"),
    )
    return document, district


def document_match_from_row(row: dict[str, Any]) -> DocumentMatch:
    document, district = _summaries(row)
    return DocumentMatch(
        document=document,
        district=district,
        chunk_text=row["chunk_text"],
        distance=float(row["distance"]),
        relevance_score=distance_to_score(row["distance"]),
    )


def similar_document_from_row(row: dict[str, Any]) -> SimilarDocument:
    document, district = _summaries(row)
    return SimilarDocument(document=document, district=district, similarity=distance_to_score(row["distance"]))


class DocumentSearch:
    """
    Semantic search over district document chunks.

    Shares the query embedder with command search; failures and timeouts
    of either upstream raise RankingUnavailableError.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        document_index: DocumentIndex,
        embedding_timeout: Optional[float] = None,
        retrieval_timeout: Optional[float] = None,
    ):
        self.embedder = embedder
        self.document_index = document_index
        self.embedding_timeout = embedding_timeout or settings.embedding_timeout_seconds
        self.retrieval_timeout = retrieval_timeout or settings.retrieval_timeout_seconds

    async def _bounded(self, operation: str, call, timeout: float):
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error("document_search_timeout", operation=operation, timeout=timeout)
            raise RankingUnavailableError(f"{operation} timed out") from e
        except RankingUnavailableError:
            raise
        except Exception as e:
            logger.error("document_search_error", operation=operation, error=str(e), error_type=type(e).__name__)
            raise RankingUnavailableError(f"{operation} unavailable") from e

    async def semantic_search(self, params: SemanticSearchParams) -> SemanticSearchResult:
        """
        Find document chunks closest to the query.

        Args:
            params: Query text and filters.

        Returns:
            Matching chunks with their documents and districts, closest first.
        """
        embedding = await self._bounded("Embedding service", self.embedder.embed(params.query), self.embedding_timeout)
        if not embedding:
            raise RankingUnavailableError("No embedding generated for query")

        rows = await self._bounded(
            "Document index",
            self.document_index.search_chunks(embedding, params),
            self.retrieval_timeout,
        )
        results = [document_match_from_row(row) for row in rows]

        logger.info("semantic_document_search_complete", results=len(results), state=params.state)
        return SemanticSearchResult(results=results, query=params.query, total=len(results))

    async def similar_documents(self, document_id: str, limit: int = 20) -> SimilarDocumentsResult:
        """
        Find documents related to a source document.

        Raises:
            DocumentNotFoundError: The document has no embeddings.
        """
        rows = await self._bounded(
            "Document index",
            self.document_index.similar_documents(document_id, limit, SIMILAR_DOCUMENT_MAX_DISTANCE),
            self.retrieval_timeout,
        )
        if rows is None:
            raise DocumentNotFoundError(document_id)

        results = [similar_document_from_row(row) for row in rows]
        return SimilarDocumentsResult(results=results, source_document_id=document_id, total=len(results))
