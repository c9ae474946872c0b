"""
District Store for DistrictRadar
Postgres/pgvector implementations of the ranking pipeline's data sources.

Each store opens its own short-lived session per call so the pipeline can
run the similarity search and the score lookup concurrently.
"""
from typing import Any, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agents.ranking.documents import SemanticSearchParams
from agents.ranking.semantic import ChunkHit
from backend.database import AsyncSessionLocal

logger = structlog.get_logger(__name__)

DISTRICT_COLUMNS = """
    d.nces_id,
    d.name,
    d.state,
    d.city,
    d.enrollment,
    d.frpl_percent,
    d.minority_percent,
    d.website_domain,
    d.superintendent_name,
    d.superintendent_email,
    d.phone
"""

SCORE_COLUMNS = """
    s.readiness_score,
    s.alignment_score,
    s.activation_score,
    s.branding_score,
    s.total_score,
    s.keyword_matches,
    s.scored_at
"""


def _embedding_literal(embedding: list[float]) -> str:
    # pgvector text format
    return "[" + ",".join(map(str, embedding)) + "]"


class _SessionStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory


class PgVectorChunkIndex(_SessionStore):
    """Cosine similarity search over document chunk embeddings."""

    async def top_chunks(self, embedding: list[float], top_k: int, floor: float) -> list[ChunkHit]:
        """
        Fetch the top-K chunks by cosine similarity at or above the floor.

        Args:
            embedding: Query embedding.
            top_k: Maximum number of chunks.
            floor: Minimum similarity.

        Returns:
            Chunk hits, most similar first.
        """
        query = text("""
            SELECT
                dd.nces_id,
                CAST(de.document_id AS TEXT) AS document_id,
                1 - (de.embedding <=> CAST(:embedding AS vector)) AS similarity
            FROM document_embeddings de
            JOIN district_documents dd ON dd.id = de.document_id
            WHERE de.embedding IS NOT NULL
              AND 1 - (de.embedding <=> CAST(:embedding AS vector)) >= :floor
            ORDER BY de.embedding <=> CAST(:embedding AS vector)
            LIMIT :top_k
        """)

        async with self.session_factory() as session:
            result = await session.execute(
                query,
                {"embedding": _embedding_literal(embedding), "floor": floor, "top_k": top_k},
            )
            rows = result.fetchall()

        hits = [
            ChunkHit(nces_id=row.nces_id, document_id=row.document_id, similarity=float(row.similarity))
            for row in rows
        ]

        logger.info("chunk_search_complete", hits=len(hits), top_k=top_k, floor=floor)
        return hits


class DistrictScoreStore(_SessionStore):
    """Keyword taxonomy scores joined with district attributes."""

    async def fetch_scored(self) -> list[dict[str, Any]]:
        query = text(f"""
            SELECT {DISTRICT_COLUMNS}, {SCORE_COLUMNS}
            FROM district_keyword_scores s
            JOIN districts d ON d.nces_id = s.nces_id
        """)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [dict(row) for row in result.mappings().all()]


class DistrictRegistry(_SessionStore):
    """District lookups for candidates and on-demand explanations."""

    async def fetch_many(self, nces_ids: list[str]) -> list[dict[str, Any]]:
        """Registry rows, with scores when present, for the given ids."""
        if not nces_ids:
            return []
        query = text(f"""
            SELECT {DISTRICT_COLUMNS}, {SCORE_COLUMNS}
            FROM districts d
            LEFT JOIN district_keyword_scores s ON s.nces_id = d.nces_id
            WHERE d.nces_id = ANY(:nces_ids)
        """)
        async with self.session_factory() as session:
            result = await session.execute(query, {"nces_ids": list(nces_ids)})
            return [dict(row) for row in result.mappings().all()]

    async def fetch_one(self, nces_id: str) -> Optional[dict[str, Any]]:
        rows = await self.fetch_many([nces_id])
        return rows[0] if rows else None

    async def document_urls(self, document_ids: list[str]) -> dict[str, str]:
        """Map document ids to their source URLs."""
        if not document_ids:
            return {}
        query = text("""
            SELECT CAST(id AS TEXT) AS document_id, document_url
            FROM district_documents
            WHERE CAST(id AS TEXT) = ANY(:document_ids)
        """)
        async with self.session_factory() as session:
            result = await session.execute(query, {"document_ids": list(document_ids)})
            return {row.document_id: row.document_url for row in result.fetchall()}


DOCUMENT_COLUMNS = """
    CAST(dd.id AS TEXT) AS document_id,
    dd.nces_id,
    dd.document_url,
    dd.document_type,
    dd.document_title,
    dd.document_category,
    d.name AS district_name,
    d.state,
    d.city,
    d.superintendent_name,
    d.superintendent_email
"""


class PgVectorDocumentIndex(_SessionStore):
    """Chunk search and document similarity for the document explorer."""

    async def search_chunks(self, embedding: list[float], params: SemanticSearchParams) -> list[dict[str, Any]]:
        """
        Fetch chunks within the distance threshold of the query embedding.

        Optional filters narrow by district state, document type and
        crawl date range.
        """
        filters = []
        bind: dict[str, Any] = {
            "embedding": _embedding_literal(embedding),
            "threshold": params.distance_threshold,
            "limit": params.limit,
        }
        if params.state:
            filters.append("AND d.state = :state")
            bind["state"] = params.state.upper()
        if params.document_types:
            filters.append("AND dd.document_type = ANY(:document_types)")
            bind["document_types"] = list(params.document_types)
        if params.date_from:
            filters.append("AND dd.last_crawled_at >= CAST(:date_from AS date)")
            bind["date_from"] = params.date_from
        if params.date_to:
            filters.append("AND dd.last_crawled_at < CAST(:date_to AS date) + 1")
            bind["date_to"] = params.date_to

        query = text(f"""
            SELECT
                {DOCUMENT_COLUMNS},
                de.chunk_text,
                de.embedding <=> CAST(:embedding AS vector) AS distance
            FROM document_embeddings de
            JOIN district_documents dd ON dd.id = de.document_id
            JOIN districts d ON d.nces_id = dd.nces_id
            WHERE de.embedding IS NOT NULL
              AND de.embedding <=> CAST(:embedding AS vector) < :threshold
              {' '.join(filters)}
            ORDER BY distance
            LIMIT :limit
        """)

        async with self.session_factory() as session:
            result = await session.execute(query, bind)
            rows = [dict(row) for row in result.mappings().all()]

        logger.info("document_chunk_search_complete", results=len(rows), filters=len(filters))
        return rows

    async def similar_documents(
        self, document_id: str, limit: int, max_distance: float
    ) -> Optional[list[dict[str, Any]]]:
        """
        Documents whose chunks are near the source document's first chunk.

        Returns None when the source document has no embeddings.
        """
        source_query = text("""
            SELECT CAST(embedding AS TEXT) AS embedding
            FROM document_embeddings
            WHERE CAST(document_id AS TEXT) = :document_id
              AND embedding IS NOT NULL
            ORDER BY chunk_index
            LIMIT 1
        """)
        query = text(f"""
            SELECT
                {DOCUMENT_COLUMNS},
                MIN(de.embedding <=> CAST(:embedding AS vector)) AS distance
            FROM document_embeddings de
            JOIN district_documents dd ON dd.id = de.document_id
            JOIN districts d ON d.nces_id = dd.nces_id
            WHERE CAST(de.document_id AS TEXT) != :document_id
              AND de.embedding <=> CAST(:embedding AS vector) < :max_distance
            GROUP BY dd.id, d.id
            ORDER BY distance
            LIMIT :limit
        """)

        async with self.session_factory() as session:
            source = (await session.execute(source_query, {"document_id": document_id})).fetchone()
            if source is None:
                return None
            result = await session.execute(
                query,
                {
                    "embedding": source.embedding,
                    "document_id": document_id,
                    "max_distance": max_distance,
                    "limit": limit,
                },
            )
            return [dict(row) for row in result.mappings().all()]
