"""
FastAPI Dependencies
Shared dependencies for database access and the ranking pipeline.
"""
from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from agents.ranking import CommandSearchPipeline, DocumentSearch, QueryEmbedder
from backend.database import get_db
from backend.services.district_store import (
    DistrictRegistry,
    DistrictScoreStore,
    PgVectorChunkIndex,
    PgVectorDocumentIndex,
)

# Type alias for dependency injection
AsyncSessionDep = Annotated[AsyncSession, Depends(get_db)]


@lru_cache
def get_query_embedder() -> QueryEmbedder:
    """Shared embedder so the OpenAI client is reused across requests."""
    return QueryEmbedder()


def get_pipeline() -> CommandSearchPipeline:
    """Build a command search pipeline backed by Postgres and OpenAI."""
    return CommandSearchPipeline(
        embedder=get_query_embedder(),
        semantic_index=PgVectorChunkIndex(),
        score_store=DistrictScoreStore(),
        registry=DistrictRegistry(),
    )


def get_document_search() -> DocumentSearch:
    """Build a document chunk search backed by pgvector and OpenAI."""
    return DocumentSearch(embedder=get_query_embedder(), document_index=PgVectorDocumentIndex())


def get_current_user_id(x_user_id: Annotated[Optional[str], Header()] = None) -> Optional[str]:
    """Caller identity forwarded by the gateway, used for telemetry."""
    return x_user_id or None


PipelineDep = Annotated[CommandSearchPipeline, Depends(get_pipeline)]
DocumentSearchDep = Annotated[DocumentSearch, Depends(get_document_search)]
UserIdDep = Annotated[Optional[str], Depends(get_current_user_id)]
