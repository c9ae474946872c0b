"""
Command Search API Endpoints
Natural-language district search with explainable rankings.
"""
import logging
import re
from typing import Optional

from fastapi import APIRouter, Query

from agents.ranking import DistrictNotFoundError, DocumentNotFoundError, RankingUnavailableError
from backend.api.deps import AsyncSessionDep, DocumentSearchDep, PipelineDep, UserIdDep
from backend.core.config import settings
from backend.core.exceptions import NotFoundError, ServiceUnavailableError, ValidationError
from backend.schemas.search import (
    CommandRequestBody,
    CommandResponse,
    CommandSearchTelemetrySummary,
    DistrictWhyResponse,
    KeywordEvidenceResponse,
    SearchHealthResponse,
    SemanticSearchBody,
    SemanticSearchResponse,
    SimilarDocumentsResponse,
)
from backend.services.search_telemetry import (
    get_command_search_telemetry_summary,
    log_command_search,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/search", tags=["Search"])

NCES_ID_PATTERN = re.compile(r"^\d{7}$")
DOCUMENT_ID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


@router.post(
    "/command",
    response_model=CommandResponse,
    summary="Run a command search",
    description="Rank districts for a natural-language command with per-result rationales.",
    responses={503: {"description": "Embedding or similarity service unavailable"}},
)
async def run_command(
    body: CommandRequestBody,
    pipeline: PipelineDep,
    db: AsyncSessionDep,
    user_id: UserIdDep,
) -> CommandResponse:
    """
    Run a command search.

    Classifies the intent, extracts grant criteria, suppresses recently
    engaged districts and returns ranked districts with a reasoning trace.
    """
    if not body.prompt.strip():
        raise ValidationError("Prompt is required")

    request = body.to_command_request(
        default_threshold=settings.default_confidence_threshold,
        default_suppression_days=settings.default_suppression_days,
    )

    try:
        result = await pipeline.run(request)
    except RankingUnavailableError as e:
        logger.error(f"Command search unavailable: {e}")
        raise ServiceUnavailableError()

    if settings.telemetry_enabled:
        await log_command_search(db, user_id, request, result)

    return CommandResponse.model_validate(result.model_dump(mode="json"))


@router.get(
    "/why/{nces_id}",
    response_model=DistrictWhyResponse,
    summary="Explain a district",
    description="Full rationale for one district, computed on demand.",
)
async def get_district_why(
    nces_id: str,
    pipeline: PipelineDep,
    confidence_threshold: Optional[float] = Query(
        default=None,
        alias="confidenceThreshold",
        description="Confidence threshold, clamped to [0.2, 0.95]",
    ),
) -> DistrictWhyResponse:
    """
    Load the full rationale for a district.

    Used for results ranked beyond the full-explanation limit.
    """
    if not NCES_ID_PATTERN.match(nces_id):
        raise ValidationError("Invalid NCES ID format. Must be 7 digits.")

    try:
        details = await pipeline.explain(nces_id, confidence_threshold)
    except DistrictNotFoundError:
        raise NotFoundError("District", nces_id)
    except RankingUnavailableError as e:
        logger.error(f"District explanation unavailable: {e}")
        raise ServiceUnavailableError()

    return DistrictWhyResponse.model_validate(details.model_dump(mode="json"))


@router.post(
    "/semantic",
    response_model=SemanticSearchResponse,
    summary="Semantic document search",
    description="Find district document chunks closest to a query.",
    responses={503: {"description": "Embedding or similarity service unavailable"}},
)
async def semantic_document_search(
    body: SemanticSearchBody,
    search: DocumentSearchDep,
) -> SemanticSearchResponse:
    if not body.query.strip():
        raise ValidationError("Query cannot be empty")

    try:
        result = await search.semantic_search(body.to_params())
    except RankingUnavailableError as e:
        logger.error(f"Semantic search unavailable: {e}")
        raise ServiceUnavailableError("Semantic search unavailable. Please try again later.")

    return SemanticSearchResponse.model_validate(result.model_dump(mode="json"))


@router.get(
    "/similar/{document_id}",
    response_model=SimilarDocumentsResponse,
    summary="Similar documents",
    description="Documents related to a source document by embedding similarity.",
)
async def get_similar_documents(
    document_id: str,
    search: DocumentSearchDep,
    limit: int = Query(default=20, ge=1, description="Maximum results, capped at 50"),
) -> SimilarDocumentsResponse:
    if not DOCUMENT_ID_PATTERN.match(document_id):
        raise ValidationError("Valid document ID is required")

    try:
        result = await search.similar_documents(document_id.lower(), min(limit, 50))
    except DocumentNotFoundError:
        raise NotFoundError("Document", document_id)
    except RankingUnavailableError as e:
        logger.error(f"Similar documents unavailable: {e}")
        raise ServiceUnavailableError("Semantic search unavailable. Please try again later.")

    return SimilarDocumentsResponse.model_validate(result.model_dump(mode="json"))


@router.get(
    "/evidence/{nces_id}",
    response_model=KeywordEvidenceResponse,
    summary="Keyword evidence for a district",
    description="Matched keywords, mention counts and document excerpts for all four taxonomy categories.",
)
async def get_keyword_evidence(nces_id: str, pipeline: PipelineDep) -> KeywordEvidenceResponse:
    if not NCES_ID_PATTERN.match(nces_id):
        raise ValidationError("Invalid NCES ID format. Must be 7 digits.")

    try:
        report = await pipeline.keyword_evidence(nces_id)
    except DistrictNotFoundError:
        raise NotFoundError("District", nces_id)
    except RankingUnavailableError as e:
        logger.error(f"Keyword evidence unavailable: {e}")
        raise ServiceUnavailableError()

    return KeywordEvidenceResponse.model_validate(report.model_dump(mode="json"))


@router.get(
    "/health",
    response_model=SearchHealthResponse,
    summary="Command search readiness",
)
async def search_health() -> SearchHealthResponse:
    """Report whether embeddings are configured."""
    if not settings.openai_api_key:
        return SearchHealthResponse(
            status="not_configured",
            embedding_model=settings.embedding_model,
            message="OPENAI_API_KEY is not set",
        )
    return SearchHealthResponse(status="ready", embedding_model=settings.embedding_model)


@router.get(
    "/telemetry",
    response_model=CommandSearchTelemetrySummary,
    summary="Command search telemetry",
    description="Usage summary for recent command searches.",
)
async def get_search_telemetry(
    db: AsyncSessionDep,
    user_id: UserIdDep,
    days: int = Query(default=7, description="Window in days, bounded to 1-60"),
) -> CommandSearchTelemetrySummary:
    return await get_command_search_telemetry_summary(db, user_id=user_id, period_days=days)
