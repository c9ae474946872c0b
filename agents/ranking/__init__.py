"""
Ranking Agent Module
Command search over districts using semantic retrieval, taxonomy scores
and explainable ranking.
"""
from .documents import DocumentSearch, SemanticSearchParams
from .embedder import QueryEmbedder
from .evidence import KeywordEvidenceReport
from .exceptions import (
    DistrictNotFoundError,
    DocumentNotFoundError,
    RankingError,
    RankingUnavailableError,
)
from .models import (
    CandidateEntity,
    CommandRequest,
    CommandResult,
    DistrictWhyDetails,
    EngagementEvent,
    Explanation,
    GrantCriteria,
    Intent,
    LeadFilters,
    RankedResult,
    ScoreBreakdown,
)
from .pipeline import CommandSearchPipeline
from .semantic import ChunkHit

__all__ = [
    # Pipeline
    "CommandSearchPipeline",
    "DocumentSearch",
    # Embedder
    "QueryEmbedder",
    # Exceptions
    "DistrictNotFoundError",
    "DocumentNotFoundError",
    "RankingError",
    "RankingUnavailableError",
    # Models
    "CandidateEntity",
    "ChunkHit",
    "CommandRequest",
    "CommandResult",
    "DistrictWhyDetails",
    "EngagementEvent",
    "Explanation",
    "GrantCriteria",
    "Intent",
    "KeywordEvidenceReport",
    "LeadFilters",
    "RankedResult",
    "ScoreBreakdown",
    "SemanticSearchParams",
]
