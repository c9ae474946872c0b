"""
Command search schemas.
Request and response models for the /api/search endpoints (camelCase on the wire).
"""
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from agents.ranking.documents import SemanticSearchParams
from agents.ranking.models import (
    CommandRequest,
    EngagementEvent,
    GrantCriteria,
    LeadFilters,
)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, accepting either casing."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Request Schemas
# =============================================================================


class AttachmentBody(CamelModel):
    """Free text from an attached document (e.g. a grant RFP)."""

    text: Optional[str] = Field(None, description="Attachment text")


class LeadFiltersBody(CamelModel):
    """Lead list filters."""

    limit: Optional[int] = Field(None, ge=1, le=100, description="Maximum results")
    states: list[str] = Field(default_factory=list, description="Allowed state codes")
    exclude_ids: list[str] = Field(default_factory=list, description="NCES ids to exclude")
    min_total_score: Optional[float] = Field(None, description="Minimum total taxonomy score")
    min_readiness_score: Optional[float] = Field(None, description="Minimum readiness score")
    min_activation_score: Optional[float] = Field(None, description="Minimum activation score")


class EngagementEventBody(CamelModel):
    """Prior outreach to a district."""

    nces_id: str = Field(..., description="District NCES identifier")
    event_type: str = Field("contacted", description="Event type")
    occurred_at: datetime = Field(..., description="When the event happened")


class EngagementSignalsBody(CamelModel):
    """Engagement history used for suppression."""

    events: list[EngagementEventBody] = Field(default_factory=list)
    suppression_days: Optional[int] = Field(None, ge=0, le=365, description="Suppression window in days")


class GrantCriteriaBody(CamelModel):
    """Explicit grant criteria overrides."""

    frpl_min: Optional[float] = Field(None, ge=0, le=100)
    minority_min: Optional[float] = Field(None, ge=0, le=100)
    min_enrollment: Optional[int] = Field(None, ge=0)
    states: Optional[list[str]] = None
    keywords: Optional[list[str]] = None


class CommandRequestBody(CamelModel):
    """Command search request body."""

    prompt: str = Field(..., max_length=500, description="Natural-language command")
    attachment: Optional[AttachmentBody] = None
    confidence_threshold: Optional[float] = Field(None, description="Confidence threshold, clamped to [0.2, 0.95]")
    lead_filters: Optional[LeadFiltersBody] = None
    engagement_signals: Optional[EngagementSignalsBody] = None
    grant_criteria: Optional[GrantCriteriaBody] = None

    def to_command_request(self, default_threshold: float, default_suppression_days: int) -> CommandRequest:
        """Convert to the pipeline's request model."""
        signals = self.engagement_signals or EngagementSignalsBody()
        lead_filters = self.lead_filters.model_dump() if self.lead_filters else {}
        overrides = None
        if self.grant_criteria is not None:
            overrides = GrantCriteria(**self.grant_criteria.model_dump(exclude_unset=True))

        suppression_days = signals.suppression_days
        return CommandRequest(
            prompt=self.prompt.strip(),
            attachment_text=self.attachment.text if self.attachment else None,
            confidence_threshold=(
                self.confidence_threshold if self.confidence_threshold is not None else default_threshold
            ),
            lead_filters=LeadFilters(**lead_filters),
            events=[EngagementEvent(**event.model_dump()) for event in signals.events],
            suppression_days=suppression_days if suppression_days is not None else default_suppression_days,
            grant_criteria=overrides,
        )


class SemanticSearchBody(CamelModel):
    """Document chunk search request body."""

    query: str = Field(..., max_length=500, description="Search text")
    limit: int = Field(20, ge=1, description="Maximum results, capped at 100")
    state: Optional[str] = Field(None, min_length=2, max_length=2)
    distance_threshold: float = Field(0.5, gt=0, le=2, description="Maximum cosine distance")
    document_types: Optional[list[str]] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def to_params(self) -> SemanticSearchParams:
        return SemanticSearchParams(
            query=self.query.strip(),
            limit=min(self.limit, 100),
            state=self.state,
            distance_threshold=self.distance_threshold,
            document_types=[str(t) for t in self.document_types] if self.document_types else None,
            date_from=self.date_from,
            date_to=self.date_to,
        )


# =============================================================================
# Response Schemas
# =============================================================================


class SemanticAggregateResponse(CamelModel):
    max_similarity: float
    avg_similarity: float
    hit_count: int


class TaxonomyScoresResponse(CamelModel):
    readiness: float
    alignment: float
    activation: float
    branding: float
    total: float


class DistrictResponse(CamelModel):
    """District attributes shown with a ranked result."""

    nces_id: str = Field(..., description="NCES identifier")
    name: str = Field(..., description="District name")
    state: Optional[str] = None
    city: Optional[str] = None
    enrollment: Optional[int] = None
    frpl_percent: Optional[float] = None
    minority_percent: Optional[float] = None
    website_domain: Optional[str] = None
    superintendent_name: Optional[str] = None
    superintendent_email: Optional[str] = None
    phone: Optional[str] = None
    scores: TaxonomyScoresResponse
    semantic: Optional[SemanticAggregateResponse] = None


class ScoreBreakdownResponse(CamelModel):
    readiness: float
    alignment: float
    activation: float
    branding: float
    total: float
    semantic_score: float
    keyword_boost: float
    eligibility_boost: float
    engagement_penalty: float
    composite: float


class SignalResponse(CamelModel):
    signal: str
    category: str
    weight: float
    reason: Optional[str] = None


class SourceExcerptResponse(CamelModel):
    keyword: str
    excerpt: str
    source_url: Optional[str] = None


class DampenerResponse(CamelModel):
    signal: str
    impact: float
    reason: str


class ExplanationResponse(CamelModel):
    """Rationale for a ranked district."""

    confidence: float
    confidence_band: Literal["high", "medium", "low"]
    summary: str
    top_signals: list[SignalResponse] = Field(default_factory=list)
    source_excerpts: list[SourceExcerptResponse] = Field(default_factory=list)
    dampeners: list[DampenerResponse] = Field(default_factory=list)
    detail: Literal["full", "deferred"] = "full"


class DistrictActionsResponse(CamelModel):
    open_district_site: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class RankedDistrictResponse(CamelModel):
    district: DistrictResponse
    score: ScoreBreakdownResponse
    why: ExplanationResponse
    actions: DistrictActionsResponse


class ReasoningResponse(CamelModel):
    summary: str
    steps: list[str]


class StateInsightResponse(CamelModel):
    state: str
    average_score: float
    district_count: int


class CommandResponse(CamelModel):
    """Command search response."""

    intent: Literal["insights_briefing", "grant_match", "next_hottest_uncontacted", "district_search"]
    confidence_threshold: float
    explanation: str
    reasoning: ReasoningResponse
    grant_criteria: GrantCriteriaBody
    districts: list[RankedDistrictResponse]
    insights: Optional[list[StateInsightResponse]] = None
    outcome: Literal["ok", "policy_exhausted"] = "ok"
    generated_at: datetime


class DistrictWhyResponse(CamelModel):
    """On-demand explanation for one district."""

    nces_id: str
    district_name: str
    score: ScoreBreakdownResponse
    why: ExplanationResponse
    generated_at: datetime


class SearchHealthResponse(CamelModel):
    status: Literal["ready", "not_configured"]
    embedding_model: str
    message: Optional[str] = None


class DocumentSummaryResponse(CamelModel):
    id: str
    nces_id: str
    document_url: str
    document_type: str
    document_title: Optional[str] = None
    document_category: Optional[str] = None


class DistrictSummaryResponse(CamelModel):
    nces_id: str
    name: str
    state: Optional[str] = None
    city: Optional[str] = None
    superintendent_name: Optional[str] = None
    superintendent_email: Optional[str] = None


class DocumentMatchResponse(CamelModel):
    document: DocumentSummaryResponse
    district: DistrictSummaryResponse
    chunk_text: str
    distance: float
    relevance_score: float


class SemanticSearchResponse(CamelModel):
    """Document chunk search results, closest first."""

    results: list[DocumentMatchResponse]
    query: str
    total: int


class SimilarDocumentResponse(CamelModel):
    document: DocumentSummaryResponse
    district: DistrictSummaryResponse
    similarity: float


class SimilarDocumentsResponse(CamelModel):
    results: list[SimilarDocumentResponse]
    source_document_id: str
    total: int


class EvidenceDocumentResponse(CamelModel):
    document_id: str
    document_type: str
    document_url: Optional[str] = None
    text: str
    keywords: list[str]


class CategoryEvidenceResponse(CamelModel):
    score: Optional[float] = None
    keywords_found: list[str]
    total_mentions: int
    documents: list[EvidenceDocumentResponse]


class KeywordEvidenceResponse(CamelModel):
    """Keyword scores and evidence across the four taxonomy categories."""

    nces_id: str
    district_name: str
    readiness: Optional[CategoryEvidenceResponse] = None
    alignment: Optional[CategoryEvidenceResponse] = None
    activation: Optional[CategoryEvidenceResponse] = None
    branding: Optional[CategoryEvidenceResponse] = None
    total_score: Optional[float] = None
    scored_at: Optional[datetime] = None


class RepeatDistrict(CamelModel):
    nces_id: str
    appearances: int


class PromptCount(CamelModel):
    prompt: str
    count: int


class CommandSearchTelemetrySummary(CamelModel):
    """Aggregate command search usage over a recent window."""

    period_days: int = Field(..., description="Window length in days (1-60)")
    total_queries: int = Field(..., description="Searches in the window")
    unique_prompts: int = Field(..., description="Distinct normalized prompts")
    avg_results_per_query: float = Field(..., description="Mean result count, 2 decimals")
    repeat_districts: list[RepeatDistrict] = Field(default_factory=list)
    top_prompts: list[PromptCount] = Field(default_factory=list)
