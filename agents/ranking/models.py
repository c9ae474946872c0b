"""
Ranking Pipeline Pydantic Models
Data models for command search ranking and explainability.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class Intent(str, Enum):
    """Command search intents, in classification priority order."""

    INSIGHTS_BRIEFING = "insights_briefing"
    GRANT_MATCH = "grant_match"
    NEXT_HOTTEST_UNCONTACTED = "next_hottest_uncontacted"
    DISTRICT_SEARCH = "district_search"


class ConfidenceBand(str, Enum):
    """Discrete confidence tiers."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaxonomyCategory(str, Enum):
    """The four keyword taxonomy categories."""

    READINESS = "readiness"
    ALIGNMENT = "alignment"
    ACTIVATION = "activation"
    BRANDING = "branding"


# =============================================================================
# Request-side models
# =============================================================================


class EngagementEvent(BaseModel):
    """
    A caller-supplied outreach event for a district.

    Used only to build the suppression set for the current request.
    """

    nces_id: str = Field(..., description="District NCES identifier")
    event_type: str = Field(default="contacted", description="Event type, e.g. email_sent")
    occurred_at: datetime = Field(..., description="When the engagement happened")


class GrantCriteria(BaseModel):
    """
    Eligibility thresholds for grant matching.

    Every field is optional; absent fields impose no constraint.
    """

    frpl_min: Optional[float] = Field(default=None, ge=0, le=100, description="Minimum FRPL percentage")
    minority_min: Optional[float] = Field(default=None, ge=0, le=100, description="Minimum minority percentage")
    min_enrollment: Optional[int] = Field(default=None, ge=0, description="Minimum student enrollment")
    states: Optional[list[str]] = Field(default=None, description="Allowed two-letter state codes")
    keywords: Optional[list[str]] = Field(default=None, description="Required domain keyword phrases")

    def merge(self, overrides: Optional["GrantCriteria"]) -> "GrantCriteria":
        """
        Merge explicit overrides onto these criteria.

        Any field explicitly set (and not null) on the overrides wins,
        field by field.
        """
        if overrides is None:
            return self.model_copy()
        data = self.model_dump()
        data.update(overrides.model_dump(exclude_unset=True, exclude_none=True))
        return GrantCriteria(**data)

    @property
    def is_empty(self) -> bool:
        return all(value in (None, []) for value in self.model_dump().values())


class LeadFilters(BaseModel):
    """Caller-supplied lead list filters."""

    limit: Optional[int] = Field(default=None, ge=1, le=100)
    states: list[str] = Field(default_factory=list)
    exclude_ids: list[str] = Field(default_factory=list)
    min_total_score: Optional[float] = None
    min_readiness_score: Optional[float] = None
    min_activation_score: Optional[float] = None


class CommandRequest(BaseModel):
    """A normalized command search request handed to the pipeline."""

    prompt: str
    attachment_text: Optional[str] = None
    confidence_threshold: float = 0.6
    lead_filters: LeadFilters = Field(default_factory=LeadFilters)
    events: list[EngagementEvent] = Field(default_factory=list)
    suppression_days: int = 60
    grant_criteria: Optional[GrantCriteria] = None


# =============================================================================
# Candidate models
# =============================================================================


class KeywordEvidence(BaseModel):
    """A single keyword match with its source excerpt."""

    category: TaxonomyCategory
    keyword: str
    excerpt: Optional[str] = None
    document_id: Optional[str] = None
    document_url: Optional[str] = None


class SemanticAggregate(BaseModel):
    """Per-district aggregate of top-K chunk similarity hits."""

    max_similarity: float = 0.0
    avg_similarity: float = 0.0
    hit_count: int = 0


class TaxonomyScores(BaseModel):
    """Static taxonomy sub-scores (0-10 scale) and their total."""

    readiness: float = 0.0
    alignment: float = 0.0
    activation: float = 0.0
    branding: float = 0.0
    total: float = 0.0

    def by_category(self) -> dict[TaxonomyCategory, float]:
        return {
            TaxonomyCategory.READINESS: self.readiness,
            TaxonomyCategory.ALIGNMENT: self.alignment,
            TaxonomyCategory.ACTIVATION: self.activation,
            TaxonomyCategory.BRANDING: self.branding,
        }


class CandidateEntity(BaseModel):
    """
    A district candidate assembled for one request.

    Joins registry attributes, static taxonomy scores and the semantic
    aggregate. Never persisted.
    """

    nces_id: str
    name: str
    state: Optional[str] = None
    city: Optional[str] = None
    enrollment: Optional[int] = None
    frpl_percent: Optional[float] = None
    minority_percent: Optional[float] = None
    website_domain: Optional[str] = None
    superintendent_name: Optional[str] = None
    superintendent_email: Optional[str] = None
    phone: Optional[str] = None
    scores: TaxonomyScores = Field(default_factory=TaxonomyScores)
    semantic: Optional[SemanticAggregate] = None
    evidence: list[KeywordEvidence] = Field(default_factory=list)

    @property
    def semantic_or_empty(self) -> SemanticAggregate:
        return self.semantic or SemanticAggregate()


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    try:
        return float(str(value))
    except ValueError:
        return None


def _parse_evidence(keyword_matches: Any, document_urls: dict[str, str]) -> list[KeywordEvidence]:
    """Parse keyword_matches JSON into evidence, skipping malformed entries."""
    evidence: list[KeywordEvidence] = []
    if not isinstance(keyword_matches, dict):
        return evidence

    for category in TaxonomyCategory:
        matches = keyword_matches.get(category.value)
        if not isinstance(matches, list):
            continue
        for match in matches:
            if not isinstance(match, dict) or not match.get("keyword"):
                continue
            document_id = match.get("document_id") or match.get("source_doc")
            document_id = str(document_id) if document_id else None
            evidence.append(
                KeywordEvidence(
                    category=category,
                    keyword=str(match["keyword"]),
                    excerpt=match.get("context"),
                    document_id=document_id,
                    document_url=document_urls.get(document_id) if document_id else None,
                )
            )
    return evidence


def candidate_from_row(
    row: dict[str, Any],
    semantic: Optional[SemanticAggregate] = None,
    document_urls: Optional[dict[str, str]] = None,
) -> CandidateEntity:
    """
    Map a joined registry/score row into a CandidateEntity.

    Missing numeric score fields become zero; missing attributes stay None.
    """
    return CandidateEntity(
        nces_id=str(row["nces_id"]),
        name=row.get("name") or str(row["nces_id"]),
        state=row.get("state"),
        city=row.get("city"),
        enrollment=row.get("enrollment"),
        frpl_percent=_to_float(row.get("frpl_percent")),
        minority_percent=_to_float(row.get("minority_percent")),
        website_domain=row.get("website_domain"),
        superintendent_name=row.get("superintendent_name"),
        superintendent_email=row.get("superintendent_email"),
        phone=row.get("phone"),
        scores=TaxonomyScores(
            readiness=_to_float(row.get("readiness_score")) or 0.0,
            alignment=_to_float(row.get("alignment_score")) or 0.0,
            activation=_to_float(row.get("activation_score")) or 0.0,
            branding=_to_float(row.get("branding_score")) or 0.0,
            total=_to_float(row.get("total_score")) or 0.0,
        ),
        semantic=semantic,
        evidence=_parse_evidence(row.get("keyword_matches"), document_urls or {}),
    )


# =============================================================================
# Result models
# =============================================================================


class ScoreBreakdown(BaseModel):
    """Sub-scores and composite ranking terms for a candidate."""

    readiness: float
    alignment: float
    activation: float
    branding: float
    total: float
    semantic_score: float
    keyword_boost: float
    eligibility_boost: float
    engagement_penalty: float
    composite: float = Field(..., ge=0)


class Signal(BaseModel):
    """A contributing signal in a rationale."""

    signal: str
    category: str
    weight: float
    reason: Optional[str] = None


class SourceExcerpt(BaseModel):
    """A keyword excerpt cited as evidence."""

    keyword: str
    excerpt: str
    source_url: Optional[str] = None


class Dampener(BaseModel):
    """A factor lowering trust in a result."""

    signal: str
    impact: float
    reason: str


class Explanation(BaseModel):
    """Human-readable rationale for a ranked district."""

    confidence: float = Field(..., ge=0.2, le=0.98)
    confidence_band: ConfidenceBand
    summary: str
    top_signals: list[Signal] = Field(default_factory=list)
    source_excerpts: list[SourceExcerpt] = Field(default_factory=list)
    dampeners: list[Dampener] = Field(default_factory=list)
    detail: Literal["full", "deferred"] = "full"


class DistrictActions(BaseModel):
    """Contact and navigation links derived from the district record."""

    open_district_site: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class RankedResult(BaseModel):
    """A ranked district with scores, rationale and actions."""

    district: CandidateEntity
    score: ScoreBreakdown
    why: Explanation
    actions: DistrictActions


class ReasoningTrace(BaseModel):
    """Stage-by-stage audit trail of candidate counts."""

    summary: str = ""
    steps: list[str] = Field(default_factory=list)


class StateInsight(BaseModel):
    """Average composite score for a state among ranked candidates."""

    state: str
    average_score: float
    district_count: int


class CommandResult(BaseModel):
    """Pipeline output before HTTP serialization."""

    intent: Intent
    confidence_threshold: float
    explanation: str
    reasoning: ReasoningTrace
    grant_criteria: GrantCriteria
    districts: list[RankedResult]
    insights: Optional[list[StateInsight]] = None
    outcome: Literal["ok", "policy_exhausted"] = "ok"
    generated_at: datetime


class DistrictWhyDetails(BaseModel):
    """Standalone on-demand explanation for one district."""

    nces_id: str
    district_name: str
    score: ScoreBreakdown
    why: Explanation
    generated_at: datetime
