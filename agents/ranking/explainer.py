"""
Explanation Generator
Produces a prioritized, readable rationale for a ranked district.
"""
from typing import Optional

from .candidates import meets_frpl, meets_minority
from .models import (
    CandidateEntity,
    Dampener,
    Explanation,
    GrantCriteria,
    ScoreBreakdown,
    Signal,
    SourceExcerpt,
    TaxonomyCategory,
)
from .scoring import confidence_band

STRONG_CATEGORY_MIN = 3.0
HIGH_SEMANTIC_MIN = 0.7
MODERATE_SEMANTIC_MIN = 0.5
MAX_SUMMARY_KEYWORDS = 3
MAX_SOURCE_EXCERPTS = 3
MAX_EXCERPT_LENGTH = 400

CATEGORY_LABELS = {
    TaxonomyCategory.READINESS: "readiness for change",
    TaxonomyCategory.ALIGNMENT: "instructional alignment",
    TaxonomyCategory.ACTIVATION: "active engagement",
    TaxonomyCategory.BRANDING: "communications and branding",
}

MODERATE_SIGNALS_PHRASE = "Shows moderate signals across the readiness taxonomy"
LOW_CONFIDENCE_REASON = "Confidence is below the requested threshold; treat this match as exploratory."
DEFERRED_SUMMARY = 'Rationale available on demand. Click "Load full rationale".'


def _ranked_categories(candidate: CandidateEntity) -> list[tuple[TaxonomyCategory, float]]:
    return sorted(candidate.scores.by_category().items(), key=lambda item: item[1], reverse=True)


def _truncate(text: str, limit: int = MAX_EXCERPT_LENGTH) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


def select_source_excerpts(
    candidate: CandidateEntity,
    limit: int = MAX_SOURCE_EXCERPTS,
) -> list[SourceExcerpt]:
    """
    Pick evidence excerpts, strongest category first, one per keyword.
    """
    category_rank = {category: index for index, (category, _) in enumerate(_ranked_categories(candidate))}
    ordered = sorted(
        (item for item in candidate.evidence if item.excerpt),
        key=lambda item: category_rank.get(item.category, len(category_rank)),
    )

    excerpts: list[SourceExcerpt] = []
    seen: set[str] = set()
    for item in ordered:
        key = item.keyword.lower()
        if key in seen:
            continue
        seen.add(key)
        excerpts.append(
            SourceExcerpt(
                keyword=item.keyword,
                excerpt=_truncate(item.excerpt),
                source_url=item.document_url,
            )
        )
        if len(excerpts) >= limit:
            break
    return excerpts


def _summary_keywords(excerpts: list[SourceExcerpt]) -> list[str]:
    terms: list[str] = []
    for excerpt in excerpts:
        term = excerpt.keyword.replace("_", " ").strip()
        if term and term not in terms:
            terms.append(term)
        if len(terms) >= MAX_SUMMARY_KEYWORDS:
            break
    return terms


def build_summary(candidate: CandidateEntity, excerpts: list[SourceExcerpt]) -> str:
    """
    Compose the rationale sentence.

    Leads with the strongest taxonomy category (or a moderate-signals
    phrase), then semantic relevance, cited keywords, and a second strong
    category when there is one.
    """
    strong = [(category, value) for category, value in _ranked_categories(candidate) if value >= STRONG_CATEGORY_MIN]

    if strong:
        category, value = strong[0]
        parts = [f"Strong {CATEGORY_LABELS[category]} signals ({value:.1f}/10)"]
    else:
        parts = [MODERATE_SIGNALS_PHRASE]

    max_similarity = candidate.semantic_or_empty.max_similarity
    if max_similarity >= HIGH_SEMANTIC_MIN:
        parts.append("high semantic relevance to this request")
    elif max_similarity >= MODERATE_SEMANTIC_MIN:
        parts.append("moderate semantic relevance to this request")

    terms = _summary_keywords(excerpts)
    if terms:
        parts.append(f"documents mention {', '.join(terms)}")

    if len(strong) > 1:
        category, value = strong[1]
        parts.append(f"also strong on {CATEGORY_LABELS[category]} ({value:.1f}/10)")

    return "; ".join(parts) + "."


def build_top_signals(
    candidate: CandidateEntity,
    score: ScoreBreakdown,
    criteria: Optional[GrantCriteria] = None,
) -> list[Signal]:
    """Semantic max, readiness, activation and total always; eligibility when boosted."""
    semantic = candidate.semantic_or_empty
    documents = "document" if semantic.hit_count == 1 else "documents"
    signals = [
        Signal(
            signal="Semantic match",
            category="semantic",
            weight=round(semantic.max_similarity, 3),
            reason=f"Best chunk similarity across {semantic.hit_count} matching {documents}",
        ),
        Signal(signal="Readiness", category=TaxonomyCategory.READINESS.value, weight=score.readiness),
        Signal(signal="Activation", category=TaxonomyCategory.ACTIVATION.value, weight=score.activation),
        Signal(signal="Total score", category="taxonomy", weight=score.total),
    ]

    criteria = criteria or GrantCriteria()
    if meets_frpl(candidate, criteria):
        signals.append(
            Signal(
                signal="FRPL eligibility",
                category="eligibility",
                weight=candidate.frpl_percent,
                reason=f"FRPL {candidate.frpl_percent:.0f}% meets the {criteria.frpl_min:.0f}% minimum",
            )
        )
    if meets_minority(candidate, criteria):
        signals.append(
            Signal(
                signal="Minority eligibility",
                category="eligibility",
                weight=candidate.minority_percent,
                reason=f"Minority {candidate.minority_percent:.0f}% meets the {criteria.minority_min:.0f}% minimum",
            )
        )
    return signals


def build_dampeners(confidence: float, threshold: float) -> list[Dampener]:
    if confidence >= threshold:
        return []
    return [
        Dampener(
            signal="confidence",
            impact=round(threshold - confidence, 3),
            reason=LOW_CONFIDENCE_REASON,
        )
    ]


def explain_candidate(
    candidate: CandidateEntity,
    score: ScoreBreakdown,
    confidence: float,
    threshold: float,
    criteria: Optional[GrantCriteria] = None,
) -> Explanation:
    """
    Build the full explanation for a ranked candidate.

    Args:
        candidate: The candidate district.
        score: Its composite score breakdown.
        confidence: Estimated confidence.
        threshold: Caller's confidence threshold.
        criteria: Resolved grant criteria.

    Returns:
        Explanation with summary, top signals, excerpts and dampeners.
    """
    excerpts = select_source_excerpts(candidate)
    return Explanation(
        confidence=confidence,
        confidence_band=confidence_band(confidence),
        summary=build_summary(candidate, excerpts),
        top_signals=build_top_signals(candidate, score, criteria),
        source_excerpts=excerpts,
        dampeners=build_dampeners(confidence, threshold),
        detail="full",
    )


def placeholder_explanation(confidence: float) -> Explanation:
    """Deferred rationale for results ranked beyond the full-explanation limit."""
    return Explanation(
        confidence=confidence,
        confidence_band=confidence_band(confidence),
        summary=DEFERRED_SUMMARY,
        top_signals=[],
        source_excerpts=[],
        dampeners=[],
        detail="deferred",
    )
