"""
Composite Scoring and Confidence Estimation
Blends semantic relevance, static taxonomy scores, eligibility boosts and
penalties into a single ranking number, and derives a confidence band.
"""
import math
from typing import Optional

from .candidates import meets_frpl, meets_minority
from .models import (
    CandidateEntity,
    ConfidenceBand,
    GrantCriteria,
    ScoreBreakdown,
)

# Composite weights
SEMANTIC_MAX_WEIGHT = 6.0
SEMANTIC_AVG_WEIGHT = 2.0
HIT_COUNT_CAP = 1.5
KEYWORD_WEIGHT = 0.5
ELIGIBILITY_BOOST = 0.5
ENGAGEMENT_PENALTY = 2.0

# Confidence
CONFIDENCE_MIN = 0.2
CONFIDENCE_MAX = 0.98
CONFIDENCE_SCALE = 12.0
HIGH_BAND_MIN = 0.8
MEDIUM_BAND_MIN = 0.6
CONFIDENCE_FLOOR_MARGIN = 0.25

# Caller threshold bounds
THRESHOLD_MIN = 0.2
THRESHOLD_MAX = 0.95


def semantic_score(max_similarity: float, avg_similarity: float, hit_count: int) -> float:
    """6*max + 2*avg + min(1.5, log10(hits + 1))."""
    return (
        SEMANTIC_MAX_WEIGHT * max_similarity
        + SEMANTIC_AVG_WEIGHT * avg_similarity
        + min(HIT_COUNT_CAP, math.log10(max(0, hit_count) + 1))
    )


def score_candidate(
    candidate: CandidateEntity,
    criteria: Optional[GrantCriteria] = None,
    suppressed: bool = False,
) -> ScoreBreakdown:
    """
    Compute the composite ranking score for a candidate.

    The engagement penalty only fires for suppressed candidates, which the
    hard suppression filter normally removes first. It is kept for callers
    that score a district outside the filtered flow.

    Args:
        candidate: Assembled candidate.
        criteria: Resolved grant criteria (for eligibility boosts).
        suppressed: Whether the candidate is in the suppression set.

    Returns:
        ScoreBreakdown with composite clamped at zero.
    """
    semantic = candidate.semantic_or_empty
    scores = candidate.scores
    criteria = criteria or GrantCriteria()

    semantic_part = semantic_score(semantic.max_similarity, semantic.avg_similarity, semantic.hit_count)
    keyword_boost = KEYWORD_WEIGHT * scores.total
    eligibility_boost = 0.0
    if meets_frpl(candidate, criteria):
        eligibility_boost += ELIGIBILITY_BOOST
    if meets_minority(candidate, criteria):
        eligibility_boost += ELIGIBILITY_BOOST
    engagement_penalty = ENGAGEMENT_PENALTY if suppressed else 0.0

    composite = max(0.0, semantic_part + keyword_boost + eligibility_boost - engagement_penalty)

    return ScoreBreakdown(
        readiness=scores.readiness,
        alignment=scores.alignment,
        activation=scores.activation,
        branding=scores.branding,
        total=scores.total,
        semantic_score=round(semantic_part, 4),
        keyword_boost=round(keyword_boost, 4),
        eligibility_boost=eligibility_boost,
        engagement_penalty=engagement_penalty,
        composite=composite,
    )


def estimate_confidence(composite: float, avg_similarity: float) -> float:
    """clamp(0.2, 0.98, (composite + 2*avg) / 12)."""
    raw = (composite + SEMANTIC_AVG_WEIGHT * avg_similarity) / CONFIDENCE_SCALE
    return min(CONFIDENCE_MAX, max(CONFIDENCE_MIN, raw))


def confidence_band(confidence: float) -> ConfidenceBand:
    """Map a confidence value to its band; monotone non-decreasing."""
    if confidence >= HIGH_BAND_MIN:
        return ConfidenceBand.HIGH
    if confidence >= MEDIUM_BAND_MIN:
        return ConfidenceBand.MEDIUM
    return ConfidenceBand.LOW


def confidence_floor(threshold: float) -> float:
    """
    Soft floor beneath the caller's threshold.

    Candidates below the floor are dropped before ranking; those between
    the floor and the threshold are kept and labeled with a dampener.
    """
    return max(CONFIDENCE_MIN, threshold - CONFIDENCE_FLOOR_MARGIN)


def clamp_threshold(threshold: Optional[float], default: float = 0.6) -> float:
    """Clamp a caller-supplied confidence threshold to [0.2, 0.95]."""
    if threshold is None:
        return default
    return min(THRESHOLD_MAX, max(THRESHOLD_MIN, float(threshold)))
