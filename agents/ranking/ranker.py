"""
Ranking, Limiting and Reasoning Trace
Orders scored candidates, truncates them, attaches rationales and records
the per-stage audit trail.
"""
from dataclasses import dataclass
from typing import Optional

from .explainer import explain_candidate, placeholder_explanation
from .models import (
    CandidateEntity,
    DistrictActions,
    GrantCriteria,
    RankedResult,
    ReasoningTrace,
    ScoreBreakdown,
    StateInsight,
)

FULL_EXPLANATION_LIMIT = 25
TOP_STATES_LIMIT = 3


@dataclass
class ScoredCandidate:
    """A candidate with its score breakdown and confidence."""

    candidate: CandidateEntity
    score: ScoreBreakdown
    confidence: float

    @property
    def sort_key(self) -> tuple[float, str]:
        # Composite descending, then NCES id ascending for deterministic ties
        return (-self.score.composite, self.candidate.nces_id)


def derive_actions(candidate: CandidateEntity) -> DistrictActions:
    """Build contact and site links from the district record."""
    site = None
    if candidate.website_domain:
        domain = candidate.website_domain.strip()
        site = domain if domain.startswith(("http://", "https://")) else f"https://{domain}"
    return DistrictActions(
        open_district_site=site,
        email=candidate.superintendent_email or None,
        phone=candidate.phone or None,
    )


def sort_candidates(scored: list[ScoredCandidate]) -> list[ScoredCandidate]:
    return sorted(scored, key=lambda item: item.sort_key)


def rank_results(
    scored: list[ScoredCandidate],
    limit: int,
    threshold: float,
    criteria: Optional[GrantCriteria] = None,
    full_explanation_limit: int = FULL_EXPLANATION_LIMIT,
) -> list[RankedResult]:
    """
    Sort, truncate and explain scored candidates.

    Only the first full_explanation_limit results get a computed rationale;
    the rest carry the deferred placeholder and are explained on demand.

    Args:
        scored: Scored candidates (any order).
        limit: Maximum number of results.
        threshold: Caller's confidence threshold.
        criteria: Resolved grant criteria.
        full_explanation_limit: Rank cut-off for full rationales.

    Returns:
        Ranked results sorted non-increasing by composite.
    """
    ranked = sort_candidates(scored)[: max(0, limit)]

    results = []
    for rank, item in enumerate(ranked, start=1):
        if rank <= full_explanation_limit:
            why = explain_candidate(item.candidate, item.score, item.confidence, threshold, criteria)
        else:
            why = placeholder_explanation(item.confidence)
        results.append(
            RankedResult(
                district=item.candidate,
                score=item.score,
                why=why,
                actions=derive_actions(item.candidate),
            )
        )
    return results


def summarize_states(scored: list[ScoredCandidate], limit: int = TOP_STATES_LIMIT) -> list[StateInsight]:
    """Top states by average composite score among scored candidates."""
    totals: dict[str, list[float]] = {}
    for item in scored:
        if not item.candidate.state:
            continue
        totals.setdefault(item.candidate.state.upper(), []).append(item.score.composite)

    insights = [
        StateInsight(
            state=state,
            average_score=round(sum(values) / len(values), 3),
            district_count=len(values),
        )
        for state, values in totals.items()
    ]
    insights.sort(key=lambda insight: (-insight.average_score, insight.state))
    return insights[:limit]


class ReasoningTracer:
    """Accumulates one human-readable line per pipeline stage."""

    def __init__(self):
        self.steps: list[str] = []

    def record(self, step: str) -> None:
        self.steps.append(step)

    def build(self, summary: str) -> ReasoningTrace:
        return ReasoningTrace(summary=summary, steps=list(self.steps))
