"""
Candidate Assembly and Filtering
Builds per-request district candidates and reduces them with
order-sensitive policy filters.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from .models import (
    CandidateEntity,
    GrantCriteria,
    LeadFilters,
    SemanticAggregate,
    candidate_from_row,
)


def assemble_candidates(
    scored_rows: Iterable[dict[str, Any]],
    aggregates: dict[str, SemanticAggregate],
    registry_rows: Iterable[dict[str, Any]] = (),
    document_urls: Optional[dict[str, str]] = None,
) -> list[CandidateEntity]:
    """
    Join static scores with semantic aggregates.

    Args:
        scored_rows: Registry rows joined with keyword scores.
        aggregates: Semantic aggregates keyed by NCES id.
        registry_rows: Registry rows (no scores) for districts that only
            have a semantic aggregate.
        document_urls: Document id to URL mapping for evidence links.

    Returns:
        Candidates for every district with static scores, a semantic
        aggregate, or both. Districts with neither are dropped.
    """
    candidates: dict[str, CandidateEntity] = {}

    for row in scored_rows:
        nces_id = str(row["nces_id"])
        candidates[nces_id] = candidate_from_row(row, aggregates.get(nces_id), document_urls)

    for row in registry_rows:
        nces_id = str(row["nces_id"])
        if nces_id in candidates or nces_id not in aggregates:
            continue
        candidates[nces_id] = candidate_from_row(row, aggregates[nces_id], document_urls)

    return list(candidates.values())


def meets_frpl(candidate: CandidateEntity, criteria: GrantCriteria) -> bool:
    return (
        criteria.frpl_min is not None
        and candidate.frpl_percent is not None
        and candidate.frpl_percent >= criteria.frpl_min
    )


def meets_minority(candidate: CandidateEntity, criteria: GrantCriteria) -> bool:
    return (
        criteria.minority_min is not None
        and candidate.minority_percent is not None
        and candidate.minority_percent >= criteria.minority_min
    )


def is_grant_eligible(candidate: CandidateEntity, criteria: GrantCriteria) -> bool:
    """
    Check a candidate against every supplied grant threshold.

    A missing attribute cannot prove eligibility, so it fails a supplied
    threshold.
    """
    if criteria.frpl_min is not None and not meets_frpl(candidate, criteria):
        return False
    if criteria.minority_min is not None and not meets_minority(candidate, criteria):
        return False
    if criteria.min_enrollment is not None and (
        candidate.enrollment is None or candidate.enrollment < criteria.min_enrollment
    ):
        return False
    if criteria.states and (candidate.state or "").upper() not in {s.upper() for s in criteria.states}:
        return False
    return True


def _meets_score_thresholds(candidate: CandidateEntity, filters: LeadFilters) -> bool:
    scores = candidate.scores
    thresholds = (
        (filters.min_total_score, scores.total),
        (filters.min_readiness_score, scores.readiness),
        (filters.min_activation_score, scores.activation),
    )
    return all(minimum is None or value >= minimum for minimum, value in thresholds)


@dataclass
class FilterStage:
    """A named filter stage and the count it left behind."""

    name: str
    remaining: int
    applied: bool


@dataclass
class FilterOutcome:
    """Result of running the filter pipeline."""

    candidates: list[CandidateEntity]
    stages: list[FilterStage] = field(default_factory=list)

    def remaining_after(self, name: str) -> Optional[int]:
        for stage in self.stages:
            if stage.name == name:
                return stage.remaining
        return None


class FilterPipeline:
    """
    Sequential conjunctive filters.

    Stages run in a fixed order, each on the output of the previous one:
    suppression, state allow-list, score thresholds, grant eligibility.
    The order only affects the per-stage counts in the reasoning trace.
    """

    SUPPRESSION = "suppression"
    STATES = "states"
    SCORE_THRESHOLDS = "score_thresholds"
    GRANT_CRITERIA = "grant_criteria"

    def __init__(
        self,
        suppressed_ids: set[str],
        lead_filters: LeadFilters,
        grant_criteria: GrantCriteria,
    ):
        self.suppressed_ids = suppressed_ids
        self.lead_filters = lead_filters
        self.grant_criteria = grant_criteria

    def _stages(self) -> list[tuple[str, bool, Callable[[CandidateEntity], bool]]]:
        allowed_states = {state.upper() for state in self.lead_filters.states}
        filters = self.lead_filters
        has_thresholds = any(
            value is not None
            for value in (filters.min_total_score, filters.min_readiness_score, filters.min_activation_score)
        )
        criteria = self.grant_criteria
        has_grant_thresholds = any(
            value is not None
            for value in (criteria.frpl_min, criteria.minority_min, criteria.min_enrollment)
        ) or bool(criteria.states)

        return [
            (
                self.SUPPRESSION,
                bool(self.suppressed_ids),
                lambda c: c.nces_id not in self.suppressed_ids,
            ),
            (
                self.STATES,
                bool(allowed_states),
                lambda c: (c.state or "").upper() in allowed_states,
            ),
            (
                self.SCORE_THRESHOLDS,
                has_thresholds,
                lambda c: _meets_score_thresholds(c, filters),
            ),
            (
                self.GRANT_CRITERIA,
                has_grant_thresholds,
                lambda c: is_grant_eligible(c, criteria),
            ),
        ]

    def run(self, candidates: list[CandidateEntity]) -> FilterOutcome:
        """Apply all stages in order and record the surviving counts."""
        outcome = FilterOutcome(candidates=list(candidates))
        for name, applied, predicate in self._stages():
            if applied:
                outcome.candidates = [c for c in outcome.candidates if predicate(c)]
            outcome.stages.append(FilterStage(name=name, remaining=len(outcome.candidates), applied=applied))
        return outcome
