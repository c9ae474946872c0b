"""
Command Search Pipeline
Ranks districts for a free-text command using semantic evidence, static
taxonomy scores and policy filters, and explains every ranked result.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from backend.core.config import settings

from .candidates import FilterPipeline, assemble_candidates
from .criteria import extract_grant_criteria
from .evidence import (
    KeywordEvidenceReport,
    attach_evidence_urls,
    build_keyword_evidence,
    document_ids_in,
)
from .exceptions import DistrictNotFoundError, RankingUnavailableError
from .explainer import explain_candidate
from .intent import classify_intent
from .models import (
    CandidateEntity,
    CommandRequest,
    CommandResult,
    DistrictWhyDetails,
    GrantCriteria,
    Intent,
    RankedResult,
    SemanticAggregate,
    StateInsight,
    candidate_from_row,
)
from .ranker import (
    ReasoningTracer,
    ScoredCandidate,
    rank_results,
    sort_candidates,
    summarize_states,
)
from .scoring import (
    clamp_threshold,
    confidence_floor,
    estimate_confidence,
    score_candidate,
)
from .semantic import aggregate_chunk_hits
from .sources import EmbeddingProvider, EntityRegistry, ScoreStore, SemanticIndex
from .suppression import build_suppression_set

logger = structlog.get_logger().bind(agent="ranking")

T = TypeVar("T")

INTENT_LABELS = {
    Intent.INSIGHTS_BRIEFING: "Insights briefing",
    Intent.GRANT_MATCH: "Grant match",
    Intent.NEXT_HOTTEST_UNCONTACTED: "Next hottest uncontacted leads",
    Intent.DISTRICT_SEARCH: "District search",
}


def describe_criteria(criteria: GrantCriteria) -> str:
    """Short human-readable rendering of active grant thresholds."""
    parts = []
    if criteria.frpl_min is not None:
        parts.append(f"FRPL >= {criteria.frpl_min:g}%")
    if criteria.minority_min is not None:
        parts.append(f"minority >= {criteria.minority_min:g}%")
    if criteria.min_enrollment is not None:
        parts.append(f"enrollment >= {criteria.min_enrollment:,}")
    if criteria.states:
        parts.append(f"states {', '.join(criteria.states)}")
    return ", ".join(parts)


def build_command_explanation(
    intent: Intent,
    results: list[RankedResult],
    criteria: GrantCriteria,
    insights: Optional[list[StateInsight]] = None,
) -> str:
    """Narrative answer shown above the ranked list."""
    if not results:
        return (
            "No districts met the current filters and confidence floor. "
            "Try relaxing the state, score or grant criteria."
        )

    count = len(results)
    noun = "district" if count == 1 else "districts"
    if intent == Intent.INSIGHTS_BRIEFING:
        states = ", ".join(f"{item.state} ({item.average_score:.1f})" for item in insights or [])
        lead = f"Top states by average score: {states}. Showing the top {count} {noun}." if states else (
            f"Showing the top {count} {noun}."
        )
    elif intent == Intent.GRANT_MATCH:
        described = describe_criteria(criteria)
        lead = f"Found {count} {noun} meeting grant criteria" + (f" ({described})." if described else ".")
    elif intent == Intent.NEXT_HOTTEST_UNCONTACTED:
        lead = f"Found {count} uncontacted {noun} ranked by readiness and relevance."
    else:
        lead = f"Found {count} {noun} relevant to your request."

    top = results[0]
    location = f" ({top.district.state})" if top.district.state else ""
    return f"{lead} Top match: {top.district.name}{location} with {top.why.confidence_band.value} confidence."


class CommandSearchPipeline:
    """
    Command search ranking engine.

    Implements a two-stage relevance model:
    1. Bounded semantic retrieval (top-K chunks above a similarity floor)
    2. Composite scoring with static taxonomy scores and eligibility boosts

    All collaborators are injected so tests can supply doubles.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        semantic_index: SemanticIndex,
        score_store: ScoreStore,
        registry: EntityRegistry,
        top_k: Optional[int] = None,
        similarity_floor: Optional[float] = None,
        embedding_timeout: Optional[float] = None,
        retrieval_timeout: Optional[float] = None,
        full_explanation_limit: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize pipeline.

        Args:
            embedder: Embedding generation service.
            semantic_index: Chunk similarity index.
            score_store: Static taxonomy score store.
            registry: District registry.
            top_k: Chunks retrieved per query.
            similarity_floor: Minimum chunk similarity.
            embedding_timeout: Deadline in seconds for the embedding call.
            retrieval_timeout: Deadline in seconds for the top-K call.
            full_explanation_limit: Ranks that get a computed rationale.
            clock: Current-time provider (UTC).
        """
        self.embedder = embedder
        self.semantic_index = semantic_index
        self.score_store = score_store
        self.registry = registry
        self.top_k = top_k or settings.semantic_top_k
        self.similarity_floor = (
            similarity_floor if similarity_floor is not None else settings.semantic_similarity_floor
        )
        self.embedding_timeout = embedding_timeout or settings.embedding_timeout_seconds
        self.retrieval_timeout = retrieval_timeout or settings.retrieval_timeout_seconds
        self.full_explanation_limit = full_explanation_limit or settings.full_explanation_limit
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # -------------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------------

    async def _embed_prompt(self, prompt: str) -> list[float]:
        try:
            embedding = await asyncio.wait_for(self.embedder.embed(prompt), timeout=self.embedding_timeout)
        except asyncio.TimeoutError as e:
            logger.error("embedding_timeout", timeout=self.embedding_timeout)
            raise RankingUnavailableError("Embedding service timed out") from e
        except RankingUnavailableError:
            raise
        except Exception as e:
            logger.error("embedding_error", error=str(e), error_type=type(e).__name__)
            raise RankingUnavailableError("Embedding service unavailable") from e

        if not embedding:
            raise RankingUnavailableError("No embedding generated for prompt")
        return embedding

    async def retrieve_semantic(self, prompt: str) -> dict[str, SemanticAggregate]:
        """
        Embed the prompt and aggregate its top-K chunk hits per district.

        Raises:
            RankingUnavailableError: Embedding or similarity lookup failed
                or exceeded its deadline.
        """
        embedding = await self._embed_prompt(prompt)
        try:
            hits = await asyncio.wait_for(
                self.semantic_index.top_chunks(embedding, self.top_k, self.similarity_floor),
                timeout=self.retrieval_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("semantic_retrieval_timeout", timeout=self.retrieval_timeout)
            raise RankingUnavailableError("Similarity index timed out") from e
        except Exception as e:
            logger.error("semantic_retrieval_error", error=str(e), error_type=type(e).__name__)
            raise RankingUnavailableError("Similarity index unavailable") from e

        return aggregate_chunk_hits(hits, top_k=self.top_k, floor=self.similarity_floor)

    async def _from_store(self, operation: str, call: Awaitable[T]) -> T:
        """Await a store call, mapping any failure to RankingUnavailableError."""
        try:
            return await call
        except Exception as e:
            logger.error("district_store_error", operation=operation, error=str(e), error_type=type(e).__name__)
            raise RankingUnavailableError(f"District store unavailable ({operation})") from e

    async def _load_candidates(self, prompt: str) -> tuple[list[CandidateEntity], int]:
        # Embedding -> top-K runs alongside the static score lookup
        semantic_task = asyncio.ensure_future(self.retrieve_semantic(prompt))
        scores_task = asyncio.ensure_future(self._from_store("fetch_scored", self.score_store.fetch_scored()))
        try:
            aggregates, scored_rows = await asyncio.gather(semantic_task, scores_task)
        except Exception:
            # The first failure aborts the search; the sibling must not outlive it
            for task in (semantic_task, scores_task):
                task.cancel()
            await asyncio.gather(semantic_task, scores_task, return_exceptions=True)
            raise

        scored_ids = {str(row["nces_id"]) for row in scored_rows}
        semantic_only = sorted(set(aggregates) - scored_ids)
        registry_rows = (
            await self._from_store("fetch_many", self.registry.fetch_many(semantic_only)) if semantic_only else []
        )

        return assemble_candidates(scored_rows, aggregates, registry_rows), len(aggregates)

    async def _attach_document_urls(self, candidates: list[CandidateEntity]) -> None:
        document_ids = sorted(
            {item.document_id for candidate in candidates for item in candidate.evidence if item.document_id}
        )
        if not document_ids:
            return
        urls = await self._from_store("document_urls", self.registry.document_urls(document_ids))
        for candidate in candidates:
            for item in candidate.evidence:
                if item.document_id and not item.document_url:
                    item.document_url = urls.get(item.document_id)

    # -------------------------------------------------------------------------
    # Command search
    # -------------------------------------------------------------------------

    async def run(self, request: CommandRequest) -> CommandResult:
        """
        Run a command search.

        Main entry point for the ranking workflow.

        Args:
            request: Normalized command request.

        Returns:
            Ranked, explained districts with a reasoning trace.

        Raises:
            RankingUnavailableError: Embedding, similarity or district store
                failed; no partial results are produced.
        """
        start_time = time.time()
        now = self.clock()
        tracer = ReasoningTracer()

        prompt = request.prompt.strip()
        threshold = clamp_threshold(request.confidence_threshold, settings.default_confidence_threshold)
        lead_filters = request.lead_filters

        # Independent of retrieval
        intent = classify_intent(prompt)
        criteria = extract_grant_criteria(prompt, request.attachment_text).merge(request.grant_criteria)
        suppressed_ids = build_suppression_set(
            request.events,
            request.suppression_days,
            lead_filters.exclude_ids,
            now=now,
        )
        tracer.record(f"Intent classified as {intent.value}.")

        candidates, semantic_count = await self._load_candidates(prompt)
        initial_count = len(candidates)
        tracer.record(
            f"Retrieved {initial_count} candidate districts "
            f"({semantic_count} with semantic matches in the top {self.top_k} chunks)."
        )

        filtering = FilterPipeline(suppressed_ids, lead_filters, criteria).run(candidates)
        after_suppression = filtering.remaining_after(FilterPipeline.SUPPRESSION)
        tracer.record(
            f"Suppressed {initial_count - after_suppression} recently engaged or excluded districts; "
            f"{after_suppression} remain."
        )
        for stage in filtering.stages[1:]:
            tracer.record(self._describe_stage(stage.name, stage.applied, stage.remaining, lead_filters, criteria))

        floor = confidence_floor(threshold)
        scored: list[ScoredCandidate] = []
        for candidate in filtering.candidates:
            score = score_candidate(candidate, criteria, suppressed=candidate.nces_id in suppressed_ids)
            confidence = estimate_confidence(score.composite, candidate.semantic_or_empty.avg_similarity)
            if confidence < floor:
                continue
            scored.append(ScoredCandidate(candidate=candidate, score=score, confidence=confidence))
        tracer.record(f"Confidence floor {floor:.2f} kept {len(scored)} districts.")

        limit = lead_filters.limit or settings.default_result_limit
        limit = min(limit, settings.max_result_limit)
        insights = None
        if intent == Intent.INSIGHTS_BRIEFING:
            insights = summarize_states(scored)
            limit = min(limit, settings.insights_result_limit)

        top = sort_candidates(scored)[: min(limit, self.full_explanation_limit)]
        await self._attach_document_urls([item.candidate for item in top])

        results = rank_results(
            scored,
            limit=limit,
            threshold=threshold,
            criteria=criteria,
            full_explanation_limit=self.full_explanation_limit,
        )
        tracer.record(f"Returned {len(results)} ranked districts.")

        outcome = "ok" if results else "policy_exhausted"
        summary = f"{INTENT_LABELS[intent]}: {len(results)} of {initial_count} candidates returned."
        if outcome == "policy_exhausted":
            summary += " Filters excluded every candidate."

        logger.info(
            "command_search_complete",
            intent=intent.value,
            candidates=initial_count,
            semantic_matches=semantic_count,
            suppressed=len(suppressed_ids),
            results=len(results),
            outcome=outcome,
            processing_time_seconds=round(time.time() - start_time, 3),
        )

        return CommandResult(
            intent=intent,
            confidence_threshold=threshold,
            explanation=build_command_explanation(intent, results, criteria, insights),
            reasoning=tracer.build(summary),
            grant_criteria=criteria,
            districts=results,
            insights=insights,
            outcome=outcome,
            generated_at=now,
        )

    @staticmethod
    def _describe_stage(name, applied, remaining, lead_filters, criteria) -> str:
        if name == FilterPipeline.STATES:
            if not applied:
                return f"No state filter applied; {remaining} remain."
            return f"State filter ({', '.join(s.upper() for s in lead_filters.states)}) kept {remaining}."
        if name == FilterPipeline.SCORE_THRESHOLDS:
            if not applied:
                return f"No score thresholds applied; {remaining} remain."
            return f"Score thresholds kept {remaining}."
        if not applied:
            return f"No grant criteria applied; {remaining} remain."
        return f"Grant criteria ({describe_criteria(criteria)}) kept {remaining}."

    # -------------------------------------------------------------------------
    # On-demand explanation
    # -------------------------------------------------------------------------

    async def explain(self, nces_id: str, confidence_threshold: Optional[float] = None) -> DistrictWhyDetails:
        """
        Compute the full explanation for one district without ranking context.

        Uses the same scoring logic with no semantic signal and no grant
        criteria.

        Args:
            nces_id: District NCES identifier.
            confidence_threshold: Caller's confidence threshold.

        Returns:
            Standalone explanation payload.

        Raises:
            DistrictNotFoundError: The district is not in the registry.
            RankingUnavailableError: The district store failed.
        """
        threshold = clamp_threshold(confidence_threshold, settings.default_confidence_threshold)

        row = await self._from_store("fetch_one", self.registry.fetch_one(nces_id))
        if row is None:
            logger.warning("district_not_found", nces_id=nces_id)
            raise DistrictNotFoundError(nces_id)

        candidate = candidate_from_row(row)
        await self._attach_document_urls([candidate])

        score = score_candidate(candidate)
        confidence = estimate_confidence(score.composite, 0.0)
        why = explain_candidate(candidate, score, confidence, threshold)

        return DistrictWhyDetails(
            nces_id=candidate.nces_id,
            district_name=candidate.name,
            score=score,
            why=why,
            generated_at=self.clock(),
        )

    async def keyword_evidence(self, nces_id: str) -> KeywordEvidenceReport:
        """
        Keyword scores and per-category evidence for one district.

        Raises:
            DistrictNotFoundError: The district is not in the registry.
            RankingUnavailableError: The district store failed.
        """
        row = await self._from_store("fetch_one", self.registry.fetch_one(nces_id))
        if row is None:
            logger.warning("district_not_found", nces_id=nces_id)
            raise DistrictNotFoundError(nces_id)

        report = build_keyword_evidence(row)
        document_ids = document_ids_in(report)
        if document_ids:
            urls = await self._from_store("document_urls", self.registry.document_urls(document_ids))
            attach_evidence_urls(report, urls)
        return report
