"""
Tests for the command search pipeline.
Exercises the full flow against in-memory collaborators.
"""
from datetime import timedelta

import pytest

from agents.ranking import (
    CommandRequest,
    DistrictNotFoundError,
    EngagementEvent,
    GrantCriteria,
    Intent,
    LeadFilters,
    RankingUnavailableError,
)
from agents.ranking.explainer import DEFERRED_SUMMARY
from agents.ranking.semantic import ChunkHit
from tests.fixtures.ranking import (
    FakeEmbedder,
    FakeRegistry,
    FakeScoreStore,
    FakeSemanticIndex,
    make_district_row,
    make_keyword_matches,
)


def _request(prompt: str, **kwargs) -> CommandRequest:
    kwargs.setdefault("confidence_threshold", 0.2)
    return CommandRequest(prompt=prompt, **kwargs)


class TestCommandSearchScenarios:
    """End-to-end ranking scenarios."""

    @pytest.mark.asyncio
    async def test_state_in_prompt_restricts_results(self, build_pipeline, sample_rows, sample_hits):
        """Test that a state code in the prompt keeps only that state's districts."""
        pipeline = build_pipeline(sample_rows, hits=sample_hits)

        result = await pipeline.run(_request("Find districts in TX focused on portrait of a graduate"))

        assert result.intent == Intent.DISTRICT_SEARCH
        assert result.grant_criteria.states == ["TX"]
        assert [r.district.nces_id for r in result.districts] == ["4800001", "4800002"]
        assert all(r.district.state == "TX" for r in result.districts)
        assert result.outcome == "ok"

    @pytest.mark.asyncio
    async def test_frpl_and_minority_thresholds(self, build_pipeline):
        """Test that grant thresholds filter and boost eligible districts."""
        rows = [
            make_district_row("4800011", frpl_percent=80, minority_percent=65),
            make_district_row("4800012", frpl_percent=60, minority_percent=70),
            make_district_row("4800013", frpl_percent=None, minority_percent=90),
            make_district_row("4800014", frpl_percent=75, minority_percent=61),
        ]
        pipeline = build_pipeline(rows)

        result = await pipeline.run(_request("Grant match: FRPL above 70% and minority above 60%"))

        assert result.intent == Intent.GRANT_MATCH
        assert [r.district.nces_id for r in result.districts] == ["4800011", "4800014"]
        for ranked in result.districts:
            assert ranked.score.eligibility_boost == 1.0
            signals = {s.signal for s in ranked.why.top_signals}
            assert {"FRPL eligibility", "Minority eligibility"} <= signals
        assert "Grant criteria (FRPL >= 70%, minority >= 60%) kept 2." in result.reasoning.steps

    @pytest.mark.asyncio
    async def test_briefing_outranks_grant_and_caps_results(self, build_pipeline):
        """Test that a briefing mentioning grants stays a briefing with at most 10 results."""
        states = ["TX", "CA", "NY", "OH"]
        rows = [
            make_district_row(f"48000{i:02d}", state=states[i % 4], total=float(i % 7))
            for i in range(12)
        ]
        pipeline = build_pipeline(rows)

        result = await pipeline.run(_request("State trend briefing for grant-eligible districts"))

        assert result.intent == Intent.INSIGHTS_BRIEFING
        assert len(result.districts) == 10
        assert result.insights is not None
        assert 1 <= len(result.insights) <= 3
        assert result.explanation.startswith("Top states by average score:")

    @pytest.mark.asyncio
    async def test_engagement_suppression(self, build_pipeline, sample_rows, fixed_now):
        """Test that recent engagement and explicit exclusions remove districts."""
        pipeline = build_pipeline(sample_rows)
        request = _request(
            "next hottest uncontacted districts",
            events=[
                EngagementEvent(nces_id="4800001", event_type="email_sent", occurred_at=fixed_now - timedelta(days=5)),
                EngagementEvent(nces_id="4800002", event_type="call", occurred_at=fixed_now - timedelta(days=90)),
            ],
            lead_filters=LeadFilters(exclude_ids=["0600001"]),
        )

        result = await pipeline.run(request)

        assert result.intent == Intent.NEXT_HOTTEST_UNCONTACTED
        assert {r.district.nces_id for r in result.districts} == {"4800002", "3600001"}
        assert "Suppressed 2 recently engaged or excluded districts; 2 remain." in result.reasoning.steps

    @pytest.mark.asyncio
    async def test_uncontacted_leads_in_state(self, build_pipeline, sample_rows, sample_hits, fixed_now):
        """Test that a district engaged 10 days ago is held back and the other TX district leads."""
        pipeline = build_pipeline(sample_rows, hits=sample_hits)
        request = _request(
            "next hottest uncontacted leads in TX",
            lead_filters=LeadFilters(states=["TX"]),
            events=[
                EngagementEvent(nces_id="4800001", event_type="email_sent", occurred_at=fixed_now - timedelta(days=10)),
            ],
            suppression_days=60,
        )

        result = await pipeline.run(request)

        assert result.intent == Intent.NEXT_HOTTEST_UNCONTACTED
        ranked_ids = [r.district.nces_id for r in result.districts]
        assert "4800001" not in ranked_ids
        assert ranked_ids[0] == "4800002"
        assert all(r.district.state == "TX" for r in result.districts)
        assert "Suppressed 1 recently engaged or excluded districts; 3 remain." in result.reasoning.steps

    @pytest.mark.asyncio
    async def test_frpl_and_minority_comparison_operators(self, build_pipeline):
        rows = [
            make_district_row("4800011", frpl_percent=80, minority_percent=65),
            make_district_row("4800012", frpl_percent=60, minority_percent=70),
            make_district_row("4800014", frpl_percent=75, minority_percent=61),
        ]
        pipeline = build_pipeline(rows)

        result = await pipeline.run(_request("find grants-ready districts with FRPL > 70% and minority > 60%"))

        assert result.intent == Intent.GRANT_MATCH
        assert result.grant_criteria.frpl_min == 70.0
        assert result.grant_criteria.minority_min == 60.0
        assert [r.district.nces_id for r in result.districts] == ["4800011", "4800014"]

    @pytest.mark.asyncio
    async def test_policy_exhausted(self, build_pipeline, sample_rows):
        """Test that filtering everything out is a successful empty outcome."""
        pipeline = build_pipeline(sample_rows)

        result = await pipeline.run(_request("Find districts", lead_filters=LeadFilters(states=["WA"])))

        assert result.districts == []
        assert result.outcome == "policy_exhausted"
        assert result.explanation.startswith("No districts met")

    @pytest.mark.asyncio
    async def test_confidence_floor_drops_weak_candidates(self, build_pipeline, sample_rows):
        """Test that candidates below threshold minus 0.25 are dropped."""
        pipeline = build_pipeline(sample_rows)

        # No semantic hits: confidence is total/24, below the 0.35 floor
        result = await pipeline.run(_request("Find districts", confidence_threshold=0.6))

        assert result.districts == []
        assert "Confidence floor 0.35 kept 0 districts." in result.reasoning.steps


class TestRankingShape:
    """Tests for ordering, limits and explanation depth."""

    @pytest.mark.asyncio
    async def test_results_sorted_and_limited(self, build_pipeline):
        rows = [make_district_row(f"48000{i:02d}", total=float(i % 9)) for i in range(30)]
        pipeline = build_pipeline(rows)

        result = await pipeline.run(_request("Find districts"))

        composites = [r.score.composite for r in result.districts]
        assert len(result.districts) == 25
        assert composites == sorted(composites, reverse=True)

    @pytest.mark.asyncio
    async def test_deferred_explanations_beyond_25(self, build_pipeline):
        """Test that ranks past 25 carry the on-demand placeholder."""
        rows = [make_district_row(f"48000{i:02d}", total=float(i % 9)) for i in range(30)]
        pipeline = build_pipeline(rows)

        result = await pipeline.run(_request("Find districts", lead_filters=LeadFilters(limit=30)))

        details = [r.why.detail for r in result.districts]
        assert details == ["full"] * 25 + ["deferred"] * 5
        assert result.districts[-1].why.summary == DEFERRED_SUMMARY

    @pytest.mark.asyncio
    async def test_reasoning_trace_stages(self, build_pipeline, sample_rows, fixed_now):
        pipeline = build_pipeline(sample_rows)

        result = await pipeline.run(_request("Find districts"))

        steps = result.reasoning.steps
        assert steps[0] == "Intent classified as district_search."
        assert steps[1].startswith("Retrieved 4 candidate districts")
        assert steps[-1] == "Returned 4 ranked districts."
        assert len(steps) == 8
        assert result.generated_at == fixed_now

    @pytest.mark.asyncio
    async def test_source_urls_attached(self, build_pipeline):
        """Test that keyword excerpts link to their source documents."""
        rows = [
            make_district_row(
                "4800001",
                readiness=8,
                keyword_matches=make_keyword_matches(readiness=["strategic plan"], document_id="doc-1"),
            )
        ]
        pipeline = build_pipeline(rows, urls={"doc-1": "https://austinisd.org/plan.pdf"})

        result = await pipeline.run(_request("strategic plan"))

        excerpt = result.districts[0].why.source_excerpts[0]
        assert excerpt.keyword == "strategic plan"
        assert excerpt.source_url == "https://austinisd.org/plan.pdf"

    @pytest.mark.asyncio
    async def test_explicit_criteria_override_extracted(self, build_pipeline, sample_rows):
        pipeline = build_pipeline(sample_rows)

        result = await pipeline.run(_request("FRPL above 70%", grant_criteria=GrantCriteria(frpl_min=45)))

        assert result.grant_criteria.frpl_min == 45
        assert len(result.districts) == 4


class TestSemanticRetrieval:
    """Tests for bounded semantic retrieval."""

    @pytest.mark.asyncio
    async def test_different_prompts_different_top_districts(self, build_pipeline):
        """Test that identical keyword scores do not mask query-specific relevance."""
        rows = [make_district_row("4800001"), make_district_row("4800002")]
        embedder = FakeEmbedder(vectors={"ai literacy": [1.0, 0.0], "mental health": [0.0, 1.0]})
        index = FakeSemanticIndex(
            hits_by_vector={
                (1.0, 0.0): [ChunkHit("4800001", "doc-1", 0.9)],
                (0.0, 1.0): [ChunkHit("4800002", "doc-2", 0.9)],
            }
        )
        pipeline = build_pipeline(rows, embedder=embedder, index=index)

        first = await pipeline.run(_request("ai literacy"))
        second = await pipeline.run(_request("mental health"))

        assert first.districts[0].district.nces_id == "4800001"
        assert second.districts[0].district.nces_id == "4800002"

    @pytest.mark.asyncio
    async def test_top_k_passed_to_index(self, build_pipeline, sample_rows, sample_hits):
        index = FakeSemanticIndex(hits=sample_hits)
        pipeline = build_pipeline(sample_rows, index=index, top_k=1, similarity_floor=0.5)

        result = await pipeline.run(_request("Find districts"))

        assert index.calls[0][1:] == (1, 0.5)
        with_semantic = [r.district.nces_id for r in result.districts if r.district.semantic]
        assert with_semantic == ["0600001"]

    @pytest.mark.asyncio
    async def test_semantic_only_district_is_candidate(self, build_pipeline, sample_rows):
        """Test that a district with document hits but no keyword scores is ranked."""
        extra = make_district_row("1700001", state="IL")
        pipeline = build_pipeline(
            sample_rows,
            hits=[ChunkHit("1700001", "doc-il-1", 0.95)],
            registry_rows=sample_rows + [extra],
        )

        result = await pipeline.run(_request("Find districts"))

        assert result.districts[0].district.nces_id == "1700001"

    @pytest.mark.asyncio
    async def test_prompt_embedded_once_trimmed(self, build_pipeline, sample_rows):
        embedder = FakeEmbedder()
        pipeline = build_pipeline(sample_rows, embedder=embedder)

        await pipeline.run(_request("  Find districts  "))

        assert embedder.calls == ["Find districts"]


class TestUpstreamFailures:
    """Tests for fail-fast behavior on upstream errors."""

    @pytest.mark.asyncio
    async def test_embedding_timeout(self, build_pipeline, sample_rows):
        pipeline = build_pipeline(sample_rows, embedder=FakeEmbedder(delay=0.5), embedding_timeout=0.01)

        with pytest.raises(RankingUnavailableError):
            await pipeline.run(_request("Find districts"))

    @pytest.mark.asyncio
    async def test_embedding_error(self, build_pipeline, sample_rows):
        pipeline = build_pipeline(sample_rows, embedder=FakeEmbedder(error=RuntimeError("boom")))

        with pytest.raises(RankingUnavailableError):
            await pipeline.run(_request("Find districts"))

    @pytest.mark.asyncio
    async def test_similarity_index_timeout(self, build_pipeline, sample_rows):
        index = FakeSemanticIndex(delay=0.5)
        pipeline = build_pipeline(sample_rows, index=index, retrieval_timeout=0.01)

        with pytest.raises(RankingUnavailableError):
            await pipeline.run(_request("Find districts"))

    @pytest.mark.asyncio
    async def test_similarity_index_error(self, build_pipeline, sample_rows):
        index = FakeSemanticIndex(error=ConnectionError("db down"))
        pipeline = build_pipeline(sample_rows, index=index)

        with pytest.raises(RankingUnavailableError):
            await pipeline.run(_request("Find districts"))

    @pytest.mark.asyncio
    async def test_score_fetch_cancelled_when_embedding_fails(self, build_pipeline, sample_rows):
        """Test that an aborted search does not leave the score lookup running."""
        store = FakeScoreStore(sample_rows, delay=0.5)
        pipeline = build_pipeline(
            sample_rows,
            embedder=FakeEmbedder(error=RuntimeError("openai down")),
            score_store=store,
        )

        with pytest.raises(RankingUnavailableError):
            await pipeline.run(_request("Find districts"))

        assert store.cancelled is True
        assert store.finished is False

    @pytest.mark.asyncio
    async def test_score_store_error(self, build_pipeline, sample_rows):
        store = FakeScoreStore(sample_rows, error=ConnectionError("score db down"))
        pipeline = build_pipeline(sample_rows, score_store=store)

        with pytest.raises(RankingUnavailableError):
            await pipeline.run(_request("Find districts"))

    @pytest.mark.asyncio
    async def test_registry_error_for_semantic_only_district(self, build_pipeline, sample_rows):
        """Test that a failed registry lookup aborts instead of dropping the district."""
        hits = [ChunkHit(nces_id="9900001", document_id="doc-x", similarity=0.8)]
        registry = FakeRegistry(sample_rows, error=ConnectionError("registry down"))
        pipeline = build_pipeline(sample_rows, hits=hits, registry=registry)

        with pytest.raises(RankingUnavailableError):
            await pipeline.run(_request("Find districts"))

    @pytest.mark.asyncio
    async def test_document_url_lookup_error(self, build_pipeline):
        rows = [make_district_row("4800001", keyword_matches=make_keyword_matches(readiness=["strategic plan"]))]
        registry = FakeRegistry(rows, error=ConnectionError("registry down"))
        pipeline = build_pipeline(rows, registry=registry)

        with pytest.raises(RankingUnavailableError):
            await pipeline.run(_request("Find districts"))
        assert registry.url_requests == [["doc-1"]]


class TestExplain:
    """Tests for on-demand explanations."""

    @pytest.mark.asyncio
    async def test_explain_known_district(self, build_pipeline, sample_rows, fixed_now):
        pipeline = build_pipeline(sample_rows)

        details = await pipeline.explain("4800001", 0.6)

        assert details.nces_id == "4800001"
        assert details.district_name == "Austin ISD"
        assert details.score.semantic_score == 0.0
        assert details.why.detail == "full"
        assert details.why.top_signals[0].weight == 0.0
        assert details.generated_at == fixed_now

    @pytest.mark.asyncio
    async def test_explain_unknown_district(self, build_pipeline, sample_rows):
        pipeline = build_pipeline(sample_rows)

        with pytest.raises(DistrictNotFoundError):
            await pipeline.explain("9999999")

    @pytest.mark.asyncio
    async def test_explain_registry_error(self, build_pipeline, sample_rows):
        registry = FakeRegistry(sample_rows, error=ConnectionError("registry down"))
        pipeline = build_pipeline(sample_rows, registry=registry)

        with pytest.raises(RankingUnavailableError):
            await pipeline.explain("4800001")


class TestKeywordEvidence:
    """Tests for per-category keyword evidence."""

    @pytest.mark.asyncio
    async def test_evidence_for_scored_district(self, build_pipeline):
        """Test keywords, mentions, excerpts and document links per category."""
        rows = [
            make_district_row(
                "4800001",
                name="Austin ISD",
                readiness=7.0,
                activation=4.0,
                keyword_matches=make_keyword_matches(
                    readiness=["strategic plan", "portrait of a graduate"],
                    activation=["capstone"],
                ),
            )
        ]
        pipeline = build_pipeline(rows, urls={"doc-1": "https://austinisd.org/plan.pdf"})

        report = await pipeline.keyword_evidence("4800001")

        assert report.district_name == "Austin ISD"
        assert report.readiness.score == 7.0
        assert report.readiness.keywords_found == ["strategic plan", "portrait of a graduate"]
        assert report.readiness.total_mentions == 4
        document = report.readiness.documents[0]
        assert document.document_id == "doc-1"
        assert document.document_url == "https://austinisd.org/plan.pdf"
        assert document.keywords == ["strategic plan", "portrait of a graduate"]
        assert "\n\n" in document.text
        assert report.activation.keywords_found == ["capstone"]
        assert report.alignment is None
        assert report.branding is None

    @pytest.mark.asyncio
    async def test_evidence_unknown_district(self, build_pipeline, sample_rows):
        pipeline = build_pipeline(sample_rows)

        with pytest.raises(DistrictNotFoundError):
            await pipeline.keyword_evidence("9999999")

    @pytest.mark.asyncio
    async def test_evidence_without_documents_skips_url_lookup(self, build_pipeline, sample_rows):
        pipeline = build_pipeline(sample_rows)

        report = await pipeline.keyword_evidence("4800002")

        assert report.readiness is None
        assert pipeline.registry.url_requests == []
