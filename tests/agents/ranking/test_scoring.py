"""
Tests for composite scoring and confidence estimation.
"""
import math

import pytest

from agents.ranking.models import ConfidenceBand, GrantCriteria, SemanticAggregate, candidate_from_row
from agents.ranking.scoring import (
    clamp_threshold,
    confidence_band,
    confidence_floor,
    estimate_confidence,
    score_candidate,
    semantic_score,
)
from tests.fixtures.ranking import make_district_row


def _candidate(semantic=None, **kwargs):
    return candidate_from_row(make_district_row("4800001", **kwargs), semantic=semantic)


class TestSemanticScore:
    def test_formula(self):
        """Test 6*max + 2*avg + log10(hits + 1)."""
        assert semantic_score(0.8, 0.6, 9) == pytest.approx(4.8 + 1.2 + 1.0)

    def test_hit_count_capped(self):
        """Test that the hit-count term is capped at 1.5."""
        assert semantic_score(0.0, 0.0, 10_000) == pytest.approx(1.5)

    def test_no_hits(self):
        assert semantic_score(0.0, 0.0, 0) == 0.0


class TestScoreCandidate:
    """Tests for the composite ranking score."""

    def test_composite_components(self):
        """Test the composite sums semantic, keyword and eligibility terms."""
        semantic = SemanticAggregate(max_similarity=0.8, avg_similarity=0.6, hit_count=1)
        candidate = _candidate(semantic, total=6.0, frpl_percent=80, minority_percent=30)

        score = score_candidate(candidate, GrantCriteria(frpl_min=70, minority_min=50))

        expected = 6 * 0.8 + 2 * 0.6 + math.log10(2) + 0.5 * 6.0 + 0.5
        assert score.composite == pytest.approx(expected)
        assert score.eligibility_boost == 0.5
        assert score.keyword_boost == pytest.approx(3.0)

    def test_both_eligibility_boosts(self):
        candidate = _candidate(frpl_percent=80, minority_percent=70)

        score = score_candidate(candidate, GrantCriteria(frpl_min=70, minority_min=60))

        assert score.eligibility_boost == 1.0

    def test_no_semantic_signal(self):
        """Test that a missing aggregate contributes zero semantic score."""
        score = score_candidate(_candidate(total=4.0))

        assert score.semantic_score == 0.0
        assert score.composite == pytest.approx(2.0)

    def test_engagement_penalty_never_negative(self):
        """Test that the penalty cannot push the composite below zero."""
        score = score_candidate(_candidate(readiness=0, alignment=0, activation=0, branding=0), suppressed=True)

        assert score.engagement_penalty == 2.0
        assert score.composite == 0.0

    def test_identical_inputs_identical_scores(self):
        """Test that scoring is deterministic."""
        semantic = SemanticAggregate(max_similarity=0.7, avg_similarity=0.5, hit_count=3)

        assert score_candidate(_candidate(semantic)) == score_candidate(_candidate(semantic))


class TestConfidence:
    """Tests for confidence estimation and bands."""

    def test_estimate_formula(self):
        assert estimate_confidence(6.0, 0.6) == pytest.approx(7.2 / 12)

    @pytest.mark.parametrize("composite,avg", [(0.0, 0.0), (100.0, 1.0), (-5.0, 0.0)])
    def test_estimate_clamped(self, composite, avg):
        """Test that confidence stays within [0.2, 0.98]."""
        assert 0.2 <= estimate_confidence(composite, avg) <= 0.98

    def test_bands(self):
        assert confidence_band(0.85) == ConfidenceBand.HIGH
        assert confidence_band(0.8) == ConfidenceBand.HIGH
        assert confidence_band(0.7) == ConfidenceBand.MEDIUM
        assert confidence_band(0.6) == ConfidenceBand.MEDIUM
        assert confidence_band(0.59) == ConfidenceBand.LOW

    def test_band_monotone(self):
        """Test that higher confidence never yields a lower band."""
        order = {ConfidenceBand.LOW: 0, ConfidenceBand.MEDIUM: 1, ConfidenceBand.HIGH: 2}
        values = [0.2 + i * 0.01 for i in range(79)]
        ranks = [order[confidence_band(v)] for v in values]

        assert ranks == sorted(ranks)

    def test_floor(self):
        assert confidence_floor(0.6) == pytest.approx(0.35)
        assert confidence_floor(0.3) == 0.2

    @pytest.mark.parametrize(
        "raw,expected",
        [(None, 0.6), (0.05, 0.2), (0.99, 0.95), (0.7, 0.7)],
    )
    def test_clamp_threshold(self, raw, expected):
        assert clamp_threshold(raw) == expected
