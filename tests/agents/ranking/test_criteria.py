"""
Tests for grant criteria extraction.
"""
from agents.ranking.criteria import extract_grant_criteria, extract_keywords, extract_states
from agents.ranking.models import GrantCriteria


class TestExtractStates:
    """Tests for state code extraction."""

    def test_uppercase_codes_in_order(self):
        """Test that states are returned in order of first appearance."""
        assert extract_states("Districts in TX and CA, then TX again") == ["TX", "CA"]

    def test_lowercase_tokens_ignored(self):
        """Test that lowercase words like 'in' or 'or' are not states."""
        assert extract_states("districts in or near ok") == []

    def test_false_positives_excluded(self):
        """Test that AI and US are never treated as states."""
        assert extract_states("AI literacy programs across the US") == []

    def test_unknown_codes_excluded(self):
        """Test that two-letter tokens outside the state list are dropped."""
        assert extract_states("Focus on QQ and NM") == ["NM"]


class TestExtractGrantCriteria:
    """Tests for full criteria extraction."""

    def test_frpl_and_minority_thresholds(self):
        """Test parsing FRPL and minority percentages."""
        criteria = extract_grant_criteria("Grant match: FRPL above 70% and minority above 60%")

        assert criteria.frpl_min == 70.0
        assert criteria.minority_min == 60.0

    def test_free_reduced_lunch_phrase(self):
        """Test the long-form FRPL phrase."""
        criteria = extract_grant_criteria("free and reduced lunch of at least 55 percent")

        assert criteria.frpl_min == 55.0

    def test_percent_clamped_to_100(self):
        """Test that out-of-range percentages are clamped."""
        criteria = extract_grant_criteria("minority 150%")

        assert criteria.minority_min == 100.0

    def test_four_digit_percent_clamped(self):
        criteria = extract_grant_criteria("FRPL 2500 percent and minority 1000%")

        assert criteria.frpl_min == 100.0
        assert criteria.minority_min == 100.0

    def test_greater_than_symbol(self):
        """Test the comparison-operator form of the thresholds."""
        criteria = extract_grant_criteria("find grants-ready districts with FRPL > 70% and minority > 60%")

        assert criteria.frpl_min == 70.0
        assert criteria.minority_min == 60.0

    def test_enrollment_with_commas(self):
        """Test enrollment thresholds with thousands separators."""
        criteria = extract_grant_criteria("districts with enrollment over 10,000")

        assert criteria.min_enrollment == 10000

    def test_enrollment_students_suffix(self):
        """Test the 'more than N students' form."""
        criteria = extract_grant_criteria("serving more than 2500 students")

        assert criteria.min_enrollment == 2500

    def test_attachment_text_contributes(self):
        """Test that thresholds in attached RFP text are extracted."""
        criteria = extract_grant_criteria(
            "Match this RFP",
            attachment_text="Eligible LEAs must have FRPL of 65% or higher.",
        )

        assert criteria.frpl_min == 65.0

    def test_states_only_from_prompt(self):
        """Test that state codes come from the prompt, not the attachment."""
        criteria = extract_grant_criteria("Match this RFP", attachment_text="Open to TX districts")

        assert criteria.states is None

    def test_keywords_detected(self):
        """Test domain keyword detection."""
        criteria = extract_grant_criteria("Who has a Portrait of a Graduate and a strategic plan?")

        assert criteria.keywords == ["portrait of a graduate", "strategic plan"]

    def test_nothing_matches(self):
        """Test that an unrelated prompt yields empty criteria."""
        criteria = extract_grant_criteria("hello there")

        assert criteria.is_empty

    def test_malformed_input_does_not_raise(self):
        """Test that odd input yields a partial result rather than an error."""
        criteria = extract_grant_criteria("FRPL %%% minority ... enrollment over ,,,")

        assert criteria.frpl_min is None
        assert criteria.min_enrollment is None


class TestMergeCriteria:
    """Tests for merging explicit overrides."""

    def test_override_wins_per_field(self):
        """Test that explicitly set override fields replace extracted values."""
        extracted = GrantCriteria(frpl_min=70, minority_min=60)
        merged = extracted.merge(GrantCriteria(frpl_min=50))

        assert merged.frpl_min == 50
        assert merged.minority_min == 60

    def test_null_override_keeps_extracted(self):
        """Test that a null override does not erase an extracted value."""
        extracted = GrantCriteria(frpl_min=70)
        merged = extracted.merge(GrantCriteria(frpl_min=None))

        assert merged.frpl_min == 70

    def test_no_overrides(self):
        """Test merging with no overrides."""
        extracted = GrantCriteria(states=["TX"])

        assert extracted.merge(None) == extracted


class TestExtractKeywords:
    def test_word_boundaries(self):
        """Test that keywords must match whole words."""
        assert "stem" not in extract_keywords("systemic change")
        assert "stem" in extract_keywords("stem pathways")
