"""
Tests for the suppression builder.
"""
from datetime import datetime, timedelta, timezone

from agents.ranking.models import EngagementEvent
from agents.ranking.suppression import build_suppression_set

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _event(nces_id: str, days_ago: float, tz=timezone.utc) -> EngagementEvent:
    occurred = NOW - timedelta(days=days_ago)
    if tz is None:
        occurred = occurred.replace(tzinfo=None)
    return EngagementEvent(nces_id=nces_id, event_type="email_sent", occurred_at=occurred)


class TestBuildSuppressionSet:
    """Tests for engagement-window suppression."""

    def test_recent_event_suppressed(self):
        """Test that an event inside the window suppresses the district."""
        suppressed = build_suppression_set([_event("4800001", 10)], 60, now=NOW)

        assert suppressed == {"4800001"}

    def test_old_event_not_suppressed(self):
        """Test that an event outside the window is ignored."""
        suppressed = build_suppression_set([_event("4800001", 90)], 60, now=NOW)

        assert suppressed == set()

    def test_window_boundary_inclusive(self):
        """Test that an event exactly suppression_days old is suppressed."""
        suppressed = build_suppression_set([_event("4800001", 60)], 60, now=NOW)

        assert "4800001" in suppressed

    def test_any_recent_event_suppresses(self):
        """Test that one recent event is enough even with older ones."""
        events = [_event("4800001", 200), _event("4800001", 5)]

        assert build_suppression_set(events, 60, now=NOW) == {"4800001"}

    def test_explicit_exclusions(self):
        """Test that exclude_ids are always suppressed."""
        suppressed = build_suppression_set([], 60, exclude_ids=["0600001", ""], now=NOW)

        assert suppressed == {"0600001"}

    def test_naive_timestamps_treated_as_utc(self):
        """Test that naive event timestamps are compared as UTC."""
        suppressed = build_suppression_set([_event("4800001", 1, tz=None)], 60, now=NOW)

        assert suppressed == {"4800001"}

    def test_zero_day_window(self):
        """Test that a zero-day window only suppresses same-instant events."""
        events = [_event("4800001", 0), _event("4800002", 1)]

        assert build_suppression_set(events, 0, now=NOW) == {"4800001"}
