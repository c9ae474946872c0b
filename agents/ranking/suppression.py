"""
Suppression Builder
Derives the set of districts excluded from lead recommendations.
"""
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from .models import EngagementEvent


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def build_suppression_set(
    events: Iterable[EngagementEvent],
    suppression_days: int,
    exclude_ids: Iterable[str] = (),
    now: Optional[datetime] = None,
) -> set[str]:
    """
    Build the set of suppressed district ids.

    A district is suppressed when any of its engagement events is at most
    suppression_days old, or when it is explicitly excluded. Suppression
    is hard: there is no partial re-inclusion.

    Args:
        events: Caller-supplied engagement events.
        suppression_days: Trailing window in days.
        exclude_ids: Explicit exclusions.
        now: Reference time (defaults to current UTC time).

    Returns:
        Set of NCES ids to exclude.
    """
    now = _as_utc(now or datetime.now(timezone.utc))
    window = timedelta(days=max(0, suppression_days))

    suppressed = {
        event.nces_id
        for event in events
        if now - _as_utc(event.occurred_at) <= window
    }
    suppressed.update(exclude_id for exclude_id in exclude_ids if exclude_id)
    return suppressed
