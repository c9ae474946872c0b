"""
Command Search Telemetry
Records each command search and summarizes recent usage.
"""
import re
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agents.ranking.models import CommandRequest, CommandResult
from backend.models import CommandSearchLog
from backend.schemas.search import CommandSearchTelemetrySummary, PromptCount, RepeatDistrict

logger = structlog.get_logger(__name__)

LOGGED_TOP_IDS = 25
MIN_PERIOD_DAYS = 1
MAX_PERIOD_DAYS = 60
TOP_PROMPTS_LIMIT = 15
REPEAT_DISTRICTS_LIMIT = 20

_WHITESPACE = re.compile(r"\s+")


def normalize_prompt(prompt: str) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return _WHITESPACE.sub(" ", prompt.strip().lower())


def bound_period_days(days: Optional[int]) -> int:
    return min(MAX_PERIOD_DAYS, max(MIN_PERIOD_DAYS, int(days or 7)))


async def log_command_search(
    db: AsyncSession,
    user_id: Optional[str],
    request: CommandRequest,
    result: CommandResult,
) -> bool:
    """
    Persist a command search log row.

    Failures are logged and reported through the return value; they never
    fail the search itself.

    Returns:
        True when the row was written.
    """
    top_ids = [item.district.nces_id for item in result.districts if item.district.nces_id][:LOGGED_TOP_IDS]
    lead_filters = request.lead_filters.model_dump(mode="json", exclude_defaults=True)

    entry = CommandSearchLog(
        user_id=user_id,
        prompt=request.prompt.strip(),
        intent=result.intent.value,
        confidence_threshold=result.confidence_threshold,
        lead_filters=lead_filters or None,
        grant_criteria=result.grant_criteria.model_dump(mode="json", exclude_none=True) or None,
        suppression_days=request.suppression_days,
        result_count=len(result.districts),
        top_nces_ids=top_ids,
        generated_at=result.generated_at,
    )

    try:
        db.add(entry)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("command_search_log_failed", error=str(e), intent=result.intent.value)
        return False

    logger.debug("command_search_logged", intent=result.intent.value, result_count=len(result.districts))
    return True


async def get_command_search_telemetry_summary(
    db: AsyncSession,
    user_id: Optional[str] = None,
    period_days: Optional[int] = 7,
    now: Optional[datetime] = None,
) -> CommandSearchTelemetrySummary:
    """
    Summarize command searches over the last period_days.

    Args:
        db: Database session.
        user_id: Restrict to one user when given.
        period_days: Window length, bounded to 1-60.
        now: Window end (defaults to current UTC time).

    Returns:
        Totals, unique normalized prompts, average results per query,
        the most frequent prompts and the most repeated districts.
    """
    days = bound_period_days(period_days)
    since = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    params = {"since": since, "user_id": user_id}
    user_filter = "AND c.user_id = :user_id" if user_id else ""

    totals_query = text(f"""
        SELECT
            COUNT(*) AS total_queries,
            COALESCE(AVG(c.result_count), 0) AS avg_results_per_query
        FROM command_search_logs c
        WHERE c.generated_at >= :since
        {user_filter}
    """)
    totals = (await db.execute(totals_query, params)).fetchone()

    prompts_query = text(f"""
        SELECT c.prompt, COUNT(*) AS query_count
        FROM command_search_logs c
        WHERE c.generated_at >= :since
        {user_filter}
        GROUP BY c.prompt
    """)
    prompt_rows = (await db.execute(prompts_query, params)).fetchall()

    districts_query = text(f"""
        SELECT t.nces_id, COUNT(*) AS appearances
        FROM command_search_logs c,
            UNNEST(COALESCE(c.top_nces_ids, ARRAY[]::text[])) AS t(nces_id)
        WHERE c.generated_at >= :since
        {user_filter}
        GROUP BY t.nces_id
        ORDER BY appearances DESC, t.nces_id ASC
        LIMIT :limit
    """)
    district_rows = (await db.execute(districts_query, {**params, "limit": REPEAT_DISTRICTS_LIMIT})).fetchall()

    # Group raw prompts by their normalized form
    prompt_counts: Counter = Counter()
    for row in prompt_rows:
        normalized = normalize_prompt(str(row.prompt or ""))
        if normalized:
            prompt_counts[normalized] += int(row.query_count or 0)
    top_prompts = sorted(prompt_counts.items(), key=lambda item: (-item[1], item[0]))[:TOP_PROMPTS_LIMIT]

    return CommandSearchTelemetrySummary(
        period_days=days,
        total_queries=int(totals.total_queries or 0) if totals else 0,
        unique_prompts=len(prompt_counts),
        avg_results_per_query=round(float(totals.avg_results_per_query or 0), 2) if totals else 0.0,
        repeat_districts=[
            RepeatDistrict(nces_id=str(row.nces_id), appearances=int(row.appearances or 0))
            for row in district_rows
        ],
        top_prompts=[PromptCount(prompt=prompt, count=count) for prompt, count in top_prompts],
    )
