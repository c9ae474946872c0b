"""
Backend services for district storage and search telemetry.
"""

from backend.services.district_store import (
    DistrictRegistry,
    DistrictScoreStore,
    PgVectorChunkIndex,
    PgVectorDocumentIndex,
)
from backend.services.search_telemetry import (
    get_command_search_telemetry_summary,
    log_command_search,
)

__all__ = [
    "DistrictRegistry",
    "DistrictScoreStore",
    "PgVectorChunkIndex",
    "PgVectorDocumentIndex",
    "get_command_search_telemetry_summary",
    "log_command_search",
]
