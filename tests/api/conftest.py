"""
API test fixtures.
Wires the FastAPI app to in-memory ranking collaborators.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from agents.ranking import DocumentSearch
from backend.api.deps import get_document_search, get_pipeline
from backend.database import get_db
from backend.main import app
from tests.fixtures.ranking import FakeDocumentIndex, FakeEmbedder, make_document_row

SOURCE_DOCUMENT_ID = "6f1c0c8e-2f4b-4c55-9a51-1f0e2b7d9a10"


@pytest.fixture
def mock_db():
    """Async session stand-in for endpoints that take a database session."""
    session = MagicMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def mock_log_search():
    """Replaces telemetry logging in the search router."""
    with patch("backend.api.search.log_command_search", new_callable=AsyncMock) as mock_log:
        yield mock_log


@pytest.fixture
def api_pipeline(build_pipeline, sample_rows, sample_hits):
    return build_pipeline(sample_rows, hits=sample_hits)


@pytest.fixture
def document_index():
    return FakeDocumentIndex(
        chunk_rows=[
            make_document_row("doc-1", nces_id="4800001", distance=0.12),
            make_document_row("doc-2", nces_id="0600001", distance=0.30, state="CA"),
        ],
        similar={SOURCE_DOCUMENT_ID: [make_document_row("doc-3", distance=0.4, chunk_text=None)]},
    )


@pytest_asyncio.fixture
async def api_client(api_pipeline, document_index, mock_db, mock_log_search):
    """HTTP client against the app with the pipeline and database overridden."""

    async def _get_db():
        yield mock_db

    app.dependency_overrides[get_pipeline] = lambda: api_pipeline
    app.dependency_overrides[get_document_search] = lambda: DocumentSearch(FakeEmbedder(), document_index)
    app.dependency_overrides[get_db] = _get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
