"""
DistrictRadar Test Configuration and Fixtures
Shared pytest fixtures for all test modules.
"""
from datetime import datetime, timezone
from typing import Any, Optional

import pytest

from agents.ranking import CommandSearchPipeline
from agents.ranking.semantic import ChunkHit
from tests.fixtures.ranking import (
    FakeEmbedder,
    FakeRegistry,
    FakeScoreStore,
    FakeSemanticIndex,
    make_district_row,
)

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now() -> datetime:
    """Reference time used by the pipeline clock in tests."""
    return FIXED_NOW


@pytest.fixture
def district_row():
    """Factory for joined registry/score rows."""
    return make_district_row


@pytest.fixture
def sample_rows() -> list[dict[str, Any]]:
    """A small mixed-state district set."""
    return [
        make_district_row("4800001", name="Austin ISD", state="TX", readiness=7.0, activation=4.0),
        make_district_row("4800002", name="Dallas ISD", state="TX", readiness=5.0),
        make_district_row("0600001", name="Fresno Unified", state="CA", readiness=8.0),
        make_district_row("3600001", name="Buffalo City", state="NY", readiness=3.0),
    ]


@pytest.fixture
def sample_hits() -> list[ChunkHit]:
    """Chunk hits for sample_rows, most similar first."""
    return [
        ChunkHit(nces_id="0600001", document_id="doc-ca-1", similarity=0.91),
        ChunkHit(nces_id="4800001", document_id="doc-tx-1", similarity=0.84),
        ChunkHit(nces_id="4800001", document_id="doc-tx-2", similarity=0.72),
        ChunkHit(nces_id="4800002", document_id="doc-tx-3", similarity=0.66),
        ChunkHit(nces_id="3600001", document_id="doc-ny-1", similarity=0.40),
    ]


@pytest.fixture
def build_pipeline(fixed_now):
    """Factory wiring a pipeline to in-memory collaborators."""

    def _build(
        rows: list[dict[str, Any]],
        hits: Optional[list[ChunkHit]] = None,
        registry_rows: Optional[list[dict[str, Any]]] = None,
        embedder: Optional[FakeEmbedder] = None,
        index: Optional[FakeSemanticIndex] = None,
        urls: Optional[dict[str, str]] = None,
        score_store: Optional[FakeScoreStore] = None,
        registry: Optional[FakeRegistry] = None,
        **kwargs,
    ) -> CommandSearchPipeline:
        return CommandSearchPipeline(
            embedder=embedder or FakeEmbedder(),
            semantic_index=index or FakeSemanticIndex(hits=hits or []),
            score_store=score_store or FakeScoreStore(rows),
            registry=registry or FakeRegistry(registry_rows if registry_rows is not None else rows, urls=urls),
            clock=lambda: fixed_now,
            **kwargs,
        )

    return _build
