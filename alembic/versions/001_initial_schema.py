"""Initial schema with pgvector support

Revision ID: 001
Revises:
Create Date: 2025-02-10

Creates the tables read and written by Command Search:
- districts: NCES district registry
- district_keyword_scores: taxonomy category scores and keyword evidence
- district_documents: crawled district documents
- document_embeddings: chunk embeddings for semantic retrieval
- command_search_logs: search telemetry
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# Revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # Enable pgvector extension
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # ==========================================================================
    # Create districts table
    # ==========================================================================
    op.create_table(
        "districts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("nces_id", sa.String(20), nullable=True, unique=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("state", sa.String(2), nullable=False),
        sa.Column("city", sa.String(255), nullable=True),
        sa.Column("county", sa.String(255), nullable=True),
        sa.Column("enrollment", sa.Integer(), nullable=True),
        sa.Column("frpl_percent", sa.Numeric(), nullable=True),
        sa.Column("minority_percent", sa.Numeric(), nullable=True),
        sa.Column("website_domain", sa.String(500), nullable=True),
        sa.Column("superintendent_name", sa.String(255), nullable=True),
        sa.Column("superintendent_email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_districts_state", "districts", ["state"])

    # ==========================================================================
    # Create district_keyword_scores table
    # ==========================================================================
    op.create_table(
        "district_keyword_scores",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("nces_id", sa.String(20), nullable=False, unique=True),
        sa.Column("readiness_score", sa.Numeric(), nullable=True),
        sa.Column("alignment_score", sa.Numeric(), nullable=True),
        sa.Column("activation_score", sa.Numeric(), nullable=True),
        sa.Column("branding_score", sa.Numeric(), nullable=True),
        sa.Column("total_score", sa.Numeric(), nullable=True),
        sa.Column("outreach_tier", sa.String(10), nullable=True),
        sa.Column("keyword_matches", postgresql.JSONB(), nullable=True),
        sa.Column("documents_analyzed", sa.Integer(), nullable=True),
        sa.Column(
            "scored_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_district_keyword_scores_total_desc",
        "district_keyword_scores",
        [sa.text("total_score DESC")],
    )

    # ==========================================================================
    # Create district_documents table
    # ==========================================================================
    op.create_table(
        "district_documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("nces_id", sa.String(20), nullable=False),
        sa.Column("document_url", sa.Text(), nullable=False),
        sa.Column("document_type", sa.String(20), nullable=False),
        sa.Column("document_title", sa.Text(), nullable=True),
        sa.Column("document_category", sa.String(50), nullable=True),
        sa.Column("last_crawled_at", sa.TIMESTAMP(timezone=True), nullable=True),
    )
    op.create_index("ix_district_documents_nces_id", "district_documents", ["nces_id"])

    # ==========================================================================
    # Create document_embeddings table
    # ==========================================================================
    op.create_table(
        "document_embeddings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "document_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("district_documents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("chunk_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("chunk_text", sa.Text(), nullable=False),
        sa.Column("embedding", Vector(1536), nullable=True),
    )

    # Vector similarity index for chunks (IVFFlat)
    op.execute(
        """
        CREATE INDEX ix_document_embeddings_embedding
        ON document_embeddings
        USING ivfflat (embedding vector_cosine_ops)
        WITH (lists = 100)
        """
    )

    # ==========================================================================
    # Create command_search_logs table
    # ==========================================================================
    op.create_table(
        "command_search_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.Text(), nullable=True),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("intent", sa.String(50), nullable=True),
        sa.Column("confidence_threshold", sa.Numeric(), nullable=True),
        sa.Column("lead_filters", postgresql.JSONB(), nullable=True),
        sa.Column("grant_criteria", postgresql.JSONB(), nullable=True),
        sa.Column("suppression_days", sa.Integer(), nullable=True),
        sa.Column("result_count", sa.Integer(), nullable=True),
        sa.Column("top_nces_ids", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column(
            "generated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_command_search_logs_generated_at",
        "command_search_logs",
        ["generated_at"],
    )


def downgrade() -> None:
    """Drop all tables and extensions."""

    # Drop tables in reverse order of creation (due to foreign keys)
    op.drop_table("command_search_logs")
    op.drop_table("document_embeddings")
    op.drop_table("district_documents")
    op.drop_table("district_keyword_scores")
    op.drop_table("districts")

    # Drop pgvector extension
    op.execute("DROP EXTENSION IF EXISTS vector")
