"""
DistrictRadar Database Models
SQLAlchemy ORM models for the district intelligence platform.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    ARRAY,
    TIMESTAMP,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class District(Base):
    """
    School districts from the NCES registry.

    Stores display, location, eligibility and contact attributes.
    """

    __tablename__ = "districts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        doc="Unique identifier for the district",
    )
    nces_id: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        unique=True,
        doc="NCES LEA identifier (authoritative)",
    )
    name: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        doc="Official district name",
    )
    state: Mapped[str] = mapped_column(
        String(2),
        nullable=False,
        doc="Two-letter state abbreviation",
    )
    city: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    county: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    enrollment: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Student count",
    )
    frpl_percent: Mapped[Optional[Decimal]] = mapped_column(
        Numeric,
        nullable=True,
        doc="Free/Reduced Price Lunch percentage",
    )
    minority_percent: Mapped[Optional[Decimal]] = mapped_column(
        Numeric,
        nullable=True,
        doc="Minority enrollment percentage",
    )
    website_domain: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    superintendent_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    superintendent_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (Index("ix_districts_state", state),)

    def __repr__(self) -> str:
        return f"<District(nces_id={self.nces_id}, name='{self.name[:50]}')>"


class DistrictKeywordScore(Base):
    """
    Taxonomy keyword scores for a district.

    One row per district. Category scores are on a 0-10 scale and
    keyword_matches holds the raw evidence as
    {category: [{keyword, count, document_id, document_type, context}]}.
    """

    __tablename__ = "district_keyword_scores"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    nces_id: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
        doc="NCES identifier of the scored district",
    )
    readiness_score: Mapped[Optional[Decimal]] = mapped_column(Numeric, nullable=True)
    alignment_score: Mapped[Optional[Decimal]] = mapped_column(Numeric, nullable=True)
    activation_score: Mapped[Optional[Decimal]] = mapped_column(Numeric, nullable=True)
    branding_score: Mapped[Optional[Decimal]] = mapped_column(Numeric, nullable=True)
    total_score: Mapped[Optional[Decimal]] = mapped_column(
        Numeric,
        nullable=True,
        doc="Average of the four category scores",
    )
    outreach_tier: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    keyword_matches: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
        doc="Per-category keyword evidence",
    )
    documents_analyzed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    scored_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        server_default=func.now(),
    )


class DistrictDocument(Base):
    """Documents crawled from district websites."""

    __tablename__ = "district_documents"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    nces_id: Mapped[str] = mapped_column(String(20), nullable=False)
    document_url: Mapped[str] = mapped_column(Text, nullable=False)
    document_type: Mapped[str] = mapped_column(String(20), nullable=False)
    document_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    document_category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    last_crawled_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
    )

    chunks: Mapped[list["DocumentEmbedding"]] = relationship(
        "DocumentEmbedding",
        back_populates="document",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("ix_district_documents_nces_id", nces_id),)


class DocumentEmbedding(Base):
    """
    Chunk-level embeddings of district documents.

    Each document is split into ~1500 character chunks embedded with
    text-embedding-3-small (1536 dimensions).
    """

    __tablename__ = "document_embeddings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("district_documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    chunk_text: Mapped[str] = mapped_column(Text, nullable=False)
    embedding = mapped_column(
        Vector(1536),
        nullable=True,
        doc="Vector embedding for semantic similarity search",
    )

    document: Mapped["DistrictDocument"] = relationship(
        "DistrictDocument",
        back_populates="chunks",
    )

    __table_args__ = (
        Index(
            "ix_document_embeddings_embedding",
            embedding,
            postgresql_using="ivfflat",
            postgresql_with={"lists": 100},
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
    )


class CommandSearchLog(Base):
    """Audit log of command searches for telemetry."""

    __tablename__ = "command_search_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    intent: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    confidence_threshold: Mapped[Optional[Decimal]] = mapped_column(Numeric, nullable=True)
    lead_filters: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    grant_criteria: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    suppression_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    result_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    top_nces_ids: Mapped[Optional[list[str]]] = mapped_column(ARRAY(Text), nullable=True)
    generated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (Index("ix_command_search_logs_generated_at", generated_at),)
