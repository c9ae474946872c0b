"""
Keyword Evidence
Per-category breakdown of the taxonomy keyword matches behind a district's
scores: which keywords were found, how often, and in which documents.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .models import TaxonomyCategory, _to_float

# Excerpts stop growing once a document's text reaches this length
MAX_DOCUMENT_TEXT_CHARS = 1000


class EvidenceDocument(BaseModel):
    """Excerpts and matched keywords from one source document."""

    document_id: str
    document_type: str = "unknown"
    document_url: Optional[str] = None
    text: str = ""
    keywords: list[str] = Field(default_factory=list)


class CategoryEvidence(BaseModel):
    """Keyword evidence for one taxonomy category."""

    score: Optional[float] = None
    keywords_found: list[str] = Field(default_factory=list)
    total_mentions: int = 0
    documents: list[EvidenceDocument] = Field(default_factory=list)


class KeywordEvidenceReport(BaseModel):
    """Keyword scores and evidence for a district across all four categories."""

    nces_id: str
    district_name: str
    readiness: Optional[CategoryEvidence] = None
    alignment: Optional[CategoryEvidence] = None
    activation: Optional[CategoryEvidence] = None
    branding: Optional[CategoryEvidence] = None
    total_score: Optional[float] = None
    scored_at: Optional[datetime] = None


def _mention_count(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def parse_category_evidence(matches: Any, score: Any = None) -> Optional[CategoryEvidence]:
    """
    Fold one category's keyword_matches entries into evidence.

    Returns None when the category has no recorded matches. Malformed
    entries are skipped.
    """
    if matches is None:
        return None

    evidence = CategoryEvidence(score=_to_float(score))
    documents: dict[str, EvidenceDocument] = {}

    for match in matches if isinstance(matches, list) else []:
        if not isinstance(match, dict):
            continue
        keyword = match.get("keyword")
        if keyword and keyword not in evidence.keywords_found:
            evidence.keywords_found.append(str(keyword))
        evidence.total_mentions += _mention_count(match.get("count"))

        context = match.get("context")
        document_id = match.get("document_id") or match.get("source_doc")
        if not context or not document_id:
            continue

        document = documents.setdefault(
            str(document_id),
            EvidenceDocument(
                document_id=str(document_id),
                document_type=match.get("document_type") or "unknown",
            ),
        )
        if len(document.text) < MAX_DOCUMENT_TEXT_CHARS:
            document.text = f"{document.text}\n\n{context}" if document.text else str(context)
        if keyword and keyword not in document.keywords:
            document.keywords.append(str(keyword))

    evidence.documents = list(documents.values())
    return evidence


def build_keyword_evidence(row: dict[str, Any]) -> KeywordEvidenceReport:
    """
    Build the evidence report from a registry row joined with its scores.

    Districts that were never scored get a report with every category empty.
    """
    keyword_matches = row.get("keyword_matches")
    if not isinstance(keyword_matches, dict):
        keyword_matches = {}

    categories = {
        category.value: parse_category_evidence(
            keyword_matches.get(category.value),
            row.get(f"{category.value}_score"),
        )
        for category in TaxonomyCategory
    }

    return KeywordEvidenceReport(
        nces_id=str(row["nces_id"]),
        district_name=row.get("name") or str(row["nces_id"]),
        total_score=_to_float(row.get("total_score")),
        scored_at=row.get("scored_at"),
        **categories,
    )


def document_ids_in(report: KeywordEvidenceReport) -> list[str]:
    """Distinct source document ids referenced by a report, sorted."""
    ids = set()
    for category in TaxonomyCategory:
        evidence = getattr(report, category.value)
        if evidence:
            ids.update(document.document_id for document in evidence.documents)
    return sorted(ids)


def attach_evidence_urls(report: KeywordEvidenceReport, urls: dict[str, str]) -> None:
    for category in TaxonomyCategory:
        evidence = getattr(report, category.value)
        if not evidence:
            continue
        for document in evidence.documents:
            document.document_url = urls.get(document.document_id)
