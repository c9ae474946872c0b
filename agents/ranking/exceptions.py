"""
Ranking pipeline exceptions.
"""


class RankingError(Exception):
    """Base class for ranking pipeline errors."""


class RankingUnavailableError(RankingError):
    """
    Raised when an upstream dependency (embedding service, similarity
    index or district store) fails or times out. The whole request is aborted.
    """


class DistrictNotFoundError(RankingError):
    """Raised when a requested district is absent from the registry."""

    def __init__(self, nces_id: str):
        self.nces_id = nces_id
        super().__init__(f"District not found: {nces_id}")


class DocumentNotFoundError(RankingError):
    """Raised when a source document has no embeddings."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")
