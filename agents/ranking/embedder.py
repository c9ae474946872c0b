"""
Query Embedding Generator
Generates vector embeddings for command prompts.
"""
from typing import Optional

import openai
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from backend.core.config import settings

from .exceptions import RankingUnavailableError

logger = structlog.get_logger().bind(agent="query_embedder")

# Errors worth retrying; anything else fails immediately
TRANSIENT_OPENAI_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def _log_retry(retry_state) -> None:
    logger.warning(
        "embedding_retry",
        attempt=retry_state.attempt_number,
        wait=round(retry_state.next_action.sleep, 3) if retry_state.next_action else None,
    )


class QueryEmbedder:
    """
    Generates embeddings for search prompts.

    Uses OpenAI text-embedding-3-small (1536 dimensions), the same model
    used to embed district document chunks.
    """

    EMBEDDING_MODEL = "text-embedding-3-small"
    MAX_INPUT_CHARS = 8000

    def __init__(self, client: Optional[openai.AsyncOpenAI] = None, model: Optional[str] = None):
        """
        Initialize query embedder.

        Args:
            client: Async OpenAI client. Built from settings when omitted.
            model: Embedding model name override.
        """
        self._client = client
        self.model = model or settings.embedding_model or self.EMBEDDING_MODEL
        self.dimensions = settings.embedding_dimensions

    @property
    def client(self) -> openai.AsyncOpenAI:
        """OpenAI client, created on first use from settings."""
        if self._client is None:
            if not settings.openai_api_key:
                raise RankingUnavailableError("OPENAI_API_KEY not configured")
            self._client = openai.AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.embedding_timeout_seconds,
                max_retries=0,
            )
        return self._client

    @retry(
        retry=retry_if_exception_type(TRANSIENT_OPENAI_ERRORS),
        stop=stop_after_attempt(settings.embedding_max_attempts),
        wait=wait_random_exponential(multiplier=0.25, max=4),
        before_sleep=_log_retry,
        reraise=True,
    )
    async def _create_embeddings(self, texts: list[str]) -> list[list[float]]:
        response = await self.client.embeddings.create(
            model=self.model,
            input=texts,
            dimensions=self.dimensions,
        )
        return [item.embedding for item in response.data]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts in one API call.

        Args:
            texts: Texts to embed.

        Returns:
            One embedding vector per input text.

        Raises:
            RankingUnavailableError: The embedding service failed after
                bounded retries, or returned no vectors.
        """
        if not texts:
            return []
        inputs = [text[: self.MAX_INPUT_CHARS] for text in texts]
        try:
            embeddings = await self._create_embeddings(inputs)
        except openai.OpenAIError as e:
            logger.error("embedding_failed", error=str(e), error_type=type(e).__name__)
            raise RankingUnavailableError("Embedding service unavailable") from e

        if len(embeddings) != len(inputs) or any(not vector for vector in embeddings):
            logger.error("embedding_missing", requested=len(inputs), received=len(embeddings))
            raise RankingUnavailableError("Embedding service returned no vector")
        return embeddings

    async def embed(self, text: str) -> list[float]:
        """
        Generate the embedding for a single prompt.

        Args:
            text: Prompt text.

        Returns:
            Embedding vector.
        """
        embeddings = await self.embed_batch([text])
        return embeddings[0]
