"""Embedding service for the budget engine.

Turns query text into the 768-dimension vectors the catalogs are
indexed with.
"""

from typing import List, Optional

import structlog
from langchain_openai import OpenAIEmbeddings

from config.settings import settings
from config.errors import BudgetEngineError, ErrorCode, ValidationError

logger = structlog.get_logger()


class EmbeddingService:
    """Wrapper around OpenAIEmbeddings with dimension checks."""

    def __init__(
        self,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        api_key: Optional[str] = None
    ):
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.api_key = api_key or settings.openai_api_key

        self._client: Optional[OpenAIEmbeddings] = None

    @property
    def client(self) -> OpenAIEmbeddings:
        """Get LangChain OpenAIEmbeddings client (lazy initialization)."""
        if self._client is None:
            self._client = OpenAIEmbeddings(
                model=self.model,
                dimensions=self.dimensions,
                api_key=self.api_key
            )
        return self._client

    async def embed(self, text: str) -> List[float]:
        """Embed a single query text.

        Args:
            text: Text to embed.

        Returns:
            Embedding vector of ``self.dimensions`` floats.

        Raises:
            ValidationError: If text is empty.
            BudgetEngineError: If the embedding call fails or returns
                a vector of the wrong size.
        """
        if not text or not text.strip():
            raise ValidationError("Text to embed cannot be empty", field="text")

        try:
            vector = await self.client.aembed_query(text.strip())
        except Exception as e:
            logger.error("embedding_failed", model=self.model, error=str(e))
            raise BudgetEngineError(
                code=ErrorCode.EMBEDDING_FAILED,
                message=f"Embedding failed: {str(e)}",
                details={"model": self.model}
            )

        if len(vector) != self.dimensions:
            raise BudgetEngineError(
                code=ErrorCode.EMBEDDING_FAILED,
                message="Embedding has unexpected dimensions",
                details={"expected": self.dimensions, "actual": len(vector)}
            )

        return list(vector)
