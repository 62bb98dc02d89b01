"""Embedding utilities wrapping OpenAI's embeddings API.

Provides:
- QueryEmbedder: turns query text into a vector of the corpus dimensionality, and
  embeds chunk batches for ingestion.
- get_client: Cached OpenAI client using the configured API key.

Models and dimensions are configured via catalog_search.config.settings. A vector of
the wrong length is a configuration error (EmbeddingDimensionError), not a per-query one.
"""
import logging
from typing import List, Optional

from openai import OpenAI, OpenAIError

from catalog_search.config import settings
from catalog_search.errors import EmbeddingDimensionError, EmbeddingError

logger = logging.getLogger(__name__)

_client: OpenAI | None = None


def get_client() -> OpenAI:
    """Return a cached OpenAI client initialized with the configured API key.

    Returns:
        OpenAI: A singleton-like client instance reused across calls.
    """
    global _client
    if _client is None:
        _client = OpenAI(api_key=settings.OPENAI_API_KEY)
    return _client


class QueryEmbedder:
    """Embeds text with the configured OpenAI model and checks vector length.

    Args:
        client: OpenAI client; defaults to the shared client from get_client().
        model: Embedding model name; defaults to settings.OPENAI_EMBEDDING_MODEL.
        dimension: Expected vector length; defaults to settings.EMBEDDING_DIM.
        batch_size: Texts per request in embed_texts.
    """

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        self._client = client
        self.model = model or settings.OPENAI_EMBEDDING_MODEL
        self.dimension = dimension or settings.EMBEDDING_DIM
        self.batch_size = max(1, batch_size or settings.EMBED_BATCH_SIZE)

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = get_client()
        return self._client

    def _check(self, vector: List[float]) -> List[float]:
        if len(vector) != self.dimension:
            raise EmbeddingDimensionError(self.dimension, len(vector))
        return vector

    def _create(self, texts: List[str]) -> List[List[float]]:
        try:
            resp = self.client.embeddings.create(model=self.model, input=texts)
        except OpenAIError as e:
            raise EmbeddingError(f"embedding request failed: {e}") from e
        return [list(d.embedding) for d in resp.data]

    def embed(self, text: str) -> List[float]:
        """Embed a single query string.

        Args:
            text: The query to embed.

        Returns:
            List[float]: The embedding vector for the query.

        Raises:
            EmbeddingError: The upstream request failed.
            EmbeddingDimensionError: The returned vector has the wrong length.
        """
        vectors = self._create([text])
        if not vectors:
            raise EmbeddingError("embedding service returned no vector")
        return self._check(vectors[0])

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Embed a list of texts in batches of `batch_size`.

        Args:
            texts: Input strings, typically chunk contents.

        Returns:
            List[List[float]]: One embedding per input text, in input order.
        """
        if not texts:
            return []
        out: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            out.extend(self._check(v) for v in self._create(batch))
            logger.debug("Embedded %d/%d texts", min(start + self.batch_size, len(texts)), len(texts))
        return out
