"""Exception hierarchy for the retrieval engine.

- ConfigurationError: fatal setup problems (dimension mismatch, empty corpus).
  Raised at startup or first use, never recovered per request.
- EmbeddingError: the query embedder failed or returned an unusable vector.
- RetrievalError: a chunk, lexical, or metadata store query failed.

"No results" is not an error anywhere in this package.
"""


class CatalogSearchError(Exception):
    """Base class for all errors raised by catalog_search."""


class ConfigurationError(CatalogSearchError):
    """Misconfiguration that makes every request fail the same way."""


class EmptyCorpusError(ConfigurationError):
    """The chunk store holds no embedded chunks at all."""


class EmbeddingError(CatalogSearchError):
    """The embedding service errored or produced an invalid vector."""


class EmbeddingDimensionError(EmbeddingError, ConfigurationError):
    """Embedding length does not match the corpus dimensionality."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class RetrievalError(CatalogSearchError):
    """A store query failed or timed out."""
