"""Application configuration and environment-driven settings.

Defines the Settings class based on pydantic-settings to centralize configuration for:
- API keys and the embedding model (and therefore the corpus vector dimension)
- The PostgreSQL catalog store
- Search defaults (limit, threshold, hybrid weights, lexical candidate cutoff)
- Request deadline, logging and tracing knobs

Scoring constants that define the ranking itself (aggregation blend, MMR lambda,
diversity weights) live next to the code that uses them, not here.
"""
import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Search service settings, read from the process environment or a .env file.

    Field names are upper-case and matched case-insensitively.
    """
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")

    # Embeddings
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"  # 1536 dims
    EMBEDDING_DIM_OVERRIDE: int = 0  # 0 = derive from model name
    EMBED_BATCH_SIZE: int = 20

    # Data store
    DATABASE_URL: str = "postgresql+psycopg2://catalog:catalog@db:5432/catalog"
    DB_POOL_SIZE: int = 10

    # Search defaults
    SEARCH_DEFAULT_LIMIT: int = 10
    SEARCH_DEFAULT_THRESHOLD: float = 0.5
    HYBRID_VECTOR_WEIGHT: float = 0.7
    HYBRID_KEYWORD_WEIGHT: float = 0.3
    LEXICAL_MIN_SIMILARITY: float = 0.3  # pg_trgm default for the % operator
    SEARCH_TIMEOUT_SECONDS: float = 10.0

    # Chunking
    MAX_CHUNK_TOKENS: int = 1500

    # Ops
    LOG_LEVEL: str = "INFO"
    OTEL_CONSOLE_EXPORT: bool = False

    @property
    def EMBEDDING_DIM(self) -> int:
        """Embedding dimension for the configured embedding model.

        Returns:
            int: EMBEDDING_DIM_OVERRIDE when set, otherwise the vector dimension
                inferred from OPENAI_EMBEDDING_MODEL.
        """
        if self.EMBEDDING_DIM_OVERRIDE > 0:
            return self.EMBEDDING_DIM_OVERRIDE
        model = self.OPENAI_EMBEDDING_MODEL.lower()
        if "text-embedding-3-small" in model:
            return 1536
        if "text-embedding-3-large" in model:
            return 3072
        # Fallback
        return 1536

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()

if not settings.OPENAI_API_KEY:
    logger.warning("OPENAI_API_KEY not set. Query embedding will fail until it is configured.")
