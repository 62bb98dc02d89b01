"""Database setup and session utilities for SQLAlchemy.

This module centralizes engine/session construction and schema helpers:
- create_db_engine / make_session_factory: explicit constructors so callers (the API
  host, ingestion jobs, tests) inject the store connection instead of sharing a
  process-wide one.
- init_db: Ensures the vector and pg_trgm extensions exist, creates tables, the HNSW
  index over product_chunks.embedding and trigram indexes over product text fields.
- verify_corpus_dimension: Fails fast when stored embeddings do not match the
  configured embedding dimension.
- session_scope: Context-managed transactional scope for imperative workflows.

Configuration is read from catalog_search.config.settings.DATABASE_URL by default.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from catalog_search.config import settings
from catalog_search.errors import EmbeddingDimensionError, EmptyCorpusError

logger = logging.getLogger(__name__)

Base = declarative_base()

_TRGM_COLUMNS = ("name", "description", "category", "brand")


def create_db_engine(url: Optional[str] = None) -> Engine:
    """Create a pooled engine for the catalog database.

    Args:
        url: SQLAlchemy URL; defaults to settings.DATABASE_URL.
    """
    return create_engine(
        url or settings.DATABASE_URL,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        future=True,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


def init_db(engine: Engine) -> None:
    """Initialize database extensions, tables, and search indexes.

    This function is idempotent and safe to run multiple times.
    """
    with engine.connect() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS pg_trgm"))
        conn.commit()

    # Import models after Base is defined
    from catalog_search import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    with engine.connect() as conn:
        conn.execute(
            text(
                """
                CREATE INDEX IF NOT EXISTS idx_chunks_embedding_hnsw
                ON product_chunks USING hnsw (embedding vector_cosine_ops)
                WITH (m = 16, ef_construction = 64)
                """
            )
        )
        for column in _TRGM_COLUMNS:
            conn.execute(
                text(
                    f"CREATE INDEX IF NOT EXISTS idx_products_{column}_trgm "
                    f"ON products USING gin ({column} gin_trgm_ops)"
                )
            )
        conn.commit()
    logger.info("Database schema and search indexes ready")


def verify_corpus_dimension(engine: Engine, expected: Optional[int] = None) -> int:
    """Check that stored chunk embeddings have the configured dimension.

    Args:
        engine: Catalog database engine.
        expected: Expected dimension; defaults to settings.EMBEDDING_DIM.

    Returns:
        int: The corpus dimension.

    Raises:
        EmptyCorpusError: No embedded chunk exists.
        EmbeddingDimensionError: Stored vectors have a different length.
    """
    expected = expected or settings.EMBEDDING_DIM
    with engine.connect() as conn:
        dim = conn.execute(
            text("SELECT vector_dims(embedding) FROM product_chunks LIMIT 1")
        ).scalar()
    if dim is None:
        raise EmptyCorpusError("product_chunks holds no embedded chunks")
    if int(dim) != expected:
        raise EmbeddingDimensionError(expected, int(dim))
    return int(dim)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """Yield a session that commits on success and rolls back (and re-raises) on error.

    Used by ingestion, one scope per indexed product.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
