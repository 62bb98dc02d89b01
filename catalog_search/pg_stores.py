"""PostgreSQL-backed stores: pgvector chunk search, pg_trgm lexical search, metadata lookup.

Each store receives a session factory and opens one short-lived Session per call, so the
engine may call them from worker threads concurrently. Driver/SQL failures are wrapped
into RetrievalError; an empty result is returned as an empty list.

Vector search uses pgvector cosine distance (similarity = 1 - distance).
Lexical search uses pg_trgm similarity() over name, description, category and brand.
"""
import logging
from typing import Dict, List, Sequence

from sqlalchemy import Text, cast, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from catalog_search.errors import RetrievalError
from catalog_search.filters import ProductPredicate
from catalog_search.models import Product
from catalog_search.schemas import ProductImage, ProductRecord, Rating
from catalog_search.stores import ChunkHit, LexicalHit

logger = logging.getLogger(__name__)


def _vector_literal(vector: Sequence[float]) -> str:
    """Format a vector as pgvector text input, e.g. '[0.1,0.2]'."""
    return "[" + ",".join(f"{float(x):.8f}" for x in vector) + "]"


def _like_pattern(s: str) -> str:
    """Escape LIKE wildcards and wrap the text for a substring match."""
    escaped = s.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class PgChunkStore:
    """ChunkStore over product_chunks joined to products for filtering."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def query_by_similarity(
        self, vector: Sequence[float], predicate: ProductPredicate, threshold: float, top_n: int
    ) -> List[ChunkHit]:
        where, params = predicate.to_sql("p")
        sql = text(
            f"""
            SELECT c.id AS chunk_id, c.product_id, c.chunk_type, c.chunk_content, c.position,
                   1 - (c.embedding <=> CAST(:qvec AS vector)) AS similarity
            FROM product_chunks c
            JOIN products p ON p.id = c.product_id
            WHERE 1 - (c.embedding <=> CAST(:qvec AS vector)) > :threshold
              AND {where}
            ORDER BY c.embedding <=> CAST(:qvec AS vector), c.id
            LIMIT :limit
            """
        )
        params.update({"qvec": _vector_literal(vector), "threshold": threshold, "limit": top_n})
        try:
            with self._session_factory() as session:
                rows = session.execute(sql, params).mappings().all()
        except SQLAlchemyError as e:
            raise RetrievalError(f"vector query failed: {e}") from e
        return [
            ChunkHit(
                product_id=str(r["product_id"]),
                chunk_id=str(r["chunk_id"]),
                chunk_type=r["chunk_type"] or "",
                content=r["chunk_content"] or "",
                position=int(r["position"] or 0),
                similarity=float(r["similarity"]),
            )
            for r in rows
        ]


class PgLexicalStore:
    """LexicalStore scoring products by the best pg_trgm similarity of four fields.

    A product is a candidate when one field contains the query (ILIKE) or the best
    field similarity reaches min_similarity.
    """

    def __init__(self, session_factory: sessionmaker, min_similarity: float = 0.3):
        self._session_factory = session_factory
        self.min_similarity = min_similarity

    def query_by_text(
        self, text_query: str, predicate: ProductPredicate, top_n: int, offset: int = 0
    ) -> List[LexicalHit]:
        if not text_query.strip():
            return []
        where, params = predicate.to_sql("p")
        sql = text(
            f"""
            SELECT id, name, score FROM (
                SELECT p.id, p.name,
                    GREATEST(
                        similarity(p.name, :q),
                        similarity(COALESCE(p.description, ''), :q),
                        similarity(COALESCE(p.category, ''), :q),
                        similarity(COALESCE(p.brand, ''), :q)
                    ) AS score,
                    (p.name ILIKE :pattern
                        OR p.description ILIKE :pattern
                        OR p.category ILIKE :pattern
                        OR p.brand ILIKE :pattern) AS contains_query
                FROM products p
                WHERE {where}
            ) scored
            WHERE contains_query OR score >= :min_sim
            ORDER BY score DESC, id
            LIMIT :limit OFFSET :offset
            """
        )
        params.update(
            {
                "q": text_query,
                "pattern": _like_pattern(text_query.strip()),
                "min_sim": self.min_similarity,
                "limit": top_n,
                "offset": offset,
            }
        )
        try:
            with self._session_factory() as session:
                rows = session.execute(sql, params).mappings().all()
        except SQLAlchemyError as e:
            raise RetrievalError(f"lexical query failed: {e}") from e
        return [
            LexicalHit(product_id=str(r["id"]), name=r["name"], score=float(r["score"] or 0.0))
            for r in rows
        ]


def product_to_record(row: Product) -> ProductRecord:
    """Convert an ORM Product into the read-only ProductRecord view."""
    rating = None
    if row.rating_value is not None:
        rating = Rating(value=float(row.rating_value), count=row.rating_count)
    return ProductRecord(
        id=str(row.id),
        shop_id=str(row.shop_id) if row.shop_id else None,
        name=row.name,
        description=row.description,
        url=row.url,
        brand=row.brand,
        category=row.category,
        subcategory=row.subcategory,
        price=float(row.price_numeric) if row.price_numeric is not None else None,
        price_original=float(row.price_original) if row.price_original is not None else None,
        currency=row.currency or "EUR",
        availability=row.availability,
        product_type=row.product_type,
        rating=rating,
        sku=row.sku,
        ean=row.ean,
        tags=list(row.tags or []),
        claims=list(row.claims or []),
        warnings=list(row.warnings or []),
        specifications=dict(row.specifications or {}),
        attributes=dict(row.attributes or {}),
        images=[ProductImage.model_validate(i) for i in (row.images or []) if isinstance(i, dict)],
    )


def products_by_ids_query(product_ids: Sequence[str]):
    """SELECT products by id, comparing ids as text so non-UUID ids match nothing."""
    return select(Product).where(cast(Product.id, Text).in_([str(pid) for pid in product_ids]))


class PgMetadataStore:
    """MetadataStore reading full product rows by id."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_by_ids(self, product_ids: Sequence[str]) -> List[ProductRecord]:
        if not product_ids:
            return []
        try:
            with self._session_factory() as session:
                rows = session.execute(products_by_ids_query(product_ids)).scalars().all()
                by_id: Dict[str, ProductRecord] = {str(r.id): product_to_record(r) for r in rows}
        except SQLAlchemyError as e:
            raise RetrievalError(f"metadata lookup failed: {e}") from e
        return list(by_id.values())
