"""Database ORM models.

Defines the persistent catalog entities read by the retrieval engine:
- Product: one crawled product with display, commerce and free-form fields.
- ProductChunk: a labeled passage of a product with a pgvector embedding used for
  cosine similarity search. Chunks are deleted with their product.

Both tables are written by ingestion; retrieval only reads them.
"""
import uuid
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, Numeric, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID

from catalog_search.config import settings
from catalog_search.db import Base
from catalog_search.schemas import Availability, ProductType


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


def _new_id() -> str:
    return str(uuid.uuid4())


class Product(Base):
    """Catalog product.

    Indexes:
        - idx_products_shop / idx_products_type / idx_products_brand: filter columns
        - trigram GIN indexes on name, description, category, brand are created by
          init_db, since they need the pg_trgm operator class.
    """
    __tablename__ = "products"

    id = Column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    shop_id = Column(UUID(as_uuid=False), nullable=True)

    url = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)

    product_type = Column(
        Enum(ProductType, name="product_type", values_callable=_enum_values), nullable=True
    )
    category = Column(Text, nullable=True)
    subcategory = Column(Text, nullable=True)
    tags = Column(ARRAY(Text), nullable=False, default=list)

    price_numeric = Column(Numeric(12, 2), nullable=True)
    price_original = Column(Numeric(12, 2), nullable=True)
    currency = Column(Text, nullable=False, default="EUR")
    availability = Column(
        Enum(Availability, name="availability", values_callable=_enum_values), nullable=True
    )

    rating_value = Column(Numeric(3, 2), nullable=True)
    rating_count = Column(Integer, nullable=True)

    brand = Column(Text, nullable=True)
    sku = Column(Text, nullable=True)
    ean = Column(Text, nullable=True)

    claims = Column(ARRAY(Text), nullable=False, default=list)
    warnings = Column(ARRAY(Text), nullable=False, default=list)
    specifications = Column(JSONB, nullable=False, default=dict)
    attributes = Column(JSONB, nullable=False, default=dict)
    images = Column(JSONB, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_products_shop", "shop_id"),
        Index("idx_products_type", "product_type"),
        Index("idx_products_brand", "brand"),
    )


class ProductChunk(Base):
    """Vector-embedded passage of a product.

    Notes:
        The embedding dimension is settings.EMBEDDING_DIM and must match the query
        embedder; db.verify_corpus_dimension checks stored rows at startup.
    """
    __tablename__ = "product_chunks"

    id = Column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    product_id = Column(
        UUID(as_uuid=False), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )

    chunk_type = Column(Text, nullable=True)  # main, specs, details, claims, attributes
    chunk_content = Column(Text, nullable=False)
    position = Column(Integer, nullable=False, default=0)  # order within a product
    chunk_metadata = Column("metadata", JSONB, nullable=False, default=dict)

    embedding = Column(Vector(dim=settings.EMBEDDING_DIM), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_chunks_product", "product_id"),
        Index("idx_chunks_type", "chunk_type"),
    )
