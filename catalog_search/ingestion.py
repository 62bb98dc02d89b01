"""Indexing helpers: turn a ProductRecord into embedded chunks and store them.

Provides:
- embed_passages: chunk a product and embed every passage in batches.
- chunk_records: the same, as ChunkRecord objects (for InMemoryCatalog).
- index_product: upsert a product row and replace its product_chunks rows.
- index_catalog / main: bulk indexing from a JSON file of products.

Crawling and LLM field extraction happen upstream; these helpers start from an already
structured ProductRecord.

Usage:
  python -m catalog_search.ingestion --file products.json
"""
import argparse
import json
import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from catalog_search.chunker import Passage, create_chunks
from catalog_search.db import create_db_engine, init_db, make_session_factory, session_scope
from catalog_search.embedding import QueryEmbedder
from catalog_search.errors import EmbeddingDimensionError, EmbeddingError
from catalog_search.models import Product, ProductChunk
from catalog_search.schemas import ChunkRecord, ProductRecord

logger = logging.getLogger(__name__)


def embed_passages(
    product: ProductRecord, embedder: QueryEmbedder, max_tokens: Optional[int] = None
) -> List[Tuple[Passage, List[float]]]:
    """Chunk a product and embed each passage.

    Returns:
        List[Tuple[Passage, List[float]]]: (passage, embedding) in position order.
    """
    passages = create_chunks(product, max_tokens)
    vectors = embedder.embed_texts([p.content for p in passages])
    logger.debug("Product %s => %d chunks", product.id, len(passages))
    return list(zip(passages, vectors))


def chunk_records(
    product: ProductRecord, embedder: QueryEmbedder, max_tokens: Optional[int] = None
) -> List[ChunkRecord]:
    return [
        ChunkRecord(
            id=f"{product.id}:{position}",
            product_id=product.id,
            chunk_type=passage.chunk_type.value,
            position=position,
            content=passage.content,
            embedding=vector,
            metadata=passage.metadata,
        )
        for position, (passage, vector) in enumerate(embed_passages(product, embedder, max_tokens))
    ]


def _product_row(record: ProductRecord) -> Product:
    return Product(
        id=record.id or str(uuid.uuid4()),
        shop_id=record.shop_id,
        url=record.url,
        name=record.name,
        description=record.description,
        product_type=record.product_type,
        category=record.category,
        subcategory=record.subcategory,
        tags=list(record.tags),
        price_numeric=record.price,
        price_original=record.price_original,
        currency=record.currency,
        availability=record.availability,
        rating_value=record.rating.value if record.rating else None,
        rating_count=record.rating.count if record.rating else None,
        brand=record.brand,
        sku=record.sku,
        ean=record.ean,
        claims=list(record.claims),
        warnings=list(record.warnings),
        specifications=dict(record.specifications),
        attributes=dict(record.attributes),
        images=[i.model_dump(exclude_none=True) for i in record.images],
    )


def index_product(session: Session, record: ProductRecord, embedder: QueryEmbedder) -> int:
    """Upsert a product and replace all of its chunks.

    Args:
        session: Open session; the caller commits (see db.session_scope).
        record: Product to index.
        embedder: Embedder producing chunk vectors of the corpus dimension.

    Returns:
        int: Number of chunks written.
    """
    embedded = embed_passages(record, embedder)
    product = session.merge(_product_row(record))
    session.flush()
    session.execute(delete(ProductChunk).where(ProductChunk.product_id == product.id))
    for position, (passage, vector) in enumerate(embedded):
        session.add(
            ProductChunk(
                product_id=product.id,
                chunk_type=passage.chunk_type.value,
                chunk_content=passage.content,
                position=position,
                chunk_metadata=passage.metadata,
                embedding=vector,
            )
        )
    logger.info("Indexed product %s (%s) with %d chunks", product.id, record.name, len(embedded))
    return len(embedded)


def load_records(path: str) -> List[ProductRecord]:
    """Read a JSON file holding a list of products (camelCase keys)."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("products", [])
    return [ProductRecord.model_validate(item) for item in data]


def index_catalog(
    session_factory: sessionmaker, records: List[ProductRecord], embedder: Optional[QueryEmbedder] = None
) -> int:
    """Index products one transaction each; a failing product is logged and skipped.

    Returns:
        int: Total number of chunks written.
    """
    embedder = embedder or QueryEmbedder()
    total = 0
    for record in records:
        try:
            with session_scope(session_factory) as session:
                total += index_product(session, record, embedder)
        except EmbeddingDimensionError:
            raise
        except (EmbeddingError, SQLAlchemyError):
            logger.exception("Indexing failed for product %s (%s)", record.id, record.name)
    return total


def main():
    parser = argparse.ArgumentParser(description="Index structured products from a JSON file.")
    parser.add_argument("--file", required=True, help="JSON file with a list of products")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: INFO)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    records = load_records(args.file)
    logger.info("Indexing %d products from %s", len(records), args.file)

    engine = create_db_engine()
    init_db(engine)
    total = index_catalog(make_session_factory(engine), records)
    logger.info("Completed indexing: products=%d, chunks=%d", len(records), total)


if __name__ == "__main__":
    main()
