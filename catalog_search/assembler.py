"""Result assembly: ranked product ids -> public SearchResult objects.

Provides:
- assemble_results: joins (product id, score) pairs with product metadata and optional
  best chunks, preserving rank order and dropping ids whose metadata is gone.
- format_search_context: numbered plain-text rendering of results for LLM prompts.
"""
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from catalog_search.retrieval import MAX_CHUNKS_PER_PRODUCT
from catalog_search.schemas import ChunkResult, ProductRecord, ResultMetadata, SearchResult

logger = logging.getLogger(__name__)


def to_search_result(
    product: ProductRecord, similarity: float, chunks: Optional[List[ChunkResult]] = None
) -> SearchResult:
    """Build the public view of one product with its final score."""
    return SearchResult(
        product_id=product.id,
        name=product.name,
        description=product.description,
        url=product.url,
        price=product.price,
        currency=product.currency,
        brand=product.brand,
        category=product.category,
        similarity=similarity,
        chunks=chunks,
        metadata=ResultMetadata(
            subcategory=product.subcategory,
            product_type=product.product_type,
            availability=product.availability,
            claims=list(product.claims),
            specifications=dict(product.specifications),
            images=list(product.images),
            rating=product.rating,
        ),
    )


def assemble_results(
    ranked: Sequence[Tuple[str, float]],
    products: Sequence[ProductRecord],
    chunks_by_product: Optional[Mapping[str, List[ChunkResult]]] = None,
    include_chunks: bool = False,
) -> List[SearchResult]:
    """Materialize ranked product ids into SearchResults.

    Args:
        ranked: (product id, final score) pairs in final order.
        products: Metadata rows returned by the MetadataStore (any order, may be partial).
        chunks_by_product: Best chunks per product from vector retrieval.
        include_chunks: Attach up to three chunks per result, most similar first.

    Returns:
        List[SearchResult]: Results in `ranked` order, without unresolvable ids.
    """
    by_id: Dict[str, ProductRecord] = {p.id: p for p in products}
    chunks_by_product = chunks_by_product or {}
    results: List[SearchResult] = []
    for product_id, score in ranked:
        product = by_id.get(product_id)
        if product is None:
            logger.warning("Dropping result %s: product metadata not found", product_id)
            continue
        chunks = None
        if include_chunks:
            chunks = sorted(
                chunks_by_product.get(product_id, []),
                key=lambda c: (-c.similarity, c.chunk_id),
            )[:MAX_CHUNKS_PER_PRODUCT]
        results.append(to_search_result(product, score, chunks))
    return results


def format_search_context(results: Sequence[SearchResult]) -> str:
    """Render results as a numbered text block (German labels, as shown to shoppers).

    Args:
        results: Search results in display order.

    Returns:
        str: One paragraph per product, separated by blank lines.
    """
    blocks: List[str] = []
    for i, r in enumerate(results, start=1):
        lines = [
            f"{i}. {r.name}",
            f"   URL: {r.url}",
            f"   Preis: {f'€{r.price:.2f}' if r.price is not None else 'Nicht verfügbar'}",
            f"   Marke: {r.brand or 'Nicht angegeben'}",
            f"   Kategorie: {r.category or 'Nicht angegeben'}",
            f"   Beschreibung: {r.description or 'Keine Beschreibung verfügbar'}",
        ]
        if r.metadata.claims:
            lines.append(f"   Claims: {', '.join(r.metadata.claims)}")
        if r.metadata.rating:
            count = r.metadata.rating.count or 0
            lines.append(f"   Bewertung: {r.metadata.rating.value}/5 ({count} Bewertungen)")
        lines.append(f"   Relevanz-Score: {r.similarity * 100:.1f}%")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)
