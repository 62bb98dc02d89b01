"""Retrieval and scoring stages of the search pipeline.

This module implements:
- VectorRetriever: oversampled chunk retrieval by cosine similarity, aggregated per product
- LexicalRetriever: product-level trigram retrieval over display fields
- aggregate_chunk_scores: chunk hits -> one score per product (0.7 * max + 0.3 * mean)
- fuse_scores: weighted union of vector and lexical product scores

Retrievers are synchronous; SearchEngine schedules them on worker threads. Every sort
breaks score ties by product id (chunk id for chunks) so rankings are deterministic.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from catalog_search.filters import ProductPredicate
from catalog_search.schemas import ChunkResult
from catalog_search.stores import ChunkHit, ChunkStore, LexicalHit, LexicalStore

logger = logging.getLogger(__name__)

MAX_WEIGHT = 0.7
MEAN_WEIGHT = 0.3
CHUNK_OVERSAMPLE = 3  # chunks fetched per requested product
MAX_CHUNKS_PER_PRODUCT = 3


@dataclass
class ProductScore:
    """Aggregated vector relevance of one product.

    Attributes:
        product_id: Product the chunks belong to.
        score: 0.7 * max_similarity + 0.3 * avg_similarity.
        max_similarity: Best single chunk similarity.
        avg_similarity: Mean similarity over all retrieved chunks of the product.
        chunks: Up to three best chunks, most similar first.
    """
    product_id: str
    score: float
    max_similarity: float
    avg_similarity: float
    chunks: List[ChunkResult] = field(default_factory=list)


def _chunk_result(hit: ChunkHit) -> ChunkResult:
    return ChunkResult(
        chunk_id=hit.chunk_id,
        chunk_type=hit.chunk_type,
        content=hit.content,
        similarity=hit.similarity,
        position=hit.position,
    )


def aggregate_chunk_scores(hits: Iterable[ChunkHit]) -> List[ProductScore]:
    """Collapse chunk hits into one score per product.

    Args:
        hits: Chunk hits from vector retrieval, any order.

    Returns:
        List[ProductScore]: Products sorted by score descending, then product id.
    """
    grouped: Dict[str, List[ChunkHit]] = {}
    for hit in hits:
        grouped.setdefault(hit.product_id, []).append(hit)

    out: List[ProductScore] = []
    for product_id, group in grouped.items():
        sims = [h.similarity for h in group]
        best = max(sims)
        mean = math.fsum(sims) / len(sims)
        top = sorted(group, key=lambda h: (-h.similarity, h.chunk_id))[:MAX_CHUNKS_PER_PRODUCT]
        out.append(
            ProductScore(
                product_id=product_id,
                score=MAX_WEIGHT * best + MEAN_WEIGHT * mean,
                max_similarity=best,
                avg_similarity=mean,
                chunks=[_chunk_result(h) for h in top],
            )
        )
    out.sort(key=lambda p: (-p.score, p.product_id))
    return out


def rank_scores(scores: Mapping[str, float], limit: int) -> List[Tuple[str, float]]:
    """Sort a product->score map descending (ties by product id) and keep `limit`."""
    ordered = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))
    return ordered[:max(0, limit)]


def fuse_scores(
    vector_scores: Mapping[str, float],
    lexical_scores: Mapping[str, float],
    vector_weight: float,
    keyword_weight: float,
    limit: int,
) -> List[Tuple[str, float]]:
    """Weighted union of vector and lexical product scores.

    A product missing from one side contributes 0 from that side. Weights are applied
    as given; they are not normalized to sum to 1.

    Args:
        vector_scores: product id -> aggregated vector score.
        lexical_scores: product id -> lexical score.
        vector_weight: Multiplier for the vector component.
        keyword_weight: Multiplier for the lexical component.
        limit: Number of products to keep.

    Returns:
        List[Tuple[str, float]]: (product id, fused score), best first.
    """
    fused: Dict[str, float] = {}
    for product_id in set(vector_scores) | set(lexical_scores):
        fused[product_id] = (
            vector_scores.get(product_id, 0.0) * vector_weight
            + lexical_scores.get(product_id, 0.0) * keyword_weight
        )
    return rank_scores(fused, limit)


class VectorRetriever:
    """Chunk-level semantic retrieval turned into product scores.

    Args:
        store: ChunkStore answering similarity queries.
        oversample: Chunks requested per wanted product, so that several chunks of
            the same product can corroborate each other.
    """

    def __init__(self, store: ChunkStore, oversample: int = CHUNK_OVERSAMPLE):
        self.store = store
        self.oversample = oversample

    def retrieve_chunks(
        self,
        vector: Sequence[float],
        predicate: ProductPredicate,
        threshold: float,
        limit: int,
        offset: int = 0,
    ) -> List[ChunkHit]:
        top_n = (limit + offset) * self.oversample
        hits = self.store.query_by_similarity(vector, predicate, threshold, top_n)
        logger.debug("Vector retrieval: %d chunk hits (top_n=%d, threshold=%.3f)", len(hits), top_n, threshold)
        return hits

    def search(
        self,
        vector: Sequence[float],
        predicate: ProductPredicate,
        threshold: float,
        limit: int,
        offset: int = 0,
    ) -> List[ProductScore]:
        """Return the products ranked [offset, offset + limit) by aggregated score."""
        hits = self.retrieve_chunks(vector, predicate, threshold, limit, offset)
        return aggregate_chunk_scores(hits)[offset:offset + limit]


class LexicalRetriever:
    """Product-level text retrieval; scores come straight from the LexicalStore."""

    def __init__(self, store: LexicalStore):
        self.store = store

    def search(
        self, query: str, predicate: ProductPredicate, limit: int, offset: int = 0
    ) -> List[LexicalHit]:
        hits = self.store.query_by_text(query, predicate, limit, offset)
        logger.debug("Lexical retrieval: %d product hits", len(hits))
        return hits
