"""Maximal Marginal Relevance (MMR) reranking of search results.

Provides:
- DiversityScorer: strategy interface returning the similarity of two results in [0, 1].
- AttributeDiversity: default scorer using category, brand and price proximity.
- mmr_rerank: greedy MMR reordering; the output is always a permutation of the input.

MMR picks, at each step, the candidate maximizing
    lambda * relevance - (1 - lambda) * max(similarity to already selected results).
"""
import logging
from typing import List, Optional, Protocol, Sequence

from catalog_search.schemas import SearchResult

logger = logging.getLogger(__name__)

MMR_LAMBDA = 0.7


class DiversityScorer(Protocol):
    def __call__(self, a: SearchResult, b: SearchResult) -> float:
        """Similarity of two results; higher means more redundant."""
        ...


class AttributeDiversity:
    """Pairwise similarity from shared category, shared brand and price proximity.

    similarity = category_weight * [same category]
               + brand_weight * [same brand]
               + price_weight * (1 - |pa - pb| / max(pa, pb))   (only when both have a price)

    Missing category/brand values compare equal to each other.
    """

    def __init__(self, category_weight: float = 0.3, brand_weight: float = 0.3, price_weight: float = 0.4):
        self.category_weight = category_weight
        self.brand_weight = brand_weight
        self.price_weight = price_weight

    def __call__(self, a: SearchResult, b: SearchResult) -> float:
        similarity = 0.0
        if a.category == b.category:
            similarity += self.category_weight
        if a.brand == b.brand:
            similarity += self.brand_weight
        if a.price and b.price:
            max_price = max(a.price, b.price)
            if max_price > 0:
                similarity += self.price_weight * (1 - abs(a.price - b.price) / max_price)
        return similarity


def mmr_rerank(
    results: Sequence[SearchResult],
    lambda_: float = MMR_LAMBDA,
    scorer: Optional[DiversityScorer] = None,
) -> List[SearchResult]:
    """Reorder relevance-sorted results to trade relevance against diversity.

    Args:
        results: Results sorted by similarity descending; the first one is kept first.
        lambda_: Weight of relevance versus the diversity penalty.
        scorer: Pairwise similarity strategy; AttributeDiversity() by default.

    Returns:
        List[SearchResult]: Same results, reordered. Ties go to the earlier input item.
    """
    if len(results) <= 1:
        return list(results)
    scorer = scorer or AttributeDiversity()

    remaining = list(results)
    selected: List[SearchResult] = [remaining.pop(0)]

    while remaining:
        best_index = 0
        best_score = float("-inf")
        for i, candidate in enumerate(remaining):
            penalty = max(scorer(chosen, candidate) for chosen in selected)
            mmr_score = lambda_ * candidate.similarity - (1 - lambda_) * penalty
            if mmr_score > best_score:
                best_score = mmr_score
                best_index = i
        selected.append(remaining.pop(best_index))

    logger.debug("MMR reranked %d results", len(selected))
    return selected
