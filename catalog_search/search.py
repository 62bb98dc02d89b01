"""Search orchestration: the public entry points of the retrieval engine.

SearchEngine wires the query embedder and the three stores together:

    query -> embed -> vector retrieval -> per-product aggregation --+
          -> lexical retrieval ------------------------------------+-> fusion
          -> metadata join (assembly) -> optional MMR rerank

The embedder and stores are synchronous and run on worker threads (asyncio.to_thread);
lexical retrieval does not need the query vector and runs alongside the embed + vector
branch. Everything after retrieval is in-memory and deterministic.

No retries happen here: embedder and store errors propagate to the caller. An empty
candidate set yields an empty list.
"""
import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import sessionmaker

from catalog_search.assembler import assemble_results
from catalog_search.config import settings
from catalog_search.embedding import QueryEmbedder
from catalog_search.filters import ProductPredicate, compile_filters
from catalog_search.obs import span
from catalog_search.reranker import mmr_rerank
from catalog_search.retrieval import (
    LexicalRetriever,
    ProductScore,
    VectorRetriever,
    fuse_scores,
    rank_scores,
)
from catalog_search.schemas import (
    ChunkResult,
    HybridSearchOptions,
    ProductRecord,
    SearchOptions,
    SearchRequest,
    SearchResult,
    SearchType,
)
from catalog_search.stores import ChunkStore, LexicalHit, LexicalStore, MetadataStore

logger = logging.getLogger(__name__)


class SearchEngine:
    """Stateless product search over injected collaborators.

    Args:
        embedder: Object with `embed(text) -> List[float]` (QueryEmbedder in production).
        chunk_store: ChunkStore used for vector retrieval.
        lexical_store: LexicalStore used for keyword retrieval.
        metadata_store: MetadataStore used to materialize results.
    """

    def __init__(
        self,
        embedder: QueryEmbedder,
        chunk_store: ChunkStore,
        lexical_store: LexicalStore,
        metadata_store: MetadataStore,
    ):
        self.embedder = embedder
        self.vector_retriever = VectorRetriever(chunk_store)
        self.lexical_retriever = LexicalRetriever(lexical_store)
        self.metadata_store = metadata_store

    @classmethod
    def from_session_factory(
        cls, session_factory: sessionmaker, embedder: Optional[QueryEmbedder] = None
    ) -> "SearchEngine":
        """Build an engine backed by the PostgreSQL stores."""
        from catalog_search.pg_stores import PgChunkStore, PgLexicalStore, PgMetadataStore

        return cls(
            embedder=embedder or QueryEmbedder(),
            chunk_store=PgChunkStore(session_factory),
            lexical_store=PgLexicalStore(session_factory, settings.LEXICAL_MIN_SIMILARITY),
            metadata_store=PgMetadataStore(session_factory),
        )

    # --- stages -------------------------------------------------------------------

    async def _embed(self, query: str) -> List[float]:
        with span("embed_query"):
            return await asyncio.to_thread(self.embedder.embed, query)

    async def _vector_scores(
        self, query: str, predicate: ProductPredicate, options: SearchOptions
    ) -> List[ProductScore]:
        vector = await self._embed(query)
        with span("vector_retrieval", {"threshold": options.threshold, "limit": options.limit}):
            return await asyncio.to_thread(
                self.vector_retriever.search,
                vector,
                predicate,
                options.threshold,
                options.limit,
                options.offset,
            )

    async def _lexical_hits(
        self, query: str, predicate: ProductPredicate, options: SearchOptions
    ) -> List[LexicalHit]:
        with span("lexical_retrieval", {"limit": options.limit}):
            return await asyncio.to_thread(
                self.lexical_retriever.search, query, predicate, options.limit, options.offset
            )

    async def _materialize(
        self,
        ranked: Sequence[Tuple[str, float]],
        chunks_by_product: Dict[str, List[ChunkResult]],
        options: SearchOptions,
    ) -> List[SearchResult]:
        if not ranked:
            return []
        with span("metadata_lookup", {"products": len(ranked)}):
            products = await asyncio.to_thread(
                self.metadata_store.get_by_ids, [pid for pid, _ in ranked]
            )
        results = assemble_results(ranked, products, chunks_by_product, options.include_chunks)
        if options.rerank and results:
            results = mmr_rerank(results)
        return results

    # --- public API ---------------------------------------------------------------

    async def search(self, options: SearchOptions) -> List[SearchResult]:
        """Vector-only search: chunk similarity aggregated per product.

        Returns:
            List[SearchResult]: At most `options.limit` results, best first (before rerank).
        """
        logger.info("Vector search for %r", options.query)
        predicate = compile_filters(options.filters)
        scored = await self._vector_scores(options.query, predicate, options)
        ranked = [(p.product_id, p.score) for p in scored]
        results = await self._materialize(ranked, {p.product_id: p.chunks for p in scored}, options)
        logger.info("Vector search found %d products", len(results))
        return results

    async def keyword_search(self, options: SearchOptions) -> List[SearchResult]:
        """Lexical-only search: trigram similarity of product display fields."""
        logger.info("Keyword search for %r", options.query)
        predicate = compile_filters(options.filters)
        hits = await self._lexical_hits(options.query, predicate, options)
        ranked = rank_scores({h.product_id: h.score for h in hits}, options.limit)
        results = await self._materialize(ranked, {}, options)
        logger.info("Keyword search found %d products", len(results))
        return results

    async def hybrid_search(self, options: HybridSearchOptions) -> List[SearchResult]:
        """Vector and lexical retrieval fused with vector_weight / keyword_weight.

        The candidate set is the union of both retrievers; a product found by only one
        of them gets 0 from the other side.
        """
        logger.info("Hybrid search for %r", options.query)
        predicate = compile_filters(options.filters)
        scored, hits = await asyncio.gather(
            self._vector_scores(options.query, predicate, options),
            self._lexical_hits(options.query, predicate, options),
        )
        logger.debug("Hybrid inputs: %d vector products, %d lexical products", len(scored), len(hits))
        ranked = fuse_scores(
            {p.product_id: p.score for p in scored},
            {h.product_id: h.score for h in hits},
            options.vector_weight,
            options.keyword_weight,
            options.limit,
        )
        results = await self._materialize(ranked, {p.product_id: p.chunks for p in scored}, options)
        logger.info("Hybrid search found %d products", len(results))
        return results

    async def run(self, request: SearchRequest) -> List[SearchResult]:
        """Dispatch a request on its search_type."""
        if request.search_type == SearchType.VECTOR:
            return await self.search(request)
        if request.search_type == SearchType.KEYWORD:
            return await self.keyword_search(request)
        return await self.hybrid_search(request)

    async def get_product(self, product_id: str) -> Optional[ProductRecord]:
        """Full metadata of one product, or None when it does not exist."""
        products = await asyncio.to_thread(self.metadata_store.get_by_ids, [product_id])
        return products[0] if products else None
