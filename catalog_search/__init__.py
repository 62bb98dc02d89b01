"""Product retrieval engine over chunk embeddings and product text, with an API host.

Submodules overview:
- main: FastAPI application bootstrap and routes.
- config: Application settings and environment variable loading.
- errors: Exception hierarchy (configuration, embedding, retrieval failures).
- schemas: Pydantic models for catalog records, search requests and results.
- filters: Structured filters compiled into a product predicate.
- embedding: Query/chunk embedding via OpenAI.
- stores: Store interfaces and the in-memory catalog.
- pg_stores: PostgreSQL stores (pgvector, pg_trgm).
- db: Database engine/session helpers, schema and index setup.
- models: ORM models for products and their chunks.
- retrieval: Vector and lexical retrieval, per-product aggregation, hybrid fusion.
- reranker: Maximal Marginal Relevance reranking.
- assembler: Ranked ids -> public search results.
- search: SearchEngine, the public search entry points.
- chunker: Product -> labeled text passages.
- ingestion: Embedding and storing product chunks.
- obs: OpenTelemetry spans.
"""
