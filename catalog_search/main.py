"""FastAPI application exposing the product search engine.

Endpoints:
- GET  /health: liveness probe.
- POST /search: vector, keyword or hybrid product search (SearchRequest -> SearchResponse),
  optionally with the results rendered as a prompt-ready text block (includeContext).
- GET  /products/{product_id}: full metadata of one product.

On startup the app configures logging and tracing, prepares the schema, and verifies
that stored embeddings match the configured dimension, so a misconfigured deployment
fails before serving traffic. Tests pass a ready SearchEngine to create_app instead.

Request deadlines are enforced here (SEARCH_TIMEOUT_SECONDS); engine errors map to
502 (upstream), 500 (configuration) and 504 (deadline).
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from catalog_search.assembler import format_search_context
from catalog_search.config import settings
from catalog_search.db import create_db_engine, init_db, make_session_factory, verify_corpus_dimension
from catalog_search.errors import ConfigurationError, EmbeddingError, RetrievalError
from catalog_search.obs import configure_tracing, span
from catalog_search.schemas import ProductRecord, SearchRequest, SearchResponse
from catalog_search.search import SearchEngine

logger = logging.getLogger(__name__)


def _build_engine() -> SearchEngine:
    db_engine = create_db_engine()
    init_db(db_engine)
    dim = verify_corpus_dimension(db_engine)
    logger.info("Catalog corpus ready (embedding dim=%d)", dim)
    return SearchEngine.from_session_factory(make_session_factory(db_engine))


def create_app(search_engine: Optional[SearchEngine] = None) -> FastAPI:
    """Create the API app.

    Args:
        search_engine: Pre-built engine (tests, embedding in another service). When
            omitted, one backed by PostgreSQL is built at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(
            level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        configure_tracing(settings.OTEL_CONSOLE_EXPORT)
        if getattr(app.state, "search_engine", None) is None:
            app.state.search_engine = _build_engine()
        yield

    app = FastAPI(title="Catalog Search API", version="0.1.0", lifespan=lifespan)
    app.state.search_engine = search_engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_credentials=True,
        allow_headers=["*"],
    )

    @app.exception_handler(ConfigurationError)
    async def _configuration_error(request: Request, exc: ConfigurationError):
        logger.error("Configuration error: %s", exc)
        return JSONResponse(status_code=500, content={"detail": "search is misconfigured"})

    @app.exception_handler(EmbeddingError)
    async def _embedding_error(request: Request, exc: EmbeddingError):
        if isinstance(exc, ConfigurationError):
            return await _configuration_error(request, exc)
        logger.error("Embedding failed: %s", exc)
        return JSONResponse(status_code=502, content={"detail": "embedding service unavailable"})

    @app.exception_handler(RetrievalError)
    async def _retrieval_error(request: Request, exc: RetrievalError):
        logger.error("Retrieval failed: %s", exc)
        return JSONResponse(status_code=502, content={"detail": "catalog store unavailable"})

    @app.get("/health")
    def health():
        """Liveness probe endpoint."""
        return {"status": "ok"}

    @app.post("/search", response_model=SearchResponse)
    async def search(req: SearchRequest, request: Request) -> SearchResponse:
        """Search products; an empty result list is a normal 200 response."""
        t0 = time.time()
        engine: SearchEngine = request.app.state.search_engine
        with span("search", {"search_type": req.search_type.value, "limit": req.limit}):
            try:
                results = await asyncio.wait_for(engine.run(req), timeout=settings.SEARCH_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.error("Search timed out after %.1fs: %r", settings.SEARCH_TIMEOUT_SECONDS, req.query)
                raise HTTPException(status_code=504, detail="search timed out")
        return SearchResponse(
            query=req.query,
            search_type=req.search_type,
            results=results,
            count=len(results),
            latency_ms=int((time.time() - t0) * 1000),
            context=format_search_context(results) if req.include_context else None,
        )

    @app.get("/products/{product_id}", response_model=ProductRecord)
    async def get_product(product_id: str, request: Request) -> ProductRecord:
        """Full metadata of one product."""
        engine: SearchEngine = request.app.state.search_engine
        product = await engine.get_product(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="product not found")
        return product

    return app


app = create_app()
