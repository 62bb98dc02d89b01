"""Pydantic models shared by the retrieval engine and its API host.

Defines:
- Closed enums: Availability, ProductType, ChunkType, SearchType.
- Catalog records read by the engine: ProductRecord, ChunkRecord (plus Rating, ProductImage).
- Request contracts: SearchFilters, SearchOptions, HybridSearchOptions, SearchRequest.
- Result views: ChunkResult, ResultMetadata, SearchResult, SearchResponse.

All models accept and emit camelCase keys (productId, priceRange, ...) while Python code
uses snake_case attribute names. Free-form bags (specifications, chunk metadata) are typed
as pydantic's JsonValue: strings, numbers, booleans, null, lists and nested maps.
"""
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, JsonValue
from pydantic.alias_generators import to_camel

from catalog_search.config import settings


class Availability(str, Enum):
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    ON_REQUEST = "on_request"
    PREORDER = "preorder"
    DISCONTINUED = "discontinued"


class ProductType(str, Enum):
    FASHION = "fashion"
    FURNITURE = "furniture"
    ELECTRONICS = "electronics"
    FOOD = "food"
    BEAUTY = "beauty"
    SPORTS = "sports"
    TOYS = "toys"
    BOOKS = "books"
    OTHER = "other"


class ChunkType(str, Enum):
    MAIN = "main"
    SPECS = "specs"
    DETAILS = "details"
    CLAIMS = "claims"
    ATTRIBUTES = "attributes"


class SearchType(str, Enum):
    VECTOR = "vector"
    HYBRID = "hybrid"
    KEYWORD = "keyword"


class CamelModel(BaseModel):
    """Base model serializing to camelCase and accepting either spelling on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Catalog records -------------------------------------------------------------


class Rating(CamelModel):
    value: float
    count: Optional[int] = None


class ProductImage(CamelModel):
    url: str
    alt: Optional[str] = None
    type: Optional[str] = None


class ProductRecord(CamelModel):
    """A product as stored by ingestion. Read-only to retrieval."""
    id: str
    shop_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    url: str
    brand: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    price: Optional[float] = None
    price_original: Optional[float] = None
    currency: str = "EUR"
    availability: Optional[Availability] = None
    product_type: Optional[ProductType] = None
    rating: Optional[Rating] = None
    sku: Optional[str] = None
    ean: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    claims: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    specifications: Dict[str, JsonValue] = Field(default_factory=dict)
    attributes: Dict[str, JsonValue] = Field(default_factory=dict)
    images: List[ProductImage] = Field(default_factory=list)


class ChunkRecord(CamelModel):
    """A labeled passage of one product with its embedding."""
    id: str
    product_id: str
    chunk_type: str
    position: int = 0
    content: str
    embedding: List[float]
    metadata: Dict[str, JsonValue] = Field(default_factory=dict)


# --- Requests ----------------------------------------------------------------------


class SearchFilters(CamelModel):
    """Optional structured constraints; every present field is ANDed.

    Attributes:
        shop_id: Restrict to a single shop.
        price_range: Inclusive [min, max]; either bound may be null.
        categories, brands, availability, product_types: Membership sets. An empty
            list means "no constraint" for that field.
    """
    shop_id: Optional[str] = None
    price_range: Optional[Tuple[Optional[float], Optional[float]]] = None
    categories: List[str] = Field(default_factory=list)
    brands: List[str] = Field(default_factory=list)
    availability: List[str] = Field(default_factory=list)
    product_types: List[str] = Field(default_factory=list)


class SearchOptions(CamelModel):
    """Options accepted by SearchEngine.search."""
    query: str = Field(..., min_length=1, description="Natural-language query")
    limit: int = Field(default=settings.SEARCH_DEFAULT_LIMIT, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    threshold: float = Field(
        default=settings.SEARCH_DEFAULT_THRESHOLD,
        ge=-1.0,
        le=1.0,
        description="Chunks at or below this cosine similarity are discarded",
    )
    filters: Optional[SearchFilters] = None
    include_chunks: bool = False
    rerank: bool = False


class HybridSearchOptions(SearchOptions):
    """SearchOptions plus the fusion weights. Weights are not normalized."""
    vector_weight: float = settings.HYBRID_VECTOR_WEIGHT
    keyword_weight: float = settings.HYBRID_KEYWORD_WEIGHT


class SearchRequest(HybridSearchOptions):
    """Request body for POST /search."""
    search_type: SearchType = SearchType.HYBRID
    include_chunks: bool = True
    rerank: bool = True
    include_context: bool = Field(default=False, description="Also return results as a numbered text block")


# --- Results -----------------------------------------------------------------------


class ChunkResult(CamelModel):
    chunk_id: str
    chunk_type: str
    content: str
    similarity: float
    position: int = 0


class ResultMetadata(CamelModel):
    subcategory: Optional[str] = None
    product_type: Optional[ProductType] = None
    availability: Optional[Availability] = None
    claims: List[str] = Field(default_factory=list)
    specifications: Dict[str, JsonValue] = Field(default_factory=dict)
    images: List[ProductImage] = Field(default_factory=list)
    rating: Optional[Rating] = None


class SearchResult(CamelModel):
    """One ranked product. `similarity` is the final (combined or fused) score."""
    product_id: str
    name: str
    description: Optional[str] = None
    url: str
    price: Optional[float] = None
    currency: str = "EUR"
    brand: Optional[str] = None
    category: Optional[str] = None
    similarity: float
    chunks: Optional[List[ChunkResult]] = None
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)


class SearchResponse(CamelModel):
    """Response body for POST /search."""
    query: str
    search_type: SearchType
    results: List[SearchResult]
    count: int
    latency_ms: int
    context: Optional[str] = None
