"""
Shared fixtures: a small in-memory catalog with hand-made embeddings and fake embedders.

Chunk embeddings are 4-dimensional and built so that their cosine similarity to the
query vector QUERY_VEC is exactly the number written next to each chunk.
"""

import math
from typing import Dict, List, Optional, Sequence

import pytest

from catalog_search.schemas import Availability, ChunkRecord, ProductRecord, ProductType, Rating
from catalog_search.search import SearchEngine
from catalog_search.stores import InMemoryCatalog

QUERY_VEC = [1.0, 0.0, 0.0, 0.0]
ORTHOGONAL_VEC = [0.0, 0.0, 1.0, 0.0]


def vec_with_similarity(s: float) -> List[float]:
    """Vector whose cosine similarity to QUERY_VEC is s."""
    return [s, math.sqrt(max(0.0, 1.0 - s * s)), 0.0, 0.0]


class FakeEmbedder:
    """Returns fixed vectors per query text and records the calls."""

    def __init__(self, vectors: Optional[Dict[str, Sequence[float]]] = None, default: Sequence[float] = QUERY_VEC):
        self.vectors = dict(vectors or {})
        self.default = list(default)
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return list(self.vectors.get(text, self.default))

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        return [self.embed(t) for t in texts]


class KeywordEmbedder:
    """Bag-of-stems embedder: one dimension per stem plus a small bias dimension."""

    VOCAB = ["reinig", "umwelt", "glas", "spül", "wasch", "bio", "vegan", "kaffee", "edelstahl"]

    def embed(self, text: str) -> List[float]:
        lowered = text.lower()
        return [1.0 if stem in lowered else 0.0 for stem in self.VOCAB] + [0.1]

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        return [self.embed(t) for t in texts]


def make_product(pid: str, name: str, brand: str, category: str, price: Optional[float], **kw) -> ProductRecord:
    return ProductRecord(
        id=pid,
        shop_id=kw.pop("shop_id", "shop-1"),
        name=name,
        description=kw.pop("description", f"{name} von {brand}"),
        url=f"https://shop.example/{pid}",
        brand=brand,
        category=category,
        price=price,
        availability=kw.pop("availability", Availability.IN_STOCK),
        product_type=kw.pop("product_type", ProductType.OTHER),
        **kw,
    )


def make_chunks(pid: str, sims: Sequence[float]) -> List[ChunkRecord]:
    return [
        ChunkRecord(
            id=f"{pid}-c{i}",
            product_id=pid,
            chunk_type="main" if i == 0 else "specs",
            position=i,
            content=f"Passage {i} von {pid}",
            embedding=vec_with_similarity(s),
        )
        for i, s in enumerate(sims)
    ]


CATALOG = [
    # pid, name, brand, category, price, chunk similarities, extra fields
    ("p1", "Everdrop Allzweckreiniger", "everdrop", "Reinigungsmittel", 4.99, [0.92, 0.6],
     {"claims": ["Vegan", "Ohne Mikroplastik"], "rating": Rating(value=4.6, count=120)}),
    ("p2", "Everdrop Glasreiniger", "everdrop", "Reinigungsmittel", 5.49, [0.9], {}),
    ("p3", "Frosch Bad-Reiniger", "Frosch", "Reinigungsmittel", 3.29, [0.85, 0.8], {}),
    ("p4", "Bambus Spülbürste", "Greenline", "Haushaltshelfer", 12.9, [0.7],
     {"availability": Availability.OUT_OF_STOCK}),
    ("p5", "Bio Waschmittel Lavendel", "Sonett", "Waschmittel", 18.5, [0.65, 0.55], {}),
    ("p6", "Kaffeebecher Edelstahl", "Mugly", "Küche", 24.0, [0.2], {"shop_id": "shop-2"}),
]


@pytest.fixture
def catalog() -> InMemoryCatalog:
    store = InMemoryCatalog()
    for pid, name, brand, category, price, sims, extra in CATALOG:
        store.add_product(make_product(pid, name, brand, category, price, **extra), make_chunks(pid, sims))
    return store


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder({"nichts passendes": ORTHOGONAL_VEC})


@pytest.fixture
def engine(catalog, embedder) -> SearchEngine:
    return SearchEngine(embedder=embedder, chunk_store=catalog, lexical_store=catalog, metadata_store=catalog)
