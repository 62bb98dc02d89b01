"""Store interfaces consumed by the retrieval engine, plus an in-memory implementation.

Interfaces (typing.Protocol):
- ChunkStore.query_by_similarity: chunks ranked by cosine similarity to a query vector.
- LexicalStore.query_by_text: products ranked by trigram similarity of display fields.
- MetadataStore.get_by_ids: product records for a list of ids (may return fewer).

InMemoryCatalog implements all three over ProductRecord/ChunkRecord objects. It follows
the PostgreSQL semantics of pgvector (`1 - (a <=> b)`) and pg_trgm (`similarity()`), so
tests and local runs rank exactly like the database-backed stores in pg_stores.
"""
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Protocol, Sequence

import numpy as np

from catalog_search.errors import EmbeddingDimensionError
from catalog_search.filters import ProductPredicate
from catalog_search.schemas import ChunkRecord, ProductRecord

_WORD = re.compile(r"[^\W_]+")


@dataclass(frozen=True)
class ChunkHit:
    """One chunk returned by vector retrieval."""
    product_id: str
    chunk_id: str
    chunk_type: str
    content: str
    position: int
    similarity: float


@dataclass(frozen=True)
class LexicalHit:
    """One product returned by lexical retrieval."""
    product_id: str
    name: str
    score: float


class ChunkStore(Protocol):
    def query_by_similarity(
        self, vector: Sequence[float], predicate: ProductPredicate, threshold: float, top_n: int
    ) -> List[ChunkHit]:
        """Return up to top_n chunks with similarity > threshold, best first."""
        ...


class LexicalStore(Protocol):
    def query_by_text(
        self, text: str, predicate: ProductPredicate, top_n: int, offset: int = 0
    ) -> List[LexicalHit]:
        """Return up to top_n products ranked by text similarity, skipping offset."""
        ...


class MetadataStore(Protocol):
    def get_by_ids(self, product_ids: Sequence[str]) -> List[ProductRecord]:
        """Return the products that still exist among product_ids, in any order."""
        ...


def trigrams(s: str) -> FrozenSet[str]:
    """Trigram set of a string, as pg_trgm extracts it.

    Each alphanumeric word is lowercased and padded with two leading blanks and one
    trailing blank before splitting into 3-character windows.
    """
    out = set()
    for word in _WORD.findall(s.lower()):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            out.add(padded[i:i + 3])
    return frozenset(out)


def trigram_similarity(a: Optional[str], b: Optional[str]) -> float:
    """pg_trgm similarity: shared trigrams over the union of both trigram sets."""
    ta, tb = trigrams(a or ""), trigrams(b or "")
    if not ta or not tb:
        return 0.0
    common = len(ta & tb)
    return common / float(len(ta) + len(tb) - common)


def lexical_fields(product: ProductRecord) -> List[str]:
    """Display fields scored by lexical retrieval, missing values as ''."""
    return [product.name or "", product.description or "", product.category or "", product.brand or ""]


class InMemoryCatalog:
    """ChunkStore, LexicalStore and MetadataStore over in-process records.

    Args:
        min_lexical_similarity: A product whose fields do not contain the query as a
            substring is still a lexical candidate when one field reaches this
            trigram similarity.
    """

    def __init__(self, min_lexical_similarity: float = 0.3):
        self.min_lexical_similarity = min_lexical_similarity
        self._products: Dict[str, ProductRecord] = {}
        self._chunks: List[ChunkRecord] = []
        self._dimension: Optional[int] = None

    def add_product(self, product: ProductRecord, chunks: Iterable[ChunkRecord] = ()) -> None:
        """Insert or replace a product together with all of its chunks.

        Chunks previously stored for the product are dropped, like ingestion does
        for the product_chunks table.

        Raises:
            EmbeddingDimensionError: A chunk's embedding length differs from the corpus.
        """
        chunks = list(chunks)
        dimension = self._dimension
        for chunk in chunks:
            if dimension is None:
                dimension = len(chunk.embedding)
            elif len(chunk.embedding) != dimension:
                raise EmbeddingDimensionError(dimension, len(chunk.embedding))
        self._dimension = dimension
        self._products[product.id] = product
        self._chunks = [c for c in self._chunks if c.product_id != product.id] + chunks

    def remove_product(self, product_id: str) -> None:
        """Drop product metadata only; its chunks stay indexed."""
        self._products.pop(product_id, None)

    def _eligible(self, product_id: str, predicate: ProductPredicate) -> bool:
        if predicate.is_empty:
            return True
        product = self._products.get(product_id)
        return product is not None and predicate.matches(product)

    def query_by_similarity(
        self, vector: Sequence[float], predicate: ProductPredicate, threshold: float, top_n: int
    ) -> List[ChunkHit]:
        if not self._chunks or top_n <= 0:
            return []
        if len(vector) != self._dimension:
            raise EmbeddingDimensionError(self._dimension, len(vector))
        chunks = [c for c in self._chunks if self._eligible(c.product_id, predicate)]
        if not chunks:
            return []
        q = np.asarray(vector, dtype=np.float64)
        m = np.asarray([c.embedding for c in chunks], dtype=np.float64)
        norms = np.linalg.norm(m, axis=1) * np.linalg.norm(q)
        dots = m @ q
        sims = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
        hits = [
            ChunkHit(
                product_id=c.product_id,
                chunk_id=c.id,
                chunk_type=c.chunk_type,
                content=c.content,
                position=c.position,
                similarity=float(s),
            )
            for c, s in zip(chunks, sims)
            if float(s) > threshold
        ]
        hits.sort(key=lambda h: (-h.similarity, h.chunk_id))
        return hits[:top_n]

    def query_by_text(
        self, text: str, predicate: ProductPredicate, top_n: int, offset: int = 0
    ) -> List[LexicalHit]:
        needle = text.strip().lower()
        if not needle or top_n <= 0:
            return []
        hits: List[LexicalHit] = []
        for product in self._products.values():
            if not predicate.matches(product):
                continue
            fields = lexical_fields(product)
            score = max(trigram_similarity(f, text) for f in fields)
            contains = any(needle in f.lower() for f in fields)
            if contains or score >= self.min_lexical_similarity:
                hits.append(LexicalHit(product_id=product.id, name=product.name, score=score))
        hits.sort(key=lambda h: (-h.score, h.product_id))
        return hits[offset:offset + top_n]

    def get_by_ids(self, product_ids: Sequence[str]) -> List[ProductRecord]:
        return [self._products[pid] for pid in product_ids if pid in self._products]
