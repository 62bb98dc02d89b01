"""
Tests for the in-memory catalog: cosine retrieval, trigram retrieval, metadata lookup.
"""

import pytest

from catalog_search.errors import EmbeddingDimensionError
from catalog_search.filters import ProductPredicate, compile_filters
from catalog_search.schemas import ChunkRecord, SearchFilters
from catalog_search.stores import InMemoryCatalog, trigram_similarity, trigrams

from tests.conftest import ORTHOGONAL_VEC, QUERY_VEC, make_chunks, make_product


def test_trigrams_follow_pg_trgm_padding():
    assert trigrams("Ab") == {"  a", " ab", "ab "}
    assert trigrams("a-b") == {"  a", " a ", "  b", " b "}
    assert trigrams("") == frozenset()


def test_trigram_similarity():
    assert trigram_similarity("Glasreiniger", "glasreiniger") == 1.0
    assert trigram_similarity("Glasreiniger", None) == 0.0
    assert 0.0 < trigram_similarity("Glasreiniger", "Glas") < 1.0
    assert trigram_similarity("abc", "xyz") == 0.0


def test_similarity_query_orders_and_thresholds(catalog):
    hits = catalog.query_by_similarity(QUERY_VEC, ProductPredicate(), threshold=0.5, top_n=100)

    sims = [h.similarity for h in hits]
    assert sims == sorted(sims, reverse=True)
    assert all(s > 0.5 for s in sims)
    assert "p6" not in {h.product_id for h in hits}
    assert hits[0].chunk_id == "p1-c0"
    assert hits[0].similarity == pytest.approx(0.92)


def test_similarity_query_caps_top_n(catalog):
    assert len(catalog.query_by_similarity(QUERY_VEC, ProductPredicate(), 0.0, top_n=3)) == 3


@pytest.mark.parametrize("thresholds", [[-1.0, 0.0, 0.5, 0.7, 0.86, 0.95]])
def test_raising_threshold_never_adds_chunks(catalog, thresholds):
    counts = [
        len(catalog.query_by_similarity(QUERY_VEC, ProductPredicate(), t, top_n=100)) for t in thresholds
    ]

    assert counts == sorted(counts, reverse=True)
    assert counts[0] == 9
    assert counts[-1] == 0


def test_similarity_query_applies_predicate(catalog):
    predicate = compile_filters(SearchFilters(brands=["Frosch"]))

    hits = catalog.query_by_similarity(QUERY_VEC, predicate, 0.0, top_n=100)

    assert {h.product_id for h in hits} == {"p3"}


def test_orthogonal_query_finds_nothing(catalog):
    assert catalog.query_by_similarity(ORTHOGONAL_VEC, ProductPredicate(), 0.5, top_n=10) == []


def test_query_dimension_mismatch_is_fatal(catalog):
    with pytest.raises(EmbeddingDimensionError):
        catalog.query_by_similarity([1.0, 0.0], ProductPredicate(), 0.5, top_n=10)


def test_chunk_dimension_mismatch_rejected_on_insert(catalog):
    bad = ChunkRecord(id="x-c0", product_id="x", chunk_type="main", content="x", embedding=[1.0, 0.0])

    with pytest.raises(EmbeddingDimensionError):
        catalog.add_product(make_product("x", "X", "b", "c", 1.0), [bad])


def test_empty_catalog_returns_nothing():
    store = InMemoryCatalog()

    assert store.query_by_similarity(QUERY_VEC, ProductPredicate(), 0.5, 10) == []
    assert store.query_by_text("reiniger", ProductPredicate(), 10) == []


def test_text_query_substring_match_on_brand(catalog):
    hits = catalog.query_by_text("everdrop", ProductPredicate(), top_n=10)

    assert {h.product_id for h in hits} == {"p1", "p2"}
    assert all(h.score > 0 for h in hits)


def test_text_query_is_case_insensitive_and_scored_by_best_field(catalog):
    hits = catalog.query_by_text("GLASREINIGER", ProductPredicate(), top_n=10)

    assert hits[0].product_id == "p2"
    scores = [h.score for h in hits]
    assert scores == sorted(scores, reverse=True)


def test_text_query_offset_and_predicate(catalog):
    all_hits = catalog.query_by_text("reiniger", ProductPredicate(), top_n=10)
    page = catalog.query_by_text("reiniger", ProductPredicate(), top_n=1, offset=1)
    cheap = catalog.query_by_text("reiniger", compile_filters(SearchFilters(price_range=(None, 4))), top_n=10)

    assert page == all_hits[1:2]
    assert [h.product_id for h in cheap] == ["p3"]


def test_get_by_ids_skips_unknown(catalog):
    products = catalog.get_by_ids(["p2", "missing", "p1"])

    assert [p.id for p in products] == ["p2", "p1"]


def test_chunk_at_threshold_is_discarded():
    store = InMemoryCatalog()
    chunk = ChunkRecord(id="x-c0", product_id="x", chunk_type="main", content="x", embedding=QUERY_VEC)
    store.add_product(make_product("x", "X", "b", "c", 1.0), [chunk])

    assert store.query_by_similarity(QUERY_VEC, ProductPredicate(), threshold=1.0, top_n=10) == []
    assert len(store.query_by_similarity(QUERY_VEC, ProductPredicate(), threshold=0.999, top_n=10)) == 1


def test_re_adding_a_product_replaces_its_chunks(catalog):
    catalog.add_product(make_product("p3", "Frosch Bad-Reiniger", "Frosch", "Reinigungsmittel", 3.29),
                        make_chunks("p3", [0.5]))

    hits = [h for h in catalog.query_by_similarity(QUERY_VEC, ProductPredicate(), 0.0, 100) if h.product_id == "p3"]

    assert [(h.chunk_id, round(h.similarity, 6)) for h in hits] == [("p3-c0", 0.5)]


def test_rejected_chunks_leave_the_product_unchanged(catalog):
    bad = ChunkRecord(id="p1-c9", product_id="p1", chunk_type="main", content="x", embedding=[1.0, 0.0])

    with pytest.raises(EmbeddingDimensionError):
        catalog.add_product(make_product("p1", "Neu", "b", "c", 1.0), [bad])

    assert catalog.get_by_ids(["p1"])[0].name == "Everdrop Allzweckreiniger"
    hits = catalog.query_by_similarity(QUERY_VEC, ProductPredicate(), 0.0, 100)
    assert {h.chunk_id for h in hits if h.product_id == "p1"} == {"p1-c0", "p1-c1"}
