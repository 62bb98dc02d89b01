"""
Tests for product chunk construction and the indexing helpers built on it.
"""

import asyncio

from catalog_search.chunker import Passage, create_chunks, estimate_tokens, split_large_passage
from catalog_search.ingestion import chunk_records
from catalog_search.schemas import (
    Availability,
    ChunkType,
    ProductType,
    Rating,
    SearchFilters,
    SearchRequest,
)
from catalog_search.search import SearchEngine
from catalog_search.stores import InMemoryCatalog

from tests.conftest import KeywordEmbedder, make_product


def full_product():
    return make_product(
        "p1",
        "Everdrop Glasreiniger",
        "everdrop",
        "Reinigungsmittel",
        4.99,
        description="Umweltfreundlicher Glasreiniger in Tablettenform",
        product_type=ProductType.OTHER,
        availability=Availability.PREORDER,
        rating=Rating(value=4.5, count=12),
        price_original=6.99,
        subcategory="Glas",
        tags=["nachhaltig", "plastikfrei"],
        sku="EV-123",
        specifications={"fill_volume": "500 ml", "inhaltsstoffe": ["Citrat", "Tenside"], "masse": {"höhe": 20}},
        claims=["Vegan", "Ohne Mikroplastik"],
        warnings=["Von Kindern fernhalten"],
        attributes={"refillable": True, "scented": False, "packaging": {"material": "Papier"}},
    )


def test_all_passage_types_in_order():
    passages = create_chunks(full_product())

    assert [p.chunk_type for p in passages] == [
        ChunkType.MAIN,
        ChunkType.SPECS,
        ChunkType.DETAILS,
        ChunkType.CLAIMS,
        ChunkType.ATTRIBUTES,
    ]
    assert all(p.metadata["productName"] == "Everdrop Glasreiniger" for p in passages)


def test_main_passage_content():
    main = create_chunks(full_product())[0].content.split("\n")

    assert main[0] == "Produkt: Everdrop Glasreiniger"
    assert "Kategorie: Reinigungsmittel > Glas" in main
    assert "Marke: everdrop" in main
    assert "Tags: nachhaltig, plastikfrei" in main
    assert "Preis: 4.99 EUR (Original: 6.99 EUR)" in main
    assert "Verfügbarkeit: Vorbestellbar" in main
    assert "Bewertung: 4.5/5 (12 Bewertungen)" in main
    # product type "other" is not worth a line
    assert not any(line.startswith("Typ:") for line in main)


def test_specs_and_attributes_formatting():
    passages = {p.chunk_type: p.content for p in create_chunks(full_product())}

    specs = passages[ChunkType.SPECS].split("\n")
    assert specs[0] == "Technische Daten für Everdrop Glasreiniger:"
    assert "Fill Volume: 500 ml" in specs
    assert "Inhaltsstoffe: Citrat, Tenside" in specs
    assert "  - höhe: 20" in specs
    assert "Artikelnummer: EV-123" in specs

    attributes = passages[ChunkType.ATTRIBUTES].split("\n")
    assert "✓ Refillable" in attributes
    assert not any("Scented" in line for line in attributes)
    assert 'Packaging: {"material": "Papier"}' in attributes


def test_minimal_product_has_only_main_passage():
    passages = create_chunks(make_product("p2", "Becher", "Mugly", "Küche", None))

    assert [p.chunk_type for p in passages] == [ChunkType.MAIN]
    assert "Preis" not in passages[0].content


def test_split_large_passage_on_line_boundaries():
    passage = Passage(ChunkType.SPECS, "\n".join(["x" * 40] * 10), {"productName": "P"})

    parts = split_large_passage(passage, max_tokens=25)

    assert len(parts) == 5
    assert all(estimate_tokens(p.content) <= 25 for p in parts)
    assert [p.metadata["partNumber"] for p in parts] == [1, 2, 3, 4, 5]
    assert all(p.metadata["totalParts"] == 5 for p in parts)
    assert "\n".join(p.content for p in parts) == passage.content


def test_small_passage_is_not_split():
    passage = Passage(ChunkType.MAIN, "kurz")

    assert split_large_passage(passage, max_tokens=10) == [passage]


def test_chunk_records_positions_and_embeddings():
    records = chunk_records(full_product(), KeywordEmbedder())

    assert [r.position for r in records] == list(range(5))
    assert records[0].chunk_type == "main"
    assert all(len(r.embedding) == len(KeywordEmbedder.VOCAB) + 1 for r in records)


def test_indexed_catalog_scenario():
    embedder = KeywordEmbedder()
    store = InMemoryCatalog()
    products = [
        full_product(),
        make_product("p2", "Frosch Bad-Reiniger", "Frosch", "Reinigungsmittel", 3.29,
                     description="Umweltfreundlicher Reiniger für das Bad"),
        make_product("p3", "Bio Waschmittel", "Sonett", "Waschmittel", 18.5, description="Vegan und bio"),
        make_product("p4", "Kaffeebecher Edelstahl", "Mugly", "Küche", 24.0),
    ]
    for product in products:
        store.add_product(product, chunk_records(product, embedder))
    engine = SearchEngine(embedder, store, store, store)
    query = "umweltfreundliche Reinigungsmittel"

    results = asyncio.run(engine.run(SearchRequest(query=query, limit=5, rerank=False)))
    cheap = asyncio.run(
        engine.run(SearchRequest(query=query, limit=5, rerank=False, filters=SearchFilters(price_range=(0, 15))))
    )

    assert 0 < len(results) <= 5
    assert [r.similarity for r in results] == sorted((r.similarity for r in results), reverse=True)
    assert {"p1", "p2"} <= {r.product_id for r in results}
    assert "p4" not in {r.product_id for r in results}
    assert cheap and all(r.price <= 15 for r in cheap)
