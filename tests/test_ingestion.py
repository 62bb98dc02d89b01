"""
Tests for product indexing without a database: sessions are recorded, not executed.
"""

import json

import pytest
from sqlalchemy.exc import OperationalError

from catalog_search.errors import EmbeddingDimensionError
from catalog_search.ingestion import index_catalog, index_product, load_records
from catalog_search.models import Product, ProductChunk

from tests.conftest import KeywordEmbedder, make_product


class RecordingSession:
    def __init__(self, log, fail_on=None):
        self.log = log
        self.fail_on = fail_on
        self.added = []

    def merge(self, obj):
        if obj.id == self.fail_on:
            raise OperationalError("INSERT", {}, Exception("db down"))
        self.log.append(("merge", obj.id))
        return obj

    def flush(self):
        pass

    def execute(self, stmt):
        self.log.append(("delete_chunks",))

    def add(self, obj):
        self.added.append(obj)
        self.log.append(("add", obj.product_id, obj.position))

    def commit(self):
        self.log.append(("commit",))

    def rollback(self):
        self.log.append(("rollback",))

    def close(self):
        pass


def session_factory(log, fail_on=None):
    return lambda: RecordingSession(log, fail_on)


class WrongDimensionEmbedder(KeywordEmbedder):
    def embed_texts(self, texts):
        raise EmbeddingDimensionError(1536, 3)


def test_index_product_replaces_chunks():
    log = []
    session = RecordingSession(log)
    product = make_product("p1", "Everdrop Glasreiniger", "everdrop", "Reinigungsmittel", 4.99, claims=["Vegan"])

    written = index_product(session, product, KeywordEmbedder())

    assert written == 2
    assert log[:2] == [("merge", "p1"), ("delete_chunks",)]
    assert [(c.chunk_type, c.position) for c in session.added] == [("main", 0), ("claims", 1)]
    assert all(isinstance(c, ProductChunk) for c in session.added)
    assert session.added[0].chunk_metadata["productName"] == "Everdrop Glasreiniger"


def test_index_catalog_skips_failing_products():
    log = []
    records = [
        make_product("p1", "A", "b", "c", 1.0),
        make_product("p2", "B", "b", "c", 2.0),
        make_product("p3", "C", "b", "c", 3.0),
    ]

    total = index_catalog(session_factory(log, fail_on="p2"), records, KeywordEmbedder())

    assert total == 2
    assert ("rollback",) in log
    assert [entry[1] for entry in log if entry[0] == "merge"] == ["p1", "p3"]
    assert log.count(("commit",)) == 2


def test_index_catalog_stops_on_dimension_mismatch():
    with pytest.raises(EmbeddingDimensionError):
        index_catalog(session_factory([]), [make_product("p1", "A", "b", "c", 1.0)], WrongDimensionEmbedder())


def test_product_row_mapping():
    log = []
    session = RecordingSession(log)
    session.merge = lambda obj: session.__dict__.setdefault("row", obj)

    index_product(session, make_product("p9", "Becher", "Mugly", "Küche", 24.0, tags=["edelstahl"]), KeywordEmbedder())

    row = session.row
    assert isinstance(row, Product)
    assert (row.shop_id, row.price_numeric, row.tags, row.currency) == ("shop-1", 24.0, ["edelstahl"], "EUR")


def test_load_records_accepts_list_or_wrapper(tmp_path):
    item = {
        "id": "p1",
        "shopId": "shop-1",
        "name": "Glasreiniger",
        "url": "https://shop.example/p1",
        "price": 4.99,
        "availability": "in_stock",
        "productType": "other",
    }
    as_list = tmp_path / "list.json"
    as_list.write_text(json.dumps([item]), encoding="utf-8")
    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({"products": [item, dict(item, id="p2")]}), encoding="utf-8")

    assert [r.id for r in load_records(str(as_list))] == ["p1"]
    assert [r.shop_id for r in load_records(str(wrapped))] == ["shop-1", "shop-1"]
