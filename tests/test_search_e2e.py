from __future__ import annotations

import uuid

import pytest
from opensearchpy import helpers

from pagedsearch.services.index_handle import IndexHandle, build_client, ping
from pagedsearch.services.search_service import search_documents
from pagedsearch.settings import Settings, settings


@pytest.mark.skipif(not ping(), reason="OpenSearch not reachable")
def test_search_flow():
    test_index = f"test-{uuid.uuid4()}"
    client = build_client(settings)
    client.indices.create(
        index=test_index,
        body={
            "settings": {"index": {"number_of_shards": 1, "number_of_replicas": 0}},
            "mappings": {
                "properties": {
                    "title": {"type": "text", "fields": {"raw": {"type": "keyword"}}},
                    "content": {"type": "text"},
                    "year": {"type": "integer"},
                }
            },
        },
    )
    try:
        docs = [
            {"title": f"Katzen Bericht {i:02d}", "content": f"Die Katze Nummer {i}", "year": 2000 + i}
            for i in range(25)
        ]
        helpers.bulk(client, ({"_index": test_index, "_id": str(i), "_source": d} for i, d in enumerate(docs)))
        client.indices.refresh(index=test_index)

        config = Settings(indexes=(test_index,), search_fields=("title^2", "content"), page_size=10)
        handle = IndexHandle(config)
        try:
            res = search_documents("Katze", page=1, handle=handle)
            assert res.total_hits == 25
            assert len(res.hits) == 10
            assert res.pager.total_pages == 3
            assert res.parsed_terms == ["katze"]

            res = search_documents("Katze", page=4, handle=handle)
            assert res.hits == []

            res = search_documents(
                "Katze",
                order_by="title.raw desc",
                limit_to="year",
                limit_low=2010,
                limit_high=2014,
                page_size=0,
                handle=handle,
            )
            assert res.pager is None
            assert [h.get("year") for h in res.hits] == [2014, 2013, 2012, 2011, 2010]
        finally:
            handle.close()
    finally:
        client.indices.delete(index=test_index)
        client.close()
