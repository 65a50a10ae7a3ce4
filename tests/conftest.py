from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

import pytest
from opensearchpy.exceptions import RequestError

from pagedsearch.services.index_handle import IndexHandle
from pagedsearch.settings import Settings


# index.max_result_window default
RESULT_WINDOW = 10000

DEFAULT_MAPPING = {
    "properties": {
        "title": {"type": "text", "fields": {"raw": {"type": "keyword"}}},
        "content": {"type": "text"},
        "year": {"type": "integer"},
        "metadata": {"properties": {"document_type": {"type": "keyword"}}},
    }
}


def make_docs(n: int, word: str = "cat", index: str = "documents") -> List[Dict[str, Any]]:
    return [
        {
            "_id": str(i),
            "_index": index,
            "_score": float(n - i),
            "_source": {"title": f"doc {i:03d}", "content": f"the {word} number {i}", "year": 2000 + i},
        }
        for i in range(n)
    ]


class FakeIndices:
    def __init__(self, fake: "FakeOpenSearch") -> None:
        self.fake = fake

    def exists(self, index):
        return index in self.fake.docs

    def get_mapping(self, index):
        if self.fake.mapping_error is not None:
            raise self.fake.mapping_error
        return {index: {"mappings": self.fake.mappings.get(index, DEFAULT_MAPPING)}}

    def analyze(self, index, body):
        self.fake.analyze_calls.append(index)
        return {"tokens": [{"token": t.lower()} for t in re.findall(r"\w+", body["text"])]}


class FakeOpenSearch:
    """Just enough of opensearchpy.OpenSearch for the index handle."""

    def __init__(self, docs: Dict[str, List[Dict[str, Any]]], mappings: Optional[Dict[str, Dict]] = None):
        self.docs = docs
        self.mappings = mappings or {}
        self.reachable = True
        self.closed = False
        self.search_error: Optional[Exception] = None
        self.mapping_error: Optional[Exception] = None
        self.search_calls: List[Dict[str, Any]] = []
        self.analyze_calls: List[str] = []
        self.scroll_calls = 0
        self.scrolls: Dict[str, Dict[str, Any]] = {}
        self.indices = FakeIndices(self)

    def ping(self):
        return self.reachable

    def close(self):
        self.closed = True

    def count(self, index):
        return {"count": len(self.docs.get(index, []))}

    def search(self, index=None, body=None, **params):
        self.search_calls.append({"index": index, "body": body, "params": params})
        if self.search_error is not None:
            raise self.search_error

        docs = [d for name in index.split(",") for d in self.docs[name]]
        bool_q = body["query"]["bool"]
        terms = bool_q["must"][0]["query_string"]["query"].lower().split()
        matched = [d for d in docs if all(t in _text(d) for t in terms)]

        for f in bool_q["filter"]:
            (field, bounds), = f["range"].items()
            matched = [d for d in matched if bounds["gte"] <= d["_source"].get(field) <= bounds["lte"]]

        matched.sort(key=lambda d: d["_score"], reverse=True)
        for clause in reversed(body.get("sort", [])):
            (field, opts), = clause.items()
            if field == "_score":
                key = lambda d: d["_score"]
            else:
                key = lambda d, field=field: d["_source"].get(field)
            matched.sort(key=key, reverse=opts["order"] == "desc")

        if "scroll" in params:
            scroll_id = f"scroll-{len(self.search_calls)}"
            self.scrolls[scroll_id] = {"hits": matched, "size": params["size"], "position": 0}
            return self._scroll_page(scroll_id)

        start = body.get("from", 0)
        size = body.get("size", 10)
        if start + size > RESULT_WINDOW:
            raise RequestError(
                400,
                "search_phase_execution_exception",
                {
                    "error": {
                        "root_cause": [
                            {
                                "type": "illegal_argument_exception",
                                "reason": f"Result window is too large, from + size must be less than "
                                f"or equal to: [{RESULT_WINDOW}] but was [{start + size}].",
                            }
                        ]
                    }
                },
            )
        return {
            "hits": {
                "total": {"value": len(matched), "relation": "eq"},
                "hits": matched[start:start + size],
            }
        }

    def scroll(self, body=None, **params):
        self.scroll_calls += 1
        return self._scroll_page(body["scroll_id"])

    def clear_scroll(self, body=None, **params):
        for scroll_id in body["scroll_id"]:
            self.scrolls.pop(scroll_id, None)

    def _scroll_page(self, scroll_id: str) -> Dict[str, Any]:
        state = self.scrolls[scroll_id]
        page = state["hits"][state["position"]:state["position"] + state["size"]]
        state["position"] += len(page)
        return {
            "_scroll_id": scroll_id,
            "_shards": {"total": 1, "successful": 1, "skipped": 0, "failed": 0},
            "hits": {"total": {"value": len(state["hits"]), "relation": "eq"}, "hits": page},
        }


def _text(doc: Dict[str, Any]) -> str:
    src = doc["_source"]
    return f"{src.get('title', '')} {src.get('content', '')}".lower()


@pytest.fixture
def config():
    return Settings(indexes=("documents",), page_size=10, pages_per_set=10, fetch_batch_size=100)


@pytest.fixture
def fake_client():
    return FakeOpenSearch({"documents": make_docs(25)})


@pytest.fixture
def handle(fake_client, config):
    return IndexHandle(config, client_factory=lambda cfg: fake_client)
