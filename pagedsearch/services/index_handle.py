"""OpenSearch adapter: a long-lived handle onto one or more pre-built indexes.

A handle owns one OpenSearch client. Every search opens its own
SearchContext and Cursor on it; those are never shared between searches.
``reconnect()`` replaces the client and is serialized against running
searches through a readers/writer lock.
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, Iterator, List, Optional, Set

from opensearchpy import OpenSearch, helpers
from opensearchpy.exceptions import OpenSearchException

from ..api.schemas import SearchHit
from ..errors import ConnectError, EngineError, engine_error_from
from ..settings import Settings, settings
from .sort_spec import RANK_FIELD, parse_sort

logger = logging.getLogger(__name__)

# Index mapping _meta key read at connect time. When the primary index does
# not set it, scoring switches to global term statistics.
RANK_HEADER = "ignore_total_word_count_when_ranking"
DFS_SEARCH_TYPE = "dfs_query_then_fetch"
# index.max_result_window default; from + size beyond it is rejected, so
# reads past it go through a scroll instead
MAX_RESULT_WINDOW = 10000

ClientFactory = Callable[[Settings], OpenSearch]


def build_client(config: Settings) -> OpenSearch:
    auth = None
    if config.os_user and config.os_password:
        auth = (config.os_user, config.os_password)

    return OpenSearch(
        hosts=[{"host": config.os_host, "port": config.os_port}],
        http_compress=True,
        http_auth=auth,
        use_ssl=config.os_use_ssl,
        verify_certs=False,
        ssl_assert_hostname=False,
        ssl_show_warn=False,
        timeout=config.os_timeout,
    )


def _mapped_fields(properties: Dict[str, Any], prefix: str = "") -> Set[str]:
    names: Set[str] = set()
    for name, spec in (properties or {}).items():
        full = f"{prefix}{name}"
        names.add(full)
        if not isinstance(spec, dict):
            continue
        names |= _mapped_fields(spec.get("properties") or {}, prefix=f"{full}.")
        # multi-fields, e.g. title.raw
        names |= _mapped_fields(spec.get("fields") or {}, prefix=f"{full}.")
    return names


class _ReconfigurationLock:
    """Shared side for searches, exclusive side for reconnect.

    Waiting writers block new readers so a reconnect cannot be starved.
    Not reentrant: reconnecting from inside a session deadlocks.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def shared(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class IndexConnection:
    """One opened client plus what was learned about the indexes at connect time."""

    def __init__(
        self,
        client: OpenSearch,
        config: Settings,
        fields: Set[str],
        rank_scheme: int,
    ) -> None:
        self.client = client
        self.config = config
        self.indexes: List[str] = list(config.indexes)
        self.fields = fields
        self.rank_scheme = rank_scheme

    @property
    def primary_index(self) -> str:
        return self.indexes[0]

    def new_search_context(self) -> "SearchContext":
        return SearchContext(self)

    def _search_params(self) -> Dict[str, Any]:
        if self.rank_scheme:
            return {"search_type": DFS_SEARCH_TYPE}
        return {}

    def run_search(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self.client.search(index=",".join(self.indexes), body=body, **self._search_params())
        except OpenSearchException as exc:
            raise engine_error_from(exc, "IndexHandle") from exc

    def analyze(self, index_name: str, text: str) -> List[str]:
        try:
            resp = self.client.indices.analyze(index=index_name, body={"text": text})
        except OpenSearchException as exc:
            raise engine_error_from(exc, "IndexHandle") from exc
        return [t.get("token") for t in resp.get("tokens", []) if t.get("token")]

    def scan(self, body: Dict[str, Any], size: int) -> Generator[SearchHit, None, None]:
        """Scroll through every hit in ``body``'s order, from the first one."""
        hits = helpers.scan(
            self.client,
            query=body,
            index=",".join(self.indexes),
            preserve_order=True,
            size=size,
            **self._search_params(),
        )
        try:
            for raw in hits:
                yield self.to_hit(raw)
        except OpenSearchException as exc:
            raise engine_error_from(exc, "IndexHandle") from exc
        finally:
            hits.close()

    @staticmethod
    def to_hit(raw: Dict[str, Any]) -> SearchHit:
        return SearchHit(
            id=str(raw.get("_id")),
            index=raw.get("_index") or "",
            rank=raw.get("_score"),
            properties=raw.get("_source") or {},
        )


class SearchContext:
    """Filters, sort order and query for exactly one search."""

    def __init__(self, conn: IndexConnection) -> None:
        self._conn = conn
        self._filters: List[Dict[str, Any]] = []
        self._sort: Optional[List[Dict[str, Any]]] = None

    def set_range_limit(self, field: str, low: Any, high: Any) -> None:
        if field not in self._conn.fields:
            raise EngineError(
                f"IndexHandle: unknown property: {field!r} is not mapped in {', '.join(self._conn.indexes)}"
            )
        self._filters.append({"range": {field: {"gte": low, "lte": high}}})

    def set_sort(self, spec: str) -> None:
        # Field names go to the engine untouched; unsortable fields fail at execute.
        clauses = []
        for s in parse_sort(spec):
            name = "_score" if s.field == RANK_FIELD else s.field
            clauses.append({name: {"order": s.direction}})
        self._sort = clauses or None

    def body(self, query: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "query": {
                "bool": {
                    "must": [
                        {
                            "query_string": {
                                "query": query,
                                "fields": list(self._conn.config.search_fields),
                                "default_operator": "and",
                            }
                        }
                    ],
                    "filter": list(self._filters),
                }
            },
            "track_total_hits": True,
        }
        if self._sort:
            body["sort"] = self._sort
            body["track_scores"] = True
        return body

    def execute(self, query: str, offset: int = 0, batch_size: Optional[int] = None) -> "Cursor":
        """Run ``query`` and return a cursor over the ranked hits.

        ``offset``/``batch_size`` only shape the first fetch so that reading
        one page usually costs one round trip.
        """
        cursor = Cursor(self._conn, query, self.body(query), batch_size or self._conn.config.fetch_batch_size)
        offset = max(0, offset)
        if offset >= MAX_RESULT_WINDOW:
            offset = 0
        cursor._fetch(offset)
        return cursor


class Cursor:
    """Forward iterator over one executed search, fetched in batches.

    Batches inside the result window are plain from/size searches; beyond it
    the cursor scrolls from the start and keeps the scroll open while reads
    stay sequential.
    """

    def __init__(self, conn: IndexConnection, query: str, body: Dict[str, Any], batch_size: int) -> None:
        self._conn = conn
        self._query = query
        self._body = body
        self.batch_size = max(1, batch_size)
        self._total = 0
        self._position = 0
        self._batch_start = 0
        self._batch: List[SearchHit] = []
        self._terms: Dict[str, List[str]] = {}
        self._scroll: Optional[Generator[SearchHit, None, None]] = None
        self._scroll_position = 0

    def _fetch(self, offset: int) -> None:
        if offset >= MAX_RESULT_WINDOW:
            self._fetch_scroll(offset)
            return
        body = dict(self._body)
        body["from"] = offset
        body["size"] = min(self.batch_size, MAX_RESULT_WINDOW - offset)
        resp = self._conn.run_search(body)
        hits = resp.get("hits", {})
        total = hits.get("total", 0)
        if isinstance(total, dict):
            total = total.get("value", 0)
        self._total = int(total or 0)
        self._batch_start = offset
        self._batch = [self._conn.to_hit(h) for h in hits.get("hits", [])]

    def _fetch_scroll(self, offset: int) -> None:
        if self._scroll is None or self._scroll_position > offset:
            self.close()
            self._scroll = self._conn.scan(self._body, min(self.batch_size, MAX_RESULT_WINDOW))
            self._scroll_position = 0
        batch: List[SearchHit] = []
        for hit in self._scroll:
            self._scroll_position += 1
            if self._scroll_position <= offset:
                continue
            batch.append(hit)
            if len(batch) >= self.batch_size:
                break
        self._batch_start = offset
        self._batch = batch

    def close(self) -> None:
        """Release the scroll, if one was opened."""
        if self._scroll is not None:
            self._scroll.close()
            self._scroll = None

    def total_hits(self) -> int:
        return self._total

    def seek(self, offset: int) -> None:
        if offset < 0 or offset > self._total:
            raise EngineError(f"IndexHandle: seek offset {offset} out of range 0..{self._total}")
        self._position = offset

    def next(self) -> Optional[SearchHit]:
        if self._position >= self._total:
            return None
        idx = self._position - self._batch_start
        if not 0 <= idx < len(self._batch):
            self._fetch(self._position)
            idx = 0
            if not self._batch:
                return None
        self._position += 1
        return self._batch[idx]

    def __iter__(self) -> Iterator[SearchHit]:
        while True:
            hit = self.next()
            if hit is None:
                return
            yield hit

    def parsed_terms(self, index_name: str) -> List[str]:
        if index_name not in self._terms:
            self._terms[index_name] = self._conn.analyze(index_name, self._query)
        return list(self._terms[index_name])


class IndexHandle:
    def __init__(
        self,
        config: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
        connect: bool = True,
    ) -> None:
        self.config = config or settings
        self._client_factory = client_factory or build_client
        self._lock = _ReconfigurationLock()
        self._conn: Optional[IndexConnection] = None
        if connect:
            self.connect()

    @property
    def connected(self) -> bool:
        return self._conn is not None

    @property
    def rank_scheme(self) -> int:
        return self._require().rank_scheme

    def connect(self) -> None:
        """Drop the current client (if any) and open the indexes again."""
        with self._lock.exclusive():
            self._teardown()
            self._conn = self._open()

    reconnect = connect

    def close(self) -> None:
        with self._lock.exclusive():
            self._teardown()

    @contextmanager
    def session(self) -> Iterator[IndexConnection]:
        with self._lock.shared():
            yield self._require()

    def new_search_context(self) -> SearchContext:
        return self._require().new_search_context()

    def _require(self) -> IndexConnection:
        if self._conn is None:
            raise EngineError("IndexHandle: not connected")
        return self._conn

    def _teardown(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            conn.client.close()
        except OpenSearchException as exc:
            logger.warning("IndexHandle: error closing client: %s", exc)
        logger.info("Closed OpenSearch handle for %s", ", ".join(conn.indexes))

    def _open(self) -> IndexConnection:
        config = self.config
        if not config.indexes:
            raise ConnectError("IndexHandle: no indexes configured")

        client = self._client_factory(config)
        try:
            if not client.ping():
                raise ConnectError(
                    f"IndexHandle: OpenSearch is not reachable at {config.os_host}:{config.os_port}"
                )
            missing = [name for name in config.indexes if not client.indices.exists(index=name)]
            if missing:
                raise ConnectError(f"IndexHandle: index not found: {', '.join(missing)}")

            fields: Set[str] = set()
            primary_mapping: Dict[str, Any] = {}
            for name in config.indexes:
                resp = client.indices.get_mapping(index=name)
                for mapping in resp.values():
                    mappings = mapping.get("mappings") or {}
                    fields |= _mapped_fields(mappings.get("properties") or {})
                    if name == config.primary_index and not primary_mapping:
                        primary_mapping = mappings
        except OpenSearchException as exc:
            client.close()
            raise engine_error_from(exc, "IndexHandle", ConnectError) from exc
        except ConnectError:
            client.close()
            raise

        meta = primary_mapping.get("_meta") or {}
        rank_scheme = 0 if meta.get(RANK_HEADER) else 1
        logger.info(
            "Opened OpenSearch handle for %s (rank scheme %d%s)",
            ", ".join(config.indexes),
            rank_scheme,
            ", dfs_query_then_fetch" if rank_scheme else "",
        )
        return IndexConnection(client, config, fields, rank_scheme)


_handle: Optional[IndexHandle] = None
_handle_lock = threading.Lock()


def get_handle() -> IndexHandle:
    global _handle
    if _handle is not None:
        return _handle
    with _handle_lock:
        if _handle is None:
            _handle = IndexHandle()
    return _handle


def reconnect() -> IndexHandle:
    """Tear down and rebuild the shared handle."""
    with _handle_lock:
        handle = _handle
    if handle is None:
        return get_handle()
    handle.reconnect()
    return handle


def ping(config: Optional[Settings] = None) -> bool:
    try:
        client = build_client(config or settings)
        try:
            return bool(client.ping())
        finally:
            client.close()
    except Exception:
        return False
