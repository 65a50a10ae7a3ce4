from __future__ import annotations

import threading
import time
from typing import Any, List, Optional

from pydantic import ValidationError

from ..api.schemas import SearchHit, SearchRequest, SearchResult
from ..errors import InvalidRequest, SearchCancelled
from ..settings import Settings
from .index_handle import Cursor, IndexHandle, get_handle
from .pagination import page_offset, paginate
from .sort_spec import resolve_order


def build_request(**opts: Any) -> SearchRequest:
    """Validate caller options into a SearchRequest, or raise InvalidRequest."""
    try:
        return SearchRequest(**opts)
    except ValidationError as exc:
        err = exc.errors()[0]
        msg = str(err.get("msg") or exc)
        if err.get("type") == "value_error":
            msg = msg.removeprefix("Value error, ")
        elif err.get("loc"):
            msg = f"{'.'.join(str(p) for p in err['loc'])}: {msg}"
        raise InvalidRequest(msg) from exc


class _Guard:
    """Checks the caller's cancel event and timeout between engine calls."""

    def __init__(self, cancel: Optional[threading.Event], timeout: Optional[float], started: float) -> None:
        self.cancel = cancel
        self.timeout = timeout
        self.expires = started + timeout if timeout is not None else None

    def check(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise SearchCancelled("search cancelled")
        if self.expires is not None and time.perf_counter() >= self.expires:
            raise SearchCancelled(f"search timed out after {self.timeout}s")


def _collect(cursor: Cursor, limit: int, guard: _Guard) -> List[SearchHit]:
    # limit 0 reads the cursor to the end
    hits: List[SearchHit] = []
    while limit == 0 or len(hits) < limit:
        guard.check()
        hit = cursor.next()
        if hit is None:
            break
        hits.append(hit)
    return hits


def run_search(
    handle: IndexHandle,
    request: SearchRequest,
    config: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
) -> SearchResult:
    """Execute ``request`` against ``handle`` and assemble one page of results.

    Engine failures raise EngineError and nothing partial is returned.
    """
    config = config or handle.config
    page = request.page or 1
    page_size = request.page_size if request.page_size is not None else config.page_size
    pages_per_set = request.pages_per_set or config.pages_per_set

    start = time.perf_counter()
    guard = _Guard(cancel, timeout, start)

    with handle.session() as conn:
        guard.check()
        context = conn.new_search_context()
        if request.limit_to:
            context.set_range_limit(request.limit_to, request.limit_low, request.limit_high)
        if request.order_by:
            context.set_sort(request.order_by)

        offset = page_offset(page, page_size)
        cursor = context.execute(request.query, offset=offset, batch_size=page_size or None)
        search_duration = time.perf_counter() - start
        try:
            total_hits = cursor.total_hits()
            hits: List[SearchHit] = []
            if page_size > 0:
                # a page past the end is empty, not an error
                if offset <= total_hits:
                    cursor.seek(offset)
                    hits = _collect(cursor, page_size, guard)
            else:
                hits = _collect(cursor, 0, guard)

            pager = None
            if page_size > 0:
                pager = paginate(total_hits, page_size, page, pages_per_set)
            build_duration = time.perf_counter() - start

            parsed_terms = cursor.parsed_terms(conn.primary_index)
        finally:
            cursor.close()

    return SearchResult(
        pager=pager,
        hits=hits,
        parsed_terms=parsed_terms,
        resolved_order=resolve_order(request.order_by),
        total_hits=total_hits,
        search_duration=search_duration,
        build_duration=build_duration,
    )


def search_documents(
    query: Optional[str],
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    pages_per_set: Optional[int] = None,
    order_by: Optional[str] = None,
    limit_to: Optional[str] = None,
    limit_low: Any = None,
    limit_high: Any = None,
    handle: Optional[IndexHandle] = None,
    config: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
) -> SearchResult:
    request = build_request(
        query=query,
        page=page,
        page_size=page_size,
        pages_per_set=pages_per_set,
        order_by=order_by,
        limit_to=limit_to,
        limit_low=limit_low,
        limit_high=limit_high,
    )
    return run_search(handle or get_handle(), request, config=config, cancel=cancel, timeout=timeout)
