from __future__ import annotations

import argparse
import os
import sys

CURRENT_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(CURRENT_DIR)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from pagedsearch.errors import SearchError
from pagedsearch.logging_config import get_logger, setup_logging
from pagedsearch.services.search_service import search_documents
from pagedsearch.services.sort_spec import format_sort

logger = get_logger("search_index")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Run one search against the configured indexes")
    p.add_argument("query")
    p.add_argument("--page", type=int, default=None)
    p.add_argument("--page-size", type=int, default=None, help="0 returns every hit")
    p.add_argument("--pages-per-set", type=int, default=None)
    p.add_argument("--order-by", default=None, help="e.g. 'rank desc title asc'")
    p.add_argument("--limit-to", default=None)
    p.add_argument("--limit-low", default=None)
    p.add_argument("--limit-high", default=None)
    p.add_argument("--timeout", type=float, default=None)
    p.add_argument("--log-level", default=None)
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)
    try:
        res = search_documents(
            args.query,
            page=args.page,
            page_size=args.page_size,
            pages_per_set=args.pages_per_set,
            order_by=args.order_by,
            limit_to=args.limit_to,
            limit_low=args.limit_low,
            limit_high=args.limit_high,
            timeout=args.timeout,
        )
    except SearchError as exc:
        logger.error("%s", exc.message)
        return 1
    logger.debug(
        "query=%r order=%s total=%d returned=%d search=%.4fs build=%.4fs",
        args.query,
        format_sort(res.resolved_order),
        res.total_hits,
        len(res.hits),
        res.search_duration,
        res.build_duration,
    )

    print(f"{res.total_hits} hits for {' '.join(res.parsed_terms)!r} ordered by {format_sort(res.resolved_order)}")
    if res.pager:
        p = res.pager
        pages = " ".join(f"[{n}]" if n == p.current_page else str(n) for n in p.pages_in_set)
        print(f"page {p.current_page}/{p.total_pages}, hits {p.first}-{p.last}: {pages}")
    for hit in res.hits:
        rank = f"{hit.rank:.3f}" if hit.rank is not None else "-"
        print(f"  {rank:>8}  {hit.index}/{hit.id}  {hit.get('title') or ''}")
    print(f"search {res.search_duration:.4f}s, build {res.build_duration:.4f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
