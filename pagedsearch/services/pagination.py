from __future__ import annotations

import math
from typing import List

from ..api.schemas import PagerMetadata


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size


def _window(current_page: int, pages_per_set: int, total_pages: int) -> List[int]:
    # Sliding window: odd widths centre the current page, even widths show
    # one more page after it than before it.
    if pages_per_set >= total_pages:
        return list(range(1, total_pages + 1))
    start = current_page - (pages_per_set - 1) // 2
    start = max(1, min(start, total_pages - pages_per_set + 1))
    return list(range(start, start + pages_per_set))


def paginate(total_entries: int, entries_per_page: int, current_page: int, pages_per_set: int) -> PagerMetadata:
    """Build pager metadata for one page of a result set.

    ``current_page`` past the last page is allowed: the window is the last
    block of pages and the page itself is empty (``first == last == 0``).
    """
    if entries_per_page <= 0:
        raise ValueError("entries_per_page must be positive; page_size 0 is not paginated")
    if current_page < 1:
        raise ValueError("current_page must be >= 1")
    if pages_per_set < 1:
        raise ValueError("pages_per_set must be >= 1")
    total_entries = max(0, total_entries)

    total_pages = math.ceil(total_entries / entries_per_page)
    pages = _window(current_page, pages_per_set, total_pages)

    offset = page_offset(current_page, entries_per_page)
    if offset < total_entries:
        first = offset + 1
        last = min(offset + entries_per_page, total_entries)
    else:
        first = last = 0

    return PagerMetadata(
        total_entries=total_entries,
        entries_per_page=entries_per_page,
        current_page=current_page,
        pages_per_set=pages_per_set,
        total_pages=total_pages,
        first_page_of_set=pages[0] if pages else 0,
        last_page_of_set=pages[-1] if pages else 0,
        pages_in_set=pages,
        first=first,
        last=last,
        previous_page=min(current_page - 1, total_pages) if current_page > 1 and total_pages else None,
        next_page=current_page + 1 if current_page < total_pages else None,
    )
