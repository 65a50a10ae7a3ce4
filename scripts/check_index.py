from __future__ import annotations

import os
import sys

CURRENT_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(CURRENT_DIR)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from pagedsearch.errors import ConnectError
from pagedsearch.logging_config import setup_logging
from pagedsearch.services.index_handle import IndexHandle, ping
from pagedsearch.settings import settings


def main():
    setup_logging()
    if not ping():
        print("OpenSearch not reachable. Ensure it's running at configured host:port.")
        return
    try:
        handle = IndexHandle()
    except ConnectError as exc:
        print(exc.message)
        return
    with handle.session() as conn:
        for index in conn.indexes:
            count = conn.client.count(index=index).get("count", 0)
            print(f"{index}: {count} documents")
        print(f"rank scheme: {conn.rank_scheme}, searchable fields: {', '.join(settings.search_fields)}")
    handle.close()


if __name__ == "__main__":
    main()
