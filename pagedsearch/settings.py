from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

# Load variables from .env.example first (as defaults), then .env to override
project_root = Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=project_root / ".env.example", override=False)
load_dotenv(dotenv_path=project_root / ".env", override=True)


def _getenv(key: str, default: str | None = None) -> str | None:
    v = os.getenv(key, default)
    return v


def _getlist(key: str, default: str) -> Tuple[str, ...]:
    raw = _getenv(key, default) or default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _getbool(key: str, default: bool = False) -> bool:
    raw = _getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    log_level: str = _getenv("LOG_LEVEL", "INFO") or "INFO"

    # OpenSearch
    os_host: str = _getenv("OPENSEARCH_HOST", "localhost") or "localhost"
    os_port: int = int(_getenv("OPENSEARCH_PORT", "9200") or 9200)
    os_user: str | None = _getenv("OPENSEARCH_USER")
    os_password: str | None = _getenv("OPENSEARCH_PASSWORD")
    os_use_ssl: bool = _getbool("OPENSEARCH_USE_SSL")
    os_timeout: int = int(_getenv("OPENSEARCH_TIMEOUT", "20") or 20)

    # Pre-built indexes; the first one is the primary index
    indexes: Tuple[str, ...] = field(default_factory=lambda: _getlist("OPENSEARCH_INDEXES", "documents"))
    search_fields: Tuple[str, ...] = field(default_factory=lambda: _getlist("SEARCH_FIELDS", "title^2,content"))

    # Paging defaults. PAGE_SIZE=0 is valid and means "no paging".
    page_size: int = int(_getenv("PAGE_SIZE", "10") or 10)
    pages_per_set: int = int(_getenv("PAGES_PER_SET", "10") or 10)
    fetch_batch_size: int = int(_getenv("FETCH_BATCH_SIZE", "100") or 100)

    def __post_init__(self) -> None:
        if self.page_size < 0:
            raise ValueError(f"PAGE_SIZE must be >= 0, got {self.page_size}")
        if self.pages_per_set < 1:
            raise ValueError(f"PAGES_PER_SET must be >= 1, got {self.pages_per_set}")
        if self.fetch_batch_size < 1:
            raise ValueError(f"FETCH_BATCH_SIZE must be >= 1, got {self.fetch_batch_size}")

    @property
    def primary_index(self) -> str:
        return self.indexes[0]


settings = Settings()
