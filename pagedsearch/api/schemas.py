from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SearchRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    query: str = Field(description="Free text query, passed to the engine as-is")
    page: Optional[int] = Field(default=None, ge=0, description="1-based page; unset or 0 means 1")
    page_size: Optional[int] = Field(
        default=None, ge=0, description="Hits per page; None uses the configured default, 0 disables paging"
    )
    pages_per_set: Optional[int] = Field(default=None, ge=0, description="Width of the pager window")
    order_by: Optional[str] = Field(default=None, description="Sort string, e.g. 'rank desc title asc'")
    limit_to: Optional[str] = Field(default=None, description="Field to restrict with a range filter")
    limit_low: Optional[Any] = Field(default=None, description="Lower bound for limit_to (inclusive)")
    limit_high: Optional[Any] = Field(default=None, description="Upper bound for limit_to (inclusive)")

    @field_validator("query", mode="before")
    @classmethod
    def _query_required(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("query required")
        return v

    @model_validator(mode="after")
    def _limit_bounds(self) -> "SearchRequest":
        if self.limit_to and (self.limit_low is None or self.limit_high is None):
            raise ValueError("limit_high/limit_low required with limit_to")
        return self


class SortField(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    direction: str = "asc"

    def as_dict(self) -> Dict[str, str]:
        return {self.field: self.direction}


class SearchHit(BaseModel):
    id: str
    index: str
    rank: Optional[float] = None
    properties: Dict[str, Any] = Field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.properties.get(name, default)


class PagerMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_entries: int
    entries_per_page: int
    current_page: int
    pages_per_set: int
    total_pages: int
    first_page_of_set: int
    last_page_of_set: int
    pages_in_set: List[int] = Field(default_factory=list)
    first: int = Field(description="1-based index of the first hit on this page, 0 when empty")
    last: int = Field(description="1-based index of the last hit on this page, 0 when empty")
    previous_page: Optional[int] = None
    next_page: Optional[int] = None

    @property
    def entries_on_this_page(self) -> int:
        if self.first == 0:
            return 0
        return self.last - self.first + 1


class SearchResult(BaseModel):
    pager: Optional[PagerMetadata] = None
    hits: List[SearchHit] = Field(default_factory=list)
    parsed_terms: List[str] = Field(default_factory=list)
    resolved_order: List[SortField]
    total_hits: int
    search_duration: float
    build_duration: float

    def astuple(self) -> Tuple[Any, ...]:
        return (
            self.pager,
            self.hits,
            self.parsed_terms,
            self.resolved_order,
            self.total_hits,
            self.search_duration,
            self.build_duration,
        )
