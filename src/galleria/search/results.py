"""Typed response structures shared by the relational and vector search paths."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.total <= 0:
            return 0
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def to_dict(self) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": self.total_pages,
            "has_next": self.has_next,
            "has_prev": self.has_prev,
        }


@dataclass(frozen=True)
class SearchResult:
    """Page of hydrated images produced by the filter query builder."""

    items: list[dict]
    pagination: Pagination
    filters: dict = field(default_factory=dict)

    @classmethod
    def empty(cls, page: int, limit: int, filters: Optional[dict] = None) -> "SearchResult":
        return cls(items=[], pagination=Pagination(page=page, limit=limit, total=0), filters=dict(filters or {}))


@dataclass(frozen=True)
class ScoredImage:
    image: dict
    similarity: float

    def to_dict(self) -> dict:
        return {**self.image, "similarity": self.similarity}


@dataclass(frozen=True)
class VectorSearchResult:
    """Permission-pruned similarity matches in descending similarity order."""

    items: list[ScoredImage]
    search_type: str
    query: Any

    @property
    def total_matches(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict:
        return {
            "results": [item.to_dict() for item in self.items],
            "search_type": self.search_type,
            "query": self.query,
            "total_matches": self.total_matches,
        }
