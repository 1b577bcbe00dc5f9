from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Generic, Sequence, TypeVar

from ..core.constants import DEFAULT_PAGE, DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT

T = TypeVar("T")


@dataclass(frozen=True)
class PageRequest:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_PAGE_LIMIT

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class Page(Generic[T]):
    items: Sequence[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) or 1

    def meta(self) -> dict:
        return {
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "totalPages": self.total_pages,
        }


def parse_pagination(page: Any = None, limit: Any = None) -> PageRequest:
    """Invalid values fall back to defaults; limit is capped."""
    try:
        p = int(page)
    except (TypeError, ValueError):
        p = DEFAULT_PAGE
    try:
        lim = int(limit)
    except (TypeError, ValueError):
        lim = DEFAULT_PAGE_LIMIT

    if p < 1:
        p = DEFAULT_PAGE
    if lim < 1:
        lim = DEFAULT_PAGE_LIMIT
    lim = min(lim, MAX_PAGE_LIMIT)
    return PageRequest(page=p, limit=lim)
