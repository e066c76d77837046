from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 50
MAX_LIMIT = 100


@dataclass(frozen=True)
class PageParams:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page:
    items: list[Any]
    total: int
    params: PageParams

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.params.limit) if self.total else 0

    def meta(self) -> dict:
        return {
            "page": self.params.page,
            "limit": self.params.limit,
            "total": self.total,
            "pages": self.pages,
            "has_next": self.params.page < self.pages,
            "has_prev": self.params.page > 1,
        }


def page_params(args) -> PageParams:
    """Clamp ?page=&limit= query args; garbage falls back to the defaults."""
    page = args.get("page", type=int) or DEFAULT_PAGE
    limit = args.get("limit", type=int) or DEFAULT_LIMIT
    return PageParams(page=max(1, page), limit=min(max(1, limit), MAX_LIMIT))


def paginate(query, params: PageParams) -> Page:
    total = query.order_by(None).count()
    items = query.limit(params.limit).offset(params.offset).all()
    return Page(items=items, total=total, params=params)
