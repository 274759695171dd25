# Overview: Offset pagination shared by the listing operations.

from __future__ import annotations

import math
from dataclasses import dataclass, field

from ..config import setting
from ..errors import InvalidStateError


@dataclass
class Page:
    items: list = field(default_factory=list)
    page: int = 1
    limit: int = 50
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self, key: str = "items") -> dict:
        return {
            key: [item.to_dict() for item in self.items],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "total_pages": self.total_pages,
            },
        }


def paginate(query, page: int | None = None, limit: int | None = None) -> Page:
    """Run an already-ordered query for one page."""
    page = page or 1
    limit = limit or setting("STOCKLEDGER_PAGE_SIZE")
    if page < 1:
        raise InvalidStateError("page must be >= 1", field="page")
    if limit < 1:
        raise InvalidStateError("limit must be >= 1", field="limit")
    limit = min(limit, setting("STOCKLEDGER_MAX_PAGE_SIZE"))

    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, page=page, limit=limit, total=total)
