"""
Pagination helpers shared by list use cases
"""
import math
from dataclasses import dataclass, field
from typing import Any

from tesoreria.config import get_settings


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 50

    @classmethod
    def build(cls, page: int | None = None, limit: int | None = None, max_limit: int | None = None) -> "PageRequest":
        """Clamp raw query values: page >= 1, 1 <= limit <= max_limit."""
        settings = get_settings()
        max_limit = max_limit or settings.MAX_PAGE_SIZE
        page = page if page and page > 0 else 1
        limit = limit if limit and limit > 0 else settings.DEFAULT_PAGE_SIZE
        return cls(page=page, limit=min(limit, max_limit))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page:
    items: list[Any]
    total: int
    page: int
    limit: int
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> dict[str, int]:
        return {"total": self.total, "page": self.page, "limit": self.limit, "pages": self.pages}
