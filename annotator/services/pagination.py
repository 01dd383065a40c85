from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


def page_count(total: int, limit: int) -> int:
    if total <= 0:
        return 0
    return math.ceil(total / limit)


def offset_for(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = DEFAULT_LIMIT

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def pages(self) -> int:
        return page_count(self.total, self.limit)
