"""Limit/offset paging for the admin list endpoints."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Query


@dataclass(frozen=True)
class Page:
    limit: int
    offset: int


class Paginator:
    """FastAPI dependency that turns ``?limit=&offset=`` into a bounded :class:`Page`."""

    def __init__(self, *, default_size: int, max_size: int) -> None:
        if default_size < 1 or max_size < default_size:
            raise ValueError("Page sizes must satisfy 1 <= default_size <= max_size")
        self._default_size = default_size
        self._max_size = max_size

    def __call__(
        self,
        limit: Optional[int] = Query(default=None, ge=1),
        offset: int = Query(default=0, ge=0),
    ) -> Page:
        size = self._default_size if limit is None else min(limit, self._max_size)
        return Page(limit=size, offset=offset)


__all__ = ["Page", "Paginator"]
