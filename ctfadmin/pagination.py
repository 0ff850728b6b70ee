"""Bounded ``(skip, count)`` paging shared by every admin listing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, TypeVar

T = TypeVar("T")


class PageError(ValueError):
    """Raised when raw paging values cannot be normalised."""


@dataclass(frozen=True)
class Page:
    skip: int
    count: int

    @classmethod
    def normalize(cls, skip: int, count: int, *, max_count: int) -> "Page":
        """Validate raw query values and clamp ``count`` to ``max_count``."""

        if skip < 0:
            raise PageError("skip must not be negative")
        if count <= 0:
            raise PageError("count must be greater than zero")
        return cls(skip=skip, count=min(count, max_count))


def fetch(source: Callable[[int, int], List[T]], page: Page) -> List[T]:
    """Issue exactly one ``source(skip, count)`` call and return its rows as-is."""

    return list(source(page.skip, page.count))


__all__ = ["Page", "PageError", "fetch"]
