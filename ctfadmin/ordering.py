"""Display order for notices: pinned first, then newest first."""

from __future__ import annotations

from typing import Iterable, Tuple

from .models import Notice


def display_key(notice: Notice) -> Tuple[bool, float]:
    return (not notice.is_pinned, -notice.time.timestamp())


def order_notices(notices: Iterable[Notice]) -> Tuple[Notice, ...]:
    """Return a new ordered tuple; ties keep their input order."""

    return tuple(sorted(notices, key=display_key))


__all__ = ["display_key", "order_notices"]
