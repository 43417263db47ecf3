"""Cap result collections while keeping the pre-cap total."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

_T = TypeVar("_T")


@dataclass(frozen=True)
class Window(Generic[_T]):
    items: list[_T]
    total: int
    truncated: bool
    cap: int

    def to_dict(self) -> dict[str, Any]:
        return {"items": self.items, "total": self.total, "truncated": self.truncated, "cap": self.cap}


def window(items: Iterable[_T], cap: int, *, total: int | None = None) -> Window[_T]:
    """Keep the first *cap* items in their original order.

    *total* is for results already capped upstream (e.g. a driver that
    reports its own row count); it is never taken below the number of
    items actually seen. Ranking must happen before this call.
    """
    if cap < 0:
        msg = f"cap must be >= 0, got {cap}"
        raise ValueError(msg)
    seen = list(items)
    effective_total = len(seen) if total is None else max(total, len(seen))
    return Window(items=seen[:cap], total=effective_total, truncated=effective_total > cap, cap=cap)
