from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeAlias


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Identify one assembled product: its name plus the assembly that built it."""

    name: str
    """Name of the supplier that produced the product."""

    assembly: int
    """Per-market counter value, unique to the ``assemble`` call."""

    def __str__(self) -> str:
        return f"{self.name}@{self.assembly}"


@dataclass(frozen=True, eq=False)
class MemoRequest:
    """A request handed to ``memo_fn`` and later to ``recall_fn``.

    The same request object is passed to both functions for one product, so
    stores may key their entries either by ``key`` or by ``factory`` identity.
    """

    key: CacheKey
    """Opaque cache key of the product."""

    factory: Callable[[], Any]
    """Zero-argument callable computing the product value."""


MemoFn: TypeAlias = Callable[[MemoRequest], Callable[[], Any]]
"""Wrap a request's factory into a memoized zero-argument callable."""

RecallFn: TypeAlias = Callable[[MemoRequest], None]
"""Drop whatever ``MemoFn`` stored for a request."""

RecallHook: TypeAlias = Callable[[CacheKey], None]
"""Callback invoked with the cache key of every invalidated product."""


class DictMemoStore:
    """Default memo store: one dictionary entry per cache key."""

    def __init__(self) -> None:
        self._values: dict[CacheKey, Any] = {}

    def memo(self, request: MemoRequest) -> Callable[[], Any]:
        """Return a callable computing the request once and caching the value."""
        values = self._values

        def memoized() -> Any:
            try:
                return values[request.key]
            except KeyError:
                pass
            value = request.factory()
            values[request.key] = value
            return value

        return memoized

    def recall(self, request: MemoRequest) -> None:
        """Forget the cached value of the request, if any."""
        self._values.pop(request.key, None)

    def discard(self, key: CacheKey) -> None:
        """Forget the value stored under key, if any."""
        self._values.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)
