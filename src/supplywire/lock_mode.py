from __future__ import annotations

from enum import Enum


class LockMode(Enum):
    """Select locking behavior for a market's shared cache state.

    The cache store, the reverse-dependency graph walked by ``recall`` and the
    resolution of pending supplies are all guarded by one lock per market.
    """

    THREAD = "thread"
    """Guard shared state with a re-entrant ``threading.RLock``."""

    NONE = "none"
    """Disable locking for strictly single-threaded hosts."""
