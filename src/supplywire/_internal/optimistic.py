from __future__ import annotations

import itertools
from enum import Enum
from typing import Any

from supplywire.exceptions import SupplyWireOptimisticPendingError


class OverlayState(Enum):
    """States of a product's optimistic overlay."""

    NONE = "none"
    """No placeholder was ever set."""

    PENDING = "pending"
    """A placeholder is returned while the real value resolves."""

    RESOLVED = "resolved"
    """The last placeholder was cleared by its background computation or a recall."""


class OptimisticOverlay:
    """Hold at most one placeholder value per product.

    Each ``set`` returns a token. Only ``clear`` calls carrying the current token
    leave the pending state, so a background computation that was superseded by
    a recall cannot clear a newer placeholder.
    """

    def __init__(self) -> None:
        self._state = OverlayState.NONE
        self._value: Any = None
        self._tokens = itertools.count(1)
        self._token = 0

    @property
    def state(self) -> OverlayState:
        return self._state

    @property
    def pending(self) -> bool:
        return self._state is OverlayState.PENDING

    @property
    def value(self) -> Any:
        return self._value

    def set(self, value: Any) -> int:
        if self._state is OverlayState.PENDING:
            raise SupplyWireOptimisticPendingError(self._value)
        self._state = OverlayState.PENDING
        self._value = value
        self._token = next(self._tokens)
        return self._token

    def clear(self, token: int | None = None) -> bool:
        """Leave the pending state; return False when token is stale."""
        if self._state is not OverlayState.PENDING:
            return False
        if token is not None and token != self._token:
            return False
        self._state = OverlayState.RESOLVED
        self._value = None
        return True
