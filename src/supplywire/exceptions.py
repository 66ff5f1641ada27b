from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class SupplyWireError(Exception):
    """Represent a base class for all SupplyWire-specific failures.

    Catch this type when you want to handle any SupplyWire error path without
    matching each concrete exception class individually. Factory failures are
    never wrapped in it: a factory's own exception propagates from ``unpack``.
    """


class SupplyWireInvalidConfigError(SupplyWireError, TypeError):
    """Signal an invalid argument passed to a public SupplyWire API.

    Raised by ``Market.offer``, ``Offer.as_product``, ``ProductSupplier.prototype``,
    ``ProductSupplier.try_``/``with_``, ``assemble``, ``reassemble`` and ``pack``
    when arguments have the wrong type or shape.

    Typical fixes include passing a non-empty string name, a callable factory,
    boolean flags, and mappings of packed supplies keyed by supplier name.
    """


class SupplyWireNameCollisionError(SupplyWireError):
    """Signal that a name was offered twice on the same market.

    Names are unique per ``Market`` instance. Typical fixes are choosing a new
    name, or using ``ProductSupplier.prototype`` to build an alternative
    implementation that intentionally shares the original's name.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Name {name} already exists")


class SupplyWireCircularDependencyError(SupplyWireError):
    """Signal a supplier graph that reaches its own name.

    Raised at declaration time by ``as_product``, ``prototype``, ``try_`` and
    ``with_`` when a supplier transitively requires a supplier with its own name,
    and at assembly time when a pending supply is requested while it is still
    being assembled.

    Typical fix is breaking the cycle by moving one edge to ``assemblers`` so it
    is only assembled on demand inside the factory.
    """

    def __init__(self, cycle: Iterable[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")


class SupplyWireUnsatisfiedDependencyError(SupplyWireError):
    """Signal that required supplies are missing.

    Raised by a top-level ``assemble`` when required resources anywhere in the
    non-deferred graph were not supplied, and by ``supplies(name)`` when the
    requested supply is absent from the map.

    Typical fix is packing the missing resources and passing them to
    ``assemble`` (for example with ``index(config.pack(...))``).
    """

    def __init__(self, names: Iterable[str]) -> None:
        self.names = tuple(names)
        super().__init__(f"Unsatisfied dependency: {', '.join(self.names)}")


class SupplyWireOptimisticPendingError(SupplyWireError):
    """Signal a second ``set_optimistic`` call while one is still pending.

    Only one optimistic value may be in flight per product. Wait for the
    background computation to settle, or call ``recall`` to discard the pending
    overlay before setting a new one.
    """

    def __init__(self, pending_value: Any) -> None:
        self.pending_value = pending_value
        super().__init__(
            f"Cannot set optimistic value when one is already set: {pending_value}",
        )


class SupplyWireNotRecallableError(SupplyWireError):
    """Signal ``recall`` on a product declared with ``recallable=False``.

    Non-recallable products are not tracked for cascading invalidation, so they
    cannot start one either.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Product {name} is not recallable")
