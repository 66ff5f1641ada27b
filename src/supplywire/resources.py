from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from supplywire._internal.validation import validate_defined

if TYPE_CHECKING:
    from supplywire.market import Market

T = TypeVar("T")


@dataclass(frozen=True, eq=False)
class Resource(Generic[T]):
    """A leaf value supplied from outside the graph.

    Resources never depend on anything and never change: ``pack`` returns a new
    resource for the same supplier and leaves this one untouched.
    """

    name: str
    value: T
    supplier: ResourceSupplier[T] = field(repr=False)

    def unpack(self) -> T:
        return self.value

    def pack(self, value: T) -> Resource[T]:
        return self.supplier.pack(value)


@dataclass(frozen=True, eq=False)
class ResourceSupplier(Generic[T]):
    """Declare a named resource, created by ``Offer.as_resource``.

    Examples:
        .. code-block:: python

            config = market.offer("config").as_resource()
            packed = config.pack({"debug": True})
            packed.unpack()  # {"debug": True}

    """

    market: Market = field(repr=False)
    name: str

    def pack(self, value: T) -> Resource[T]:
        """Wrap value as a resource of this supplier.

        Raises:
            SupplyWireInvalidConfigError: If value is ``None``.

        """
        validate_defined(value, "value")
        return Resource(name=self.name, value=value, supplier=self)
