from __future__ import annotations

import weakref
from collections.abc import Iterator, Mapping, MutableMapping
from typing import TYPE_CHECKING, Any

from supplywire.exceptions import (
    SupplyWireCircularDependencyError,
    SupplyWireUnsatisfiedDependencyError,
)
from supplywire.resources import Resource

if TYPE_CHECKING:
    from supplywire._internal.cache import AssemblyCache
    from supplywire.memo import CacheKey
    from supplywire.products import Product, ProductSupplier


def _name_of(supplier: Any) -> str:
    return supplier if isinstance(supplier, str) else supplier.name


class Pending:
    """A product supplier sitting in a supply table until someone reads it.

    Every product assembled from the table shares the same pending entry, so
    the supplier is assembled at most once per table and all readers see the
    same product. Products that declare the entry are linked to it as
    dependents once it is assembled.
    """

    __slots__ = ("_cache", "_declared_by", "_lock", "_product", "_resolving", "_table", "supplier")

    def __init__(
        self,
        supplier: ProductSupplier[Any],
        table: MutableMapping[str, Any],
        cache: AssemblyCache,
    ) -> None:
        self.supplier = supplier
        self._table = table
        self._cache = cache
        self._product: Product[Any] | None = None
        self._resolving = False
        self._lock = cache.new_lock()
        self._declared_by: weakref.WeakSet[Product[Any]] = weakref.WeakSet()

    @property
    def product(self) -> Product[Any] | None:
        """The assembled product, or None while nobody has read the entry."""
        return self._product

    def declare(self, dependent: Product[Any]) -> None:
        """Record that dependent lists this supply among its suppliers."""
        with self._lock:
            product = self._product
            if product is None:
                self._declared_by.add(dependent)
                return
        if product.recallable:
            self._cache.link(product.cache_key, dependent.cache_key)

    def resolve(self) -> Product[Any]:
        product = self._product
        if product is not None:
            return product

        with self._lock:
            if self._product is None:
                if self._resolving:
                    name = self.supplier.name
                    raise SupplyWireCircularDependencyError((name, name))
                self._resolving = True
                try:
                    product = self.supplier._assemble(self._table, nested=True)
                finally:
                    self._resolving = False
                if product.recallable:
                    for dependent in list(self._declared_by):
                        self._cache.link(product.cache_key, dependent.cache_key)
                self._declared_by.clear()
                self._product = product
            return self._product

    def __repr__(self) -> str:
        state = "assembled" if self._product is not None else "pending"
        return f"<Pending {self.supplier.name} ({state})>"


class Supplies(Mapping[str, Any]):
    """The resolved supply map passed to a factory as its first argument.

    Indexing returns the packed ``Resource`` or the assembled ``Product`` for a
    name, assembling pending products on first access. Calling the map with a
    supplier (or a name) unpacks the value directly:

    .. code-block:: python

        def factory(supplies, assemblers):
            config = supplies(config_supplier)  # same as supplies["config"].unpack()
            ...

    Products read through the map are recorded as dependencies of the owning
    product, which is what lets ``recall`` reach it later.
    """

    def __init__(
        self,
        table: Mapping[str, Any],
        *,
        cache: AssemblyCache,
        owner: CacheKey | None = None,
    ) -> None:
        self._table = table
        self._cache = cache
        self._owner = owner

    def __getitem__(self, name: str) -> Any:
        entry = self._table[name]
        if isinstance(entry, Pending):
            entry = entry.resolve()
        if self._owner is not None and not isinstance(entry, Resource) and entry.recallable:
            self._cache.link(entry.cache_key, self._owner)
        return entry

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, name: object) -> bool:
        return name in self._table

    def __call__(self, supplier: Any) -> Any:
        """Unpack the supply of supplier (or of the name given).

        Raises:
            SupplyWireUnsatisfiedDependencyError: If the supply is absent, for
                example an optional supplier that was not supplied.

        """
        name = _name_of(supplier)
        if name not in self._table:
            raise SupplyWireUnsatisfiedDependencyError((name,))
        return self[name].unpack()

    def peek(self, name: str) -> Any:
        """Return the supply for name if it is packed or already assembled, else None."""
        entry = self._table.get(name)
        if isinstance(entry, Pending):
            return entry.product
        return entry

    def __repr__(self) -> str:
        return f"Supplies({list(self._table)!r})"


class Assemblers(Mapping[str, "ProductSupplier[Any]"]):
    """The deferred supplier map passed to a factory as its second argument.

    Entries are the product suppliers declared under ``assemblers``, handed
    over verbatim and never assembled on the factory's behalf. ``assemble``
    builds one on demand on top of the owning product's supplies.
    """

    def __init__(
        self,
        suppliers: tuple[ProductSupplier[Any], ...],
        table: Mapping[str, Any],
    ) -> None:
        self._suppliers = {supplier.name: supplier for supplier in suppliers}
        self._table = table

    def __getitem__(self, name: str) -> ProductSupplier[Any]:
        return self._suppliers[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._suppliers)

    def __len__(self) -> int:
        return len(self._suppliers)

    def assemble(
        self,
        supplier: Any,
        overrides: Mapping[str, Any] | None = None,
    ) -> Product[Any]:
        """Assemble a deferred supplier with the owner's supplies plus overrides.

        The supplier is looked up by name, so a variant installed with ``try_``
        or ``with_`` is used in place of the one passed in.

        Args:
            supplier: Deferred supplier, or its name.
            overrides: Extra packed supplies keyed by name, typically built with
                ``index``. They take precedence over the owner's supplies.

        Returns:
            The assembled product.

        Raises:
            SupplyWireUnsatisfiedDependencyError: If supplier is not one of the
                owner's assemblers, or required resources are still missing.

        """
        name = _name_of(supplier)
        actual = self._suppliers.get(name)
        if actual is None:
            raise SupplyWireUnsatisfiedDependencyError((name,))
        return actual._assemble_over(self._table, {} if overrides is None else overrides)

    def __repr__(self) -> str:
        return f"Assemblers({list(self._suppliers)!r})"
