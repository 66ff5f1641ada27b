from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable, Mapping, MutableMapping
from dataclasses import dataclass, field, replace
from functools import partial
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from supplywire._internal.awaitables import SharedAwaitable
from supplywire._internal.cache import MemoCell, retrieve_exception
from supplywire._internal.graph import find_cycle, plan_team
from supplywire._internal.scheduling import running_loop
from supplywire._internal.signatures import PositionalArity
from supplywire._internal.validation import (
    validate_callable,
    validate_defined,
    validate_flag,
    validate_members,
    validate_name,
    validate_supply_map,
    validate_timeout,
)
from supplywire.exceptions import (
    SupplyWireCircularDependencyError,
    SupplyWireInvalidConfigError,
    SupplyWireNotRecallableError,
    SupplyWireUnsatisfiedDependencyError,
)
from supplywire.memo import CacheKey, RecallHook
from supplywire.resources import Resource, ResourceSupplier
from supplywire.supplies import Assemblers, Pending, Supplies

if TYPE_CHECKING:
    from typing_extensions import Self

    from supplywire.market import Market

logger = logging.getLogger(__name__)

T = TypeVar("T")

_INHERIT: Any = object()
_NOT_PACKED: Any = object()


def _by_name(variants: Iterable[ProductSupplier[Any]]) -> dict[str, ProductSupplier[Any]]:
    # a repeated name keeps its first position and its last variant
    chosen: dict[str, ProductSupplier[Any]] = {}
    for variant in variants:
        chosen[variant.name] = variant
    return chosen


def _substitute(members: tuple[Any, ...], chosen: Mapping[str, Any]) -> tuple[Any, ...]:
    return tuple(chosen.get(member.name, member) for member in members)


def _warm_up(target: Pending | Product[Any]) -> None:
    """Compute a product ahead of access, keeping any failure for the first real read."""
    try:
        product = target.resolve() if isinstance(target, Pending) else target
        value = product.unpack()
    except Exception:
        logger.debug("Preload of %s failed", target.supplier.name, exc_info=True)
        return
    if isinstance(value, asyncio.Future):
        value.add_done_callback(retrieve_exception)


@dataclass(frozen=True, eq=False, kw_only=True)
class ProductSupplier(Generic[T]):
    """Declare how a product is assembled from other suppliers.

    Created by ``Offer.as_product`` and, for variants sharing the same name, by
    ``prototype``. Suppliers are immutable: ``try_``, ``with_`` and
    ``assemblers_only`` return new suppliers.

    Examples:
        .. code-block:: python

            market = Market()
            config = market.offer("config").as_resource()
            client = market.offer("client").as_product(
                suppliers=[config],
                factory=lambda supplies: Client(supplies(config)),
            )

            product = client.assemble(index(config.pack(settings)))
            product.unpack()

    """

    market: Market = field(repr=False)
    name: str
    factory: Callable[..., T] = field(repr=False)
    suppliers: tuple[ResourceSupplier[Any] | ProductSupplier[Any], ...] = ()
    """Required suppliers, assembled automatically when they are products."""

    optionals: tuple[ResourceSupplier[Any] | ProductSupplier[Any], ...] = ()
    """Suppliers read only when the caller supplied them."""

    assemblers: tuple[ProductSupplier[Any], ...] = ()
    """Deferred suppliers handed to the factory unassembled."""

    init: Callable[..., Any] | None = field(default=None, repr=False)
    memo: bool = True
    recallable: bool = True
    lazy: bool = False
    preload: bool = False
    timeout: float | None = None
    on_recall: RecallHook | None = field(default=None, repr=False)
    is_prototype: bool = False
    assemblers_scoped: bool = False
    """Restrict ``try_`` and ``with_`` to the deferred suppliers."""

    _factory_call: PositionalArity = field(init=False, repr=False)
    _init_call: PositionalArity | None = field(init=False, repr=False)

    def __post_init__(self) -> None:
        validate_name(self.name)
        validate_callable(self.factory, "factory", required=True)
        validate_callable(self.init, "init")
        validate_callable(self.on_recall, "on_recall")
        kinds = (ResourceSupplier, ProductSupplier)
        object.__setattr__(self, "suppliers", validate_members(self.suppliers, "suppliers", kinds))
        object.__setattr__(self, "optionals", validate_members(self.optionals, "optionals", kinds))
        object.__setattr__(
            self,
            "assemblers",
            validate_members(self.assemblers, "assemblers", (ProductSupplier,)),
        )
        for flag in ("memo", "recallable", "lazy", "preload", "is_prototype", "assemblers_scoped"):
            validate_flag(getattr(self, flag), flag)
        object.__setattr__(self, "timeout", validate_timeout(self.timeout, "timeout"))
        if self.timeout is not None and not self.recallable:
            msg = f"Supplier {self.name} sets a timeout but is not recallable"
            raise SupplyWireInvalidConfigError(msg)

        cycle = find_cycle(self.name, (*self.suppliers, *self.optionals))
        if cycle is not None:
            raise SupplyWireCircularDependencyError(cycle)

        object.__setattr__(self, "_factory_call", PositionalArity(self.factory, 2))
        object.__setattr__(
            self,
            "_init_call",
            None if self.init is None else PositionalArity(self.init, 2),
        )

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def assemble(self, to_supply: Mapping[str, Any] | None = None) -> Product[T]:
        """Resolve the supplier graph into a product.

        Required product suppliers missing from ``to_supply`` are assembled
        automatically, sharing one product per name across the whole graph.
        Non-lazy ones are computed right away; their failures are kept for
        the first ``unpack``.

        Args:
            to_supply: Packed resources and assembled products keyed by name,
                typically built with ``index``.

        Returns:
            The assembled product. Its own factory has not run yet.

        Raises:
            SupplyWireInvalidConfigError: If ``to_supply`` is not a mapping of
                supplies keyed by their names.
            SupplyWireUnsatisfiedDependencyError: If a required resource
                anywhere in the graph was not supplied.

        """
        supplied = validate_supply_map(
            {} if to_supply is None else to_supply,
            "to_supply",
            (Resource, Product),
        )
        return self._assemble(dict(supplied), nested=False)

    def _assemble_over(
        self,
        table: Mapping[str, Any],
        overrides: Mapping[str, Any],
    ) -> Product[T]:
        validate_supply_map(overrides, "overrides", (Resource, Product))
        entries = dict(table)
        entries.update(overrides)
        return self._assemble(entries, nested=False)

    def _assemble(self, entries: MutableMapping[str, Any], *, nested: bool) -> Product[T]:
        """Build a product over a supply table.

        Nested assembly reuses the table of the assembly that pended this
        supplier. Otherwise a new table is built from ``entries``, where a
        product supplier value marks a name to assemble again.
        """
        cache = self.market._cache
        if nested:
            table = entries
        else:
            resupplied = [entry for entry in entries.values() if isinstance(entry, ProductSupplier)]
            team, missing = plan_team((self, *resupplied), entries)
            if missing:
                raise SupplyWireUnsatisfiedDependencyError(missing)

            table = {}
            for name, entry in entries.items():
                if isinstance(entry, ProductSupplier):
                    entry = Pending(entry, table, cache)
                table[name] = entry
            for name, supplier in team.items():
                table[name] = Pending(supplier, table, cache)

        product = Product(supplier=self, table=table, key=cache.next_key(self.name))
        logger.debug("Assembled %s", product.cache_key)
        if product.recallable:
            self._declare_dependent(table, product)

        self._prerun(table)
        if self.preload and not nested:
            cache.scheduler.soon(partial(_warm_up, product))
        return product

    def _declare_dependent(self, table: Mapping[str, Any], product: Product[T]) -> None:
        # recall reaches every product that lists a supply, read or not
        cache = self.market._cache
        for declared in (*self.suppliers, *self.optionals):
            entry = table.get(declared.name)
            if isinstance(entry, Pending):
                entry.declare(product)
            elif isinstance(entry, Product) and entry.recallable:
                cache.link(entry.cache_key, product.cache_key)

    def _prerun(self, table: Mapping[str, Any]) -> None:
        scheduler = self.market._cache.scheduler
        for declared in self.suppliers:
            entry = table.get(declared.name)
            if not isinstance(entry, Pending):
                continue
            if entry.supplier.lazy:
                if entry.supplier.preload:
                    scheduler.soon(partial(_warm_up, entry))
                continue
            try:
                value = entry.resolve().unpack()
            except Exception:
                logger.debug("Eager run of %s failed", declared.name, exc_info=True)
                continue
            if isinstance(value, asyncio.Future):
                value.add_done_callback(retrieve_exception)

    def pack(self, value: T) -> Product[T]:
        """Wrap an existing value as a product that depends on nothing.

        Packed products are handy as stand-ins in ``to_supply`` or
        ``reassemble`` overrides. Their ``reassemble`` returns themselves.

        Raises:
            SupplyWireInvalidConfigError: If value is ``None``.

        """
        validate_defined(value, "value")
        key = self.market._cache.next_key(self.name)
        return Product(supplier=self, table={}, key=key, packed=value)

    # ------------------------------------------------------------------
    # Substitution
    # ------------------------------------------------------------------

    def prototype(
        self,
        *,
        factory: Callable[..., T],
        suppliers: Iterable[Any] = (),
        optionals: Iterable[Any] = (),
        assemblers: Iterable[ProductSupplier[Any]] = (),
        init: Callable[..., Any] | None = None,
        memo: bool = _INHERIT,
        recallable: bool = _INHERIT,
        lazy: bool = _INHERIT,
        preload: bool = _INHERIT,
        timeout: float | None = _INHERIT,
        on_recall: RecallHook | None = _INHERIT,
    ) -> ProductSupplier[T]:
        """Declare an alternative implementation under the same name.

        The prototype does not claim a new name on the market. Pass it to
        ``try_`` or ``with_`` of a supplier that depends on this one.
        Scheduling and caching options not given are inherited from this
        supplier.
        """

        def inherit(value: Any, current: Any) -> Any:
            return current if value is _INHERIT else value

        return ProductSupplier(
            market=self.market,
            name=self.name,
            factory=factory,
            suppliers=suppliers,
            optionals=optionals,
            assemblers=assemblers,
            init=init,
            memo=inherit(memo, self.memo),
            recallable=inherit(recallable, self.recallable),
            lazy=inherit(lazy, self.lazy),
            preload=inherit(preload, self.preload),
            timeout=inherit(timeout, self.timeout),
            on_recall=inherit(on_recall, self.on_recall),
            is_prototype=True,
        )

    def try_(self, *variants: ProductSupplier[Any]) -> ProductSupplier[T]:
        """Swap dependencies for prototypes of the same name.

        Each slot whose name matches a variant is replaced; variants matching
        no slot are ignored. With repeated names the last variant wins.
        ``try_()`` returns an equivalent supplier.

        Raises:
            SupplyWireInvalidConfigError: If a variant is not a prototype.
            SupplyWireCircularDependencyError: If a variant reaches this
                supplier's name.

        """
        for position, variant in enumerate(variants):
            if not isinstance(variant, ProductSupplier) or not variant.is_prototype:
                msg = f"try_() accepts prototypes only, variants[{position}] is not one"
                raise SupplyWireInvalidConfigError(msg)

        chosen = _by_name(variants)
        if self.assemblers_scoped:
            return replace(self, assemblers=_substitute(self.assemblers, chosen))
        return replace(
            self,
            suppliers=_substitute(self.suppliers, chosen),
            optionals=_substitute(self.optionals, chosen),
            assemblers=_substitute(self.assemblers, chosen),
        )

    def with_(self, *variants: ProductSupplier[Any]) -> ProductSupplier[T]:
        """Swap matching dependencies and hire the rest as extra suppliers.

        Matching slots are replaced as in ``try_``, but any product supplier
        is accepted and unmatched variants are appended to the required
        suppliers (or to the assemblers when ``assemblers_only`` is set).
        Since names are shared across an assembly, an appended variant also
        replaces deeper declarations of its name. With repeated names the
        last variant wins.
        """
        validate_members(variants, "variants", (ProductSupplier,))
        chosen = _by_name(variants)

        if self.assemblers_scoped:
            known = {member.name for member in self.assemblers}
            hired = tuple(variant for name, variant in chosen.items() if name not in known)
            return replace(self, assemblers=_substitute(self.assemblers, chosen) + hired)

        known = {member.name for member in (*self.suppliers, *self.optionals, *self.assemblers)}
        hired = tuple(variant for name, variant in chosen.items() if name not in known)
        return replace(
            self,
            suppliers=_substitute(self.suppliers, chosen) + hired,
            optionals=_substitute(self.optionals, chosen),
            assemblers=_substitute(self.assemblers, chosen),
        )

    def assemblers_only(self) -> ProductSupplier[T]:
        """Return a copy whose ``try_``/``with_`` only touch deferred suppliers."""
        return replace(self, assemblers_scoped=True)

    jit_only = assemblers_only


class Product(Generic[T]):
    """An assembled (or packed) value and the supply table it was built from.

    Products are never mutated: ``reassemble`` and ``pack`` return new
    products. The factory runs on first ``unpack`` (or earlier, when the
    product was assembled eagerly or preloaded) and its result is cached
    per ``cache_key`` unless the supplier opted out with ``memo=False``.
    """

    def __init__(
        self,
        *,
        supplier: ProductSupplier[T],
        table: MutableMapping[str, Any],
        key: CacheKey,
        packed: Any = _NOT_PACKED,
    ) -> None:
        cache = supplier.market._cache
        self.supplier = supplier
        self.cache_key = key
        self._table = table
        self._packed = packed is not _NOT_PACKED
        self.supplies = Supplies(table, cache=cache, owner=key if self.recallable else None)
        self.assemblers = Assemblers(supplier.assemblers, table)

        if self._packed:
            self._cell = MemoCell(cache=cache, key=key, compute=lambda: packed, memo=False)
            return
        self._cell = MemoCell(
            cache=cache,
            key=key,
            compute=self._compute,
            memo=supplier.memo,
            timeout=supplier.timeout,
            on_recall=supplier.on_recall,
        )
        if supplier.recallable:
            cache.register(self._cell)

    @property
    def name(self) -> str:
        return self.supplier.name

    @property
    def packed(self) -> bool:
        return self._packed

    @property
    def recallable(self) -> bool:
        return self.supplier.recallable and not self._packed

    def _compute(self) -> Any:
        supplier = self.supplier
        value = supplier._factory_call(self.supplies, self.assemblers)
        if inspect.isawaitable(value) and not isinstance(value, asyncio.Future):
            # one shared computation, so every reader awaits the same result
            if running_loop() is not None:
                value = asyncio.ensure_future(value)
            else:
                value = SharedAwaitable(value)
        if supplier._init_call is not None:
            supplier._init_call(value, self.supplies)
        return value

    def unpack(self) -> Any:
        """Return the value, the optimistic placeholder, or raise the factory's error.

        Async factories yield an awaitable that callers await themselves: a
        shared task while an event loop is running, otherwise a wrapper that
        starts that task on first await.
        """
        return self._cell.get()

    def pack(self, value: T) -> Product[T]:
        return self.supplier.pack(value)

    def depends_on_one_of(self, names: Iterable[str]) -> bool:
        """Tell whether any of names is in this product's dependency closure.

        The closure follows required and optional suppliers, never deferred
        ones, and is walked afresh on each call. Packed products depend on
        nothing.
        """
        wanted = frozenset((names,) if isinstance(names, str) else names)
        if self._packed or not wanted:
            return False
        return _depends(self.supplier, self._table, wanted, set())

    def reassemble(self, overrides: Mapping[str, Any]) -> Self:
        """Assemble a new product with some supplies replaced.

        Supplies whose dependency closure avoids every overridden name are
        carried over as the same objects, keeping their cached values.
        Products depending on an overridden name are assembled again. A
        ``None`` override removes the supply, for instance an optional.

        Args:
            overrides: Replacement resources and products keyed by name.
                Names not previously supplied are added.

        Returns:
            A new product, or this one when it is packed.

        """
        validate_supply_map(overrides, "overrides", (Resource, Product), allow_none=True)
        if self._packed:
            return self
        return self._rebuild(self.supplier, overrides, frozenset())

    def with_(self, *variants: ProductSupplier[Any]) -> Self:
        """Reassemble this product with variants hired into its supplier.

        Supplies named by a variant, and everything depending on them, are
        assembled again; the rest of the table is reused.
        """
        supplier = self.supplier.with_(*variants)
        if self._packed:
            return self
        return self._rebuild(supplier, {}, frozenset(variant.name for variant in variants))

    def _rebuild(
        self,
        supplier: ProductSupplier[Any],
        overrides: Mapping[str, Any],
        replaced: frozenset[str],
    ) -> Any:
        changed = frozenset(overrides) | replaced
        entries: dict[str, Any] = {}
        for name, entry in self._table.items():
            if name in changed:
                continue
            if isinstance(entry, Pending):
                product = entry.product
                if product is None or product.depends_on_one_of(changed):
                    entries[name] = entry.supplier
                else:
                    entries[name] = product
            elif isinstance(entry, Product) and entry.depends_on_one_of(changed):
                entries[name] = entry.supplier
            else:
                entries[name] = entry

        for name, supply in overrides.items():
            if supply is not None:
                entries[name] = supply
        return supplier._assemble(entries, nested=False)

    def recall(self) -> None:
        """Invalidate this product and every product computed from it.

        Each affected product recomputes on its next ``unpack``. Dependencies
        of this product keep their cached values. Pending optimistic values
        and timeout timers of the affected products are discarded.

        Raises:
            SupplyWireNotRecallableError: If the supplier was declared with
                ``recallable=False`` or the product is packed.

        """
        if not self.recallable:
            raise SupplyWireNotRecallableError(self.name)
        self.supplier.market._cache.recall(self.cache_key)

    def set_optimistic(self, value: Any, timeout: float | None = None) -> None:
        """Return value from ``unpack`` until the real value is ready.

        Memoized products settle the placeholder once their memoized
        computation finishes (or fails), and ignore ``timeout``. Products
        with ``memo=False`` keep the placeholder for ``timeout`` seconds
        before the factory runs again on each ``unpack``.

        Raises:
            SupplyWireOptimisticPendingError: If a placeholder is still pending.

        """
        timeout = validate_timeout(timeout, "timeout")
        self._cell.set_optimistic(value, timeout)

    def __repr__(self) -> str:
        kind = "packed" if self._packed else "assembled"
        return f"<Product {self.cache_key} ({kind})>"


def _depends(
    supplier: ProductSupplier[Any],
    table: Mapping[str, Any],
    names: frozenset[str],
    seen: set[int],
) -> bool:
    declared = (*supplier.suppliers, *supplier.optionals)
    if any(member.name in names for member in declared):
        return True

    for member in declared:
        entry = table.get(member.name)
        if isinstance(entry, Pending):
            if entry.product is None:
                if id(entry) not in seen:
                    seen.add(id(entry))
                    if _depends(entry.supplier, table, names, seen):
                        return True
                continue
            entry = entry.product
        if isinstance(entry, Product) and entry.depends_on_one_of(names):
            return True
    return False


def index(*supplies: Any) -> dict[str, Any]:
    """Key packed resources and products by name, ready for ``assemble``.

    Later supplies replace earlier ones of the same name.

    Examples:
        .. code-block:: python

            product = service.assemble(index(config.pack(settings), user.pack(current)))

    """
    members = validate_members(supplies, "supplies", (Resource, Product))
    return {supply.name: supply for supply in members}
