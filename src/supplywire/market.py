from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from supplywire._internal.cache import AssemblyCache
from supplywire._internal.scheduling import Scheduler
from supplywire._internal.validation import validate_callable, validate_hook_pair, validate_name
from supplywire.exceptions import SupplyWireInvalidConfigError, SupplyWireNameCollisionError
from supplywire.lock_mode import LockMode
from supplywire.memo import MemoFn, RecallFn, RecallHook
from supplywire.products import ProductSupplier
from supplywire.resources import ResourceSupplier

if TYPE_CHECKING:
    from types import TracebackType

    from typing_extensions import Self

logger = logging.getLogger(__name__)


class Market:
    """Own a namespace of supplier names and the cache shared by their products.

    Every supplier is declared through ``offer``, which claims its name for
    the lifetime of the market. Products assembled from the market's suppliers
    share one memo store, one recall graph and one scheduler.
    """

    def __init__(
        self,
        *,
        memo_fn: MemoFn | None = None,
        recall_fn: RecallFn | None = None,
        on_recall: RecallHook | None = None,
        lock_mode: LockMode = LockMode.THREAD,
    ) -> None:
        """Initialize an empty market.

        Args:
            memo_fn: Wrap a ``MemoRequest`` into a memoized zero-argument
                callable. Use it together with ``recall_fn`` to back product
                caching with an external store. Defaults to ``DictMemoStore``.
            recall_fn: Drop whatever ``memo_fn`` stored for a ``MemoRequest``.
            on_recall: Called with the ``CacheKey`` of every recalled product.
                Exceptions it raises are logged and suppressed.
            lock_mode: Guard shared cache state with a thread lock
                (``LockMode.THREAD``) or not at all (``LockMode.NONE``).

        Raises:
            SupplyWireInvalidConfigError: If only one of ``memo_fn`` and
                ``recall_fn`` is given, or an argument has the wrong type.

        Examples:
            .. code-block:: python

                market = Market()

                store = DictMemoStore()
                shared = Market(memo_fn=store.memo, recall_fn=store.recall)

                with Market(lock_mode=LockMode.NONE) as single_threaded:
                    ...

        """
        validate_hook_pair(memo_fn, recall_fn)
        validate_callable(on_recall, "on_recall")
        if not isinstance(lock_mode, LockMode):
            msg = f"lock_mode must be a LockMode, got {lock_mode!r}"
            raise SupplyWireInvalidConfigError(msg)

        self._names: set[str] = set()
        self._names_lock = threading.Lock()
        self._scheduler = Scheduler()
        self._cache = AssemblyCache(
            scheduler=self._scheduler,
            memo_fn=memo_fn,
            recall_fn=recall_fn,
            on_recall=on_recall,
            lock_mode=lock_mode,
        )

    @property
    def names(self) -> frozenset[str]:
        """Names offered so far."""
        return frozenset(self._names)

    def offer(self, name: str) -> Offer:
        """Claim name and return an offer to declare its supplier.

        Raises:
            SupplyWireInvalidConfigError: If name is not a non-empty string.
            SupplyWireNameCollisionError: If name was already offered on this
                market.

        """
        validate_name(name)
        with self._names_lock:
            if name in self._names:
                raise SupplyWireNameCollisionError(name)
            self._names.add(name)
        logger.debug("Offered %s", name)
        return Offer(market=self, name=name)

    def close(self) -> None:
        """Cancel pending timeout and optimistic timers.

        Products stay usable; they just stop expiring on their own.
        """
        self._scheduler.cancel_all()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Market(names={sorted(self._names)!r})"


@dataclass(frozen=True)
class Offer:
    """A claimed name waiting to be declared as a resource or a product."""

    market: Market = field(repr=False)
    name: str

    def as_resource(self) -> ResourceSupplier[Any]:
        """Declare a leaf supplier whose values are packed by the caller."""
        return ResourceSupplier(market=self.market, name=self.name)

    def as_product(
        self,
        *,
        factory: Callable[..., Any],
        suppliers: Iterable[Any] = (),
        optionals: Iterable[Any] = (),
        assemblers: Iterable[ProductSupplier[Any]] = (),
        init: Callable[..., Any] | None = None,
        memo: bool = True,
        recallable: bool = True,
        lazy: bool = False,
        preload: bool = False,
        timeout: float | None = None,
        on_recall: RecallHook | None = None,
    ) -> ProductSupplier[Any]:
        """Declare a product computed by factory from other suppliers.

        Args:
            factory: Called as ``factory(supplies, assemblers)`` and may
                accept fewer positional arguments. May return an awaitable.
            suppliers: Required suppliers. Products among them are assembled
                automatically; resources must be supplied to ``assemble``.
            optionals: Suppliers present in ``supplies`` only when supplied.
            assemblers: Deferred product suppliers, passed to the factory
                unassembled.
            init: Called as ``init(value, supplies)`` after the factory.
                A failure becomes the product's failure.
            memo: Cache the value per assembly. ``False`` reruns the factory
                on every ``unpack``.
            recallable: Track the product for ``recall`` cascades.
            lazy: Skip eager computation during the parent's assembly.
            preload: Warm a lazy product up right after assembly.
            timeout: Seconds after which a produced value is recalled.
            on_recall: Called with the cache key when the product is recalled.

        Returns:
            The product supplier.

        Raises:
            SupplyWireInvalidConfigError: If an option has the wrong type.
            SupplyWireCircularDependencyError: If the suppliers reach this name.

        """
        return ProductSupplier(
            market=self.market,
            name=self.name,
            factory=factory,
            suppliers=suppliers,
            optionals=optionals,
            assemblers=assemblers,
            init=init,
            memo=memo,
            recallable=recallable,
            lazy=lazy,
            preload=preload,
            timeout=timeout,
            on_recall=on_recall,
        )
