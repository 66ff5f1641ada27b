from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import weakref
from collections import deque
from collections.abc import Callable
from contextlib import AbstractContextManager, nullcontext
from functools import partial
from typing import Any

from supplywire._internal.optimistic import OptimisticOverlay
from supplywire._internal.scheduling import Cancellable, Scheduler
from supplywire.lock_mode import LockMode
from supplywire.memo import CacheKey, DictMemoStore, MemoFn, MemoRequest, RecallFn, RecallHook

logger = logging.getLogger(__name__)


def retrieve_exception(future: asyncio.Future[Any]) -> None:
    """Mark a background future's failure as observed so asyncio does not warn about it."""
    if not future.cancelled():
        future.exception()


class AssemblyCache:
    """Cache state shared by every product assembled from one market.

    Holds the memo store, one ``MemoCell`` per live recallable product, and
    the dependency edges ("``dependent`` was computed from ``dependency``")
    that ``recall`` walks. Cells are held weakly so products are still
    garbage collected once unreferenced. Edges of collected cells are
    released the next time the cache is touched under its lock.

    The cache lock only guards edges, cells and key allocation. Factories
    run under the per-cell lock handed out by ``new_lock``.
    """

    def __init__(
        self,
        *,
        scheduler: Scheduler,
        memo_fn: MemoFn | None = None,
        recall_fn: RecallFn | None = None,
        on_recall: RecallHook | None = None,
        lock_mode: LockMode = LockMode.THREAD,
    ) -> None:
        self._default_store: DictMemoStore | None = None
        if memo_fn is None or recall_fn is None:
            self._default_store = DictMemoStore()
            memo_fn, recall_fn = self._default_store.memo, self._default_store.recall

        self.scheduler = scheduler
        self._lock_mode = lock_mode
        self.lock = self.new_lock()
        self._memo_fn = memo_fn
        self._recall_fn = recall_fn
        self._on_recall = on_recall
        self._assemblies = itertools.count(1)
        self._cells: weakref.WeakValueDictionary[CacheKey, MemoCell] = (
            weakref.WeakValueDictionary()
        )
        self._dependents: dict[CacheKey, set[CacheKey]] = {}
        self._dependencies: dict[CacheKey, set[CacheKey]] = {}
        self._released: deque[CacheKey] = deque()

    def new_lock(self) -> AbstractContextManager[Any]:
        """Return a re-entrant lock, or a no-op context under ``LockMode.NONE``."""
        if self._lock_mode is LockMode.THREAD:
            return threading.RLock()
        return nullcontext()

    def next_key(self, name: str) -> CacheKey:
        with self.lock:
            return CacheKey(name, next(self._assemblies))

    def memoize(self, request: MemoRequest) -> Callable[[], Any]:
        return self._memo_fn(request)

    def forget(self, request: MemoRequest) -> None:
        self._recall_fn(request)

    def track(self, cell: MemoCell) -> None:
        """Release the store entry and the edges of cell once it is collected."""
        finalizer = weakref.finalize(cell, self._release, cell.key)
        finalizer.atexit = False

    def register(self, cell: MemoCell) -> None:
        """Make cell reachable by ``recall``."""
        with self.lock:
            self._drain()
            self._cells[cell.key] = cell

    def link(self, dependency: CacheKey, dependent: CacheKey) -> None:
        """Record that ``dependent`` was computed from ``dependency``.

        Links to a dependent that is not a live registered cell are dropped.
        """
        if dependency == dependent:
            return
        with self.lock:
            self._drain()
            if dependent not in self._cells:
                return
            self._dependents.setdefault(dependency, set()).add(dependent)
            self._dependencies.setdefault(dependent, set()).add(dependency)

    def dependents_of(self, key: CacheKey) -> frozenset[CacheKey]:
        with self.lock:
            self._drain()
            return frozenset(self._dependents.get(key, ()))

    def recall(self, key: CacheKey) -> tuple[CacheKey, ...]:
        """Invalidate key and everything transitively computed from it.

        Each distinct key is invalidated once, however many paths lead to it.
        Recall hooks run after the walk, outside the lock, and their failures
        are logged and suppressed.

        Returns:
            Keys that were invalidated, in breadth-first order.

        """
        invalidated: list[MemoCell] = []
        with self.lock:
            self._drain()
            seen = {key}
            queue = deque([key])
            while queue:
                current = queue.popleft()
                cell = self._cells.get(current)
                if cell is None:
                    continue
                cell.invalidate()
                invalidated.append(cell)
                for dependent in tuple(self._dependents.get(current, ())):
                    if dependent not in seen:
                        seen.add(dependent)
                        queue.append(dependent)

        keys = tuple(cell.key for cell in invalidated)
        logger.debug("Recalled %s", ", ".join(str(k) for k in keys))
        for cell in invalidated:
            self._notify(self._on_recall, cell.key)
            self._notify(cell.on_recall, cell.key)
        return keys

    def _notify(self, hook: RecallHook | None, key: CacheKey) -> None:
        if hook is None:
            return
        try:
            hook(key)
        except Exception:
            logger.warning("on_recall hook failed for %s", key, exc_info=True)

    def _release(self, key: CacheKey) -> None:
        # finalizers run at arbitrary points, so edges are only queued here
        self._released.append(key)
        if self._default_store is not None:
            self._default_store.discard(key)

    def _drain(self) -> None:
        while self._released:
            key = self._released.popleft()
            for dependency in self._dependencies.pop(key, ()):
                _unlink(self._dependents, dependency, key)
            for dependent in self._dependents.pop(key, ()):
                _unlink(self._dependencies, dependent, key)

    def __len__(self) -> int:
        return len(self._cells)


def _unlink(edges: dict[CacheKey, set[CacheKey]], key: CacheKey, other: CacheKey) -> None:
    linked = edges.get(key)
    if linked is None:
        return
    linked.discard(other)
    if not linked:
        del edges[key]


class MemoCell:
    """Caching policy, timeout and optimistic overlay of a single product."""

    def __init__(
        self,
        *,
        cache: AssemblyCache,
        key: CacheKey,
        compute: Callable[[], Any],
        memo: bool = True,
        timeout: float | None = None,
        on_recall: RecallHook | None = None,
    ) -> None:
        self.key = key
        self.on_recall = on_recall
        self._cache = cache
        self._compute = compute
        self._timeout = timeout
        self._timer: Cancellable | None = None
        self._failure: BaseException | None = None
        self._last: Any = None
        self._generation = 0
        self._guard = cache.new_lock()
        self._overlay = OptimisticOverlay()
        self._request = MemoRequest(key=key, factory=self._produce)
        self._memoized = cache.memoize(self._request) if memo else None
        cache.track(self)

    def get(self) -> Any:
        if self._overlay.pending:
            return self._overlay.value
        return self._real()

    def _real(self) -> Any:
        if self._memoized is None:
            return self._produce()
        with self._guard:
            if self._failure is not None:
                raise self._failure
            generation = self._generation
            try:
                value = self._memoized()
            except Exception as error:
                if generation == self._generation:
                    self._failure = error
                raise
            if generation != self._generation:
                # recalled while computing, so the stored value is already stale
                self._cache.forget(self._request)
            return value

    def _produce(self) -> Any:
        value = self._compute()
        self._last = value
        if self._timeout is not None and self._timer is None:
            if isinstance(value, asyncio.Future):
                value.add_done_callback(lambda _: self._arm_timeout())
            else:
                self._arm_timeout()
        return value

    def _arm_timeout(self) -> None:
        if self._timeout is None or self._timer is not None:
            return
        self._timer = self._cache.scheduler.later(self._timeout, self._expire)

    def _expire(self) -> None:
        self._timer = None
        self._cache.recall(self.key)

    def invalidate(self) -> None:
        """Drop the cached value, a cached failure, the overlay and the timer.

        Does not wait for a computation running in another thread. That
        computation notices the recall and discards what it stored.
        """
        self._generation += 1
        if self._memoized is not None:
            self._cache.forget(self._request)
        self._failure = None
        self._last = None
        self._overlay.clear()
        if self._timer is not None:
            self._cache.scheduler.cancel(self._timer)
            self._timer = None

    def set_optimistic(self, value: Any, timeout: float | None = None) -> None:
        with self._guard:
            token = self._overlay.set(value)
            if self._memoized is not None:
                self._drop_failure()

        scheduler = self._cache.scheduler
        clear = partial(self._overlay.clear, token)
        if self._memoized is not None:
            # the memoized computation starts now and settles the overlay; timeout is moot
            self._settle(clear)
        elif timeout is not None:
            scheduler.later(timeout, clear)
        else:
            scheduler.soon(clear)

    def _drop_failure(self) -> None:
        failed = self._failure is not None or (
            isinstance(self._last, asyncio.Future)
            and self._last.done()
            and not self._last.cancelled()
            and self._last.exception() is not None
        )
        if failed:
            self._failure = None
            self._last = None
            self._cache.forget(self._request)

    def _settle(self, clear: Callable[[], Any]) -> None:
        scheduler = self._cache.scheduler
        try:
            value = self._real()
        except Exception:
            logger.debug("Optimistic computation of %s failed", self.key, exc_info=True)
            scheduler.soon(clear)
            return

        if isinstance(value, asyncio.Future):
            def done(future: asyncio.Future[Any]) -> None:
                retrieve_exception(future)
                clear()

            value.add_done_callback(done)
        else:
            # readers in the current tick still see the placeholder
            scheduler.soon(clear)
