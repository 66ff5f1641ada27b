from __future__ import annotations

import gc
from typing import Any

from supplywire import CacheKey, DictMemoStore, MemoRequest
from supplywire._internal.cache import AssemblyCache, MemoCell
from supplywire._internal.scheduling import Scheduler


def make_cache(**kwargs: Any) -> AssemblyCache:
    return AssemblyCache(scheduler=Scheduler(), **kwargs)


def test_keys_are_unique_per_assembly() -> None:
    cache = make_cache()

    first = cache.next_key("service")
    second = cache.next_key("service")

    assert first != second
    assert str(first) == f"service@{first.assembly}"


def test_recall_walks_dependents_once() -> None:
    cache = make_cache()
    keys = {name: cache.next_key(name) for name in ("shared", "left", "right", "top")}
    cells = [
        MemoCell(cache=cache, key=key, compute=lambda: object()) for key in keys.values()
    ]
    for cell in cells:
        cache.register(cell)
    cache.link(keys["shared"], keys["left"])
    cache.link(keys["shared"], keys["right"])
    cache.link(keys["left"], keys["top"])
    cache.link(keys["right"], keys["top"])

    recalled = cache.recall(keys["shared"])

    assert recalled[0] == keys["shared"]
    assert sorted(key.name for key in recalled) == ["left", "right", "shared", "top"]


def test_self_links_are_ignored() -> None:
    cache = make_cache()
    key = cache.next_key("service")

    cache.link(key, key)

    assert cache.dependents_of(key) == frozenset()


def test_unregistered_keys_stop_the_walk() -> None:
    cache = make_cache()
    hidden = cache.next_key("hidden")
    beyond = cache.next_key("beyond")
    cache.link(hidden, beyond)

    assert cache.recall(hidden) == ()


def test_dead_dependents_are_unlinked_from_live_dependencies() -> None:
    cache = make_cache()
    key = cache.next_key("service")
    dependent_key = cache.next_key("dependent")
    cell = MemoCell(cache=cache, key=key, compute=lambda: "value")
    dependent = MemoCell(cache=cache, key=dependent_key, compute=lambda: "derived")
    cache.register(cell)
    cache.register(dependent)
    cache.link(key, dependent_key)
    assert cache.dependents_of(key) == {dependent_key}

    del dependent
    gc.collect()

    assert cache.dependents_of(key) == frozenset()
    assert cache._dependencies == {}


def test_dead_cells_drop_default_store_entries() -> None:
    cache = make_cache()
    key = cache.next_key("service")
    cell = MemoCell(cache=cache, key=key, compute=lambda: "value")
    cache.register(cell)
    cell.get()
    assert len(cache) == 1
    assert key in cache._default_store

    del cell
    gc.collect()

    assert len(cache) == 0
    assert key not in cache._default_store


def test_links_to_unregistered_dependents_are_ignored() -> None:
    cache = make_cache()
    key = cache.next_key("service")

    cache.link(key, cache.next_key("gone"))

    assert cache.dependents_of(key) == frozenset()


def test_memo_cell_uses_custom_store() -> None:
    store = DictMemoStore()
    cache = make_cache(memo_fn=store.memo, recall_fn=store.recall)
    key = cache.next_key("service")
    cell = MemoCell(cache=cache, key=key, compute=lambda: "value")

    assert cell.get() == "value"
    assert key in store

    cell.invalidate()

    assert key not in store


def test_memo_store_returns_cached_value() -> None:
    store = DictMemoStore()
    calls: list[int] = []
    request = MemoRequest(key=CacheKey("service", 1), factory=lambda: calls.append(1) or len(calls))
    memoized = store.memo(request)

    assert memoized() == 1
    assert memoized() == 1
    assert len(store) == 1

    store.recall(request)

    assert memoized() == 2
