"""Tests for thread safety of Market and products."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from supplywire import Market, SupplyWireNameCollisionError


class TestConcurrentUnpack:
    def test_concurrent_unpack_runs_factory_once(self, market: Market) -> None:
        """Concurrent unpack of a memoized product returns the same value."""
        calls: list[int] = []

        def slow() -> object:
            calls.append(1)
            time.sleep(0.01)
            return object()

        product = market.offer("service").as_product(factory=slow).assemble()

        with ThreadPoolExecutor(max_workers=10) as executor:
            results = list(executor.map(lambda _: product.unpack(), range(10)))

        assert len(calls) == 1
        assert all(result is results[0] for result in results)

    def test_concurrent_access_to_lazy_dependency_assembles_once(self, market: Market) -> None:
        """A lazy dependency read from many threads becomes one product."""
        report = market.offer("report").as_product(factory=lambda: object(), lazy=True)
        root = market.offer("root").as_product(suppliers=[report], factory=lambda: None)
        product = root.assemble()

        with ThreadPoolExecutor(max_workers=10) as executor:
            results = list(executor.map(lambda _: product.supplies["report"], range(10)))

        assert all(result is results[0] for result in results)
        assert len({id(result.unpack()) for result in results}) == 1

    def test_concurrent_unmemoized_unpack_creates_distinct_values(self, market: Market) -> None:
        product = market.offer("service").as_product(
            factory=lambda: object(),
            memo=False,
        ).assemble()

        with ThreadPoolExecutor(max_workers=10) as executor:
            results = list(executor.map(lambda _: product.unpack(), range(10)))

        assert len({id(result) for result in results}) == 10


class TestConcurrentOffer:
    def test_concurrent_offers_of_distinct_names(self) -> None:
        """Concurrent offers don't corrupt the name registry."""
        market = Market()
        errors: list[Exception] = []

        def offer(i: int) -> None:
            try:
                market.offer(f"name{i}").as_resource()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=offer, args=(i,)) for i in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not errors
        assert len(market.names) == 50

    def test_concurrent_offers_of_one_name_admit_a_single_winner(self) -> None:
        market = Market()
        winners: list[Any] = []
        collisions: list[Exception] = []

        def offer() -> None:
            try:
                winners.append(market.offer("config"))
            except SupplyWireNameCollisionError as e:
                collisions.append(e)

        threads = [threading.Thread(target=offer) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
        assert len(collisions) == 9


class TestConcurrentRecall:
    def test_recall_while_unpacking_leaves_consistent_state(self, market: Market) -> None:
        """Interleaved recall and unpack never raise and end on a fresh value."""
        counter: list[int] = []
        base = market.offer("base").as_product(factory=lambda: counter.append(1) or len(counter))
        top = market.offer("top").as_product(
            suppliers=[base],
            factory=lambda supplies: supplies(base),
        )
        product = top.assemble()
        base_product = product.supplies.peek("base")
        errors: list[Exception] = []

        def work(i: int) -> None:
            try:
                if i % 2:
                    base_product.recall()
                else:
                    product.unpack()
            except Exception as e:
                errors.append(e)

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(work, range(40)))

        assert not errors
        assert product.unpack() == base_product.unpack()


class TestFactoryLocking:
    def test_slow_factory_does_not_block_unrelated_products(self, market: Market) -> None:
        started = threading.Event()
        release = threading.Event()

        def slow() -> str:
            started.set()
            release.wait(timeout=5)
            return "slow"

        slow_product = market.offer("slow").as_product(factory=slow).assemble()
        fast_product = market.offer("fast").as_product(factory=lambda: "fast").assemble()

        with ThreadPoolExecutor(max_workers=1) as executor:
            running = executor.submit(slow_product.unpack)
            assert started.wait(timeout=5)

            assert fast_product.unpack() == "fast"
            assert not running.done()

            release.set()
            assert running.result(timeout=5) == "slow"

    def test_factory_may_read_a_dependency_from_a_worker_thread(self, market: Market) -> None:
        base = market.offer("base").as_product(factory=lambda: "base", lazy=True)

        with ThreadPoolExecutor(max_workers=1) as executor:
            top = market.offer("top").as_product(
                suppliers=[base],
                factory=lambda supplies: executor.submit(supplies, base).result(timeout=5),
            )

            assert top.assemble().unpack() == "base"

    def test_recall_during_computation_discards_the_stale_value(self, market: Market) -> None:
        started = threading.Event()
        release = threading.Event()
        counter: list[int] = []

        def slow() -> int:
            counter.append(1)
            if len(counter) == 1:
                started.set()
                release.wait(timeout=5)
            return len(counter)

        product = market.offer("slow").as_product(factory=slow).assemble()

        with ThreadPoolExecutor(max_workers=1) as executor:
            running = executor.submit(product.unpack)
            assert started.wait(timeout=5)
            product.recall()
            release.set()
            assert running.result(timeout=5) == 1

        assert product.unpack() == 2
