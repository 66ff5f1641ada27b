from __future__ import annotations

from supplywire import Market
from supplywire._internal.graph import find_cycle, plan_team


def test_plan_collects_products_and_missing_resources() -> None:
    market = Market()
    config = market.offer("config").as_resource()
    db = market.offer("db").as_product(suppliers=[config], factory=lambda: 1)
    root = market.offer("root").as_product(suppliers=[db], factory=lambda: 2)

    team, missing = plan_team([root], {})

    assert team == {"db": db}
    assert missing == ("config",)


def test_supplied_names_are_not_walked() -> None:
    market = Market()
    config = market.offer("config").as_resource()
    db = market.offer("db").as_product(suppliers=[config], factory=lambda: 1)
    root = market.offer("root").as_product(suppliers=[db], factory=lambda: 2)

    team, missing = plan_team([root], {"db": db.pack(1)})

    assert team == {}
    assert missing == ()


def test_shallow_declaration_claims_the_name() -> None:
    market = Market()
    db = market.offer("db").as_product(factory=lambda: "real")
    repo = market.offer("repo").as_product(suppliers=[db], factory=lambda: 1)
    fake_db = db.prototype(factory=lambda: "fake")
    root = market.offer("root").as_product(suppliers=[repo, fake_db], factory=lambda: 2)

    team, _ = plan_team([root], {})

    assert team["db"] is fake_db


def test_optionals_and_assemblers_are_not_planned() -> None:
    market = Market()
    config = market.offer("config").as_resource()
    cache = market.offer("cache").as_product(suppliers=[config], factory=lambda: 1)
    job = market.offer("job").as_product(suppliers=[config], factory=lambda: 2)
    root = market.offer("root").as_product(optionals=[cache], assemblers=[job], factory=lambda: 3)

    assert plan_team([root], {}) == ({}, ())


def test_missing_names_are_reported_once() -> None:
    market = Market()
    config = market.offer("config").as_resource()
    left = market.offer("left").as_product(suppliers=[config], factory=lambda: 1)
    right = market.offer("right").as_product(suppliers=[config], factory=lambda: 2)
    root = market.offer("root").as_product(suppliers=[left, right], factory=lambda: 3)

    _, missing = plan_team([root], {})

    assert missing == ("config",)


def test_find_cycle_ignores_resources_and_acyclic_graphs() -> None:
    market = Market()
    config = market.offer("config").as_resource()
    db = market.offer("db").as_product(suppliers=[config], factory=lambda: 1)

    assert find_cycle("root", [db, config]) is None


def test_find_cycle_returns_path_back_to_name() -> None:
    market = Market()
    root = market.offer("root").as_product(factory=lambda: 1)
    middle = market.offer("middle").as_product(suppliers=[root], factory=lambda: 2)

    assert find_cycle("root", [middle]) == ("root", "middle", "root")
