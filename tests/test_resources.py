"""Tests for resource suppliers and packed resources."""

from __future__ import annotations

import pytest

from supplywire import Market, Resource, SupplyWireInvalidConfigError, index


class TestResourcePack:
    def test_pack_wraps_value(self, market: Market) -> None:
        config = market.offer("config").as_resource()

        resource = config.pack({"debug": True})

        assert isinstance(resource, Resource)
        assert resource.name == "config"
        assert resource.unpack() == {"debug": True}
        assert resource.supplier is config

    def test_repack_returns_new_resource_and_keeps_original(self, market: Market) -> None:
        config = market.offer("config").as_resource()
        first = config.pack(1)

        second = first.pack(2)

        assert second is not first
        assert first.unpack() == 1
        assert second.unpack() == 2
        assert second.supplier is config

    def test_resources_are_immutable(self, market: Market) -> None:
        resource = market.offer("config").as_resource().pack(1)

        with pytest.raises(AttributeError):
            resource.value = 2  # type: ignore[misc]

    def test_pack_none_is_rejected(self, market: Market) -> None:
        config = market.offer("config").as_resource()

        with pytest.raises(SupplyWireInvalidConfigError, match="value is required"):
            config.pack(None)

    def test_falsy_values_are_accepted(self, market: Market) -> None:
        config = market.offer("config").as_resource()

        assert config.pack(0).unpack() == 0
        assert config.pack("").unpack() == ""


class TestIndex:
    def test_index_keys_supplies_by_name(self, market: Market) -> None:
        a = market.offer("a").as_resource().pack(1)
        b = market.offer("b").as_resource().pack(2)

        assert index(a, b) == {"a": a, "b": b}

    def test_index_later_supply_wins(self, market: Market) -> None:
        config = market.offer("config").as_resource()
        first = config.pack(1)
        second = config.pack(2)

        assert index(first, second) == {"config": second}

    def test_index_accepts_products(self, market: Market) -> None:
        service = market.offer("service").as_product(factory=lambda: 1)
        packed = service.pack(5)

        assert index(packed) == {"service": packed}

    def test_index_rejects_suppliers(self, market: Market) -> None:
        config = market.offer("config").as_resource()

        with pytest.raises(SupplyWireInvalidConfigError, match="supplies"):
            index(config)  # type: ignore[arg-type]

    def test_empty_index(self) -> None:
        assert index() == {}
