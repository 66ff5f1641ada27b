"""Shared pytest fixtures for supplywire tests."""

from collections.abc import Iterator

import pytest

from supplywire import LockMode, Market


@pytest.fixture()
def market() -> Iterator[Market]:
    """Default market, closed after the test."""
    with Market() as market:
        yield market


@pytest.fixture()
def unlocked_market() -> Iterator[Market]:
    """Market with locking disabled."""
    with Market(lock_mode=LockMode.NONE) as market:
        yield market
