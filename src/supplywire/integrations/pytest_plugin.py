from __future__ import annotations

from collections.abc import Iterator

import pytest

from supplywire.market import Market


@pytest.fixture()
def supplywire_market() -> Iterator[Market]:
    """Create a per-test market and close it after the test.

    Names are claimed per market, so every test can offer the same names
    without collisions. Closing the market at teardown cancels timeout and
    optimistic timers that are still pending, so they never fire into a later
    test.

    Override this fixture to configure the market, for example with a custom
    ``memo_fn``/``recall_fn`` pair.

    Yields:
        A new ``Market`` instance.

    """
    with Market() as market:
        yield market
