from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Generator
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class SharedAwaitable(Generic[T]):
    """Await an awaitable once and hand its outcome to every awaiter.

    A coroutine can only be awaited once. Async factories called while no
    event loop runs produce one, so it is wrapped here: the first ``await``
    starts a task on the awaiting loop and later awaits join that task.
    """

    def __init__(self, awaitable: Awaitable[T]) -> None:
        self._awaitable = awaitable
        self._task: asyncio.Future[T] | None = None
        self._lock = threading.Lock()

    def __await__(self) -> Generator[Any, None, T]:
        return self._shared().__await__()

    def _shared(self) -> asyncio.Future[T]:
        with self._lock:
            if self._task is None:
                self._task = asyncio.ensure_future(self._awaitable)
            return self._task

    def __repr__(self) -> str:
        state = "pending" if self._task is None or not self._task.done() else "done"
        return f"<SharedAwaitable ({state})>"
