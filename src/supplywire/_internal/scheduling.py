from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from typing import Any, Protocol


class Cancellable(Protocol):
    def cancel(self) -> Any: ...


def running_loop() -> asyncio.AbstractEventLoop | None:
    """Return the event loop running in the current thread, if any."""
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Scheduler:
    """Run deferred callbacks on the host's event loop or, without one, on timers.

    Every delayed handle is tracked until it fires so that ``cancel_all`` can
    stop outstanding work when the owning market is closed.
    """

    def __init__(self) -> None:
        self._handles: set[Cancellable] = set()
        self._lock = threading.Lock()

    def soon(self, callback: Callable[[], Any]) -> None:
        """Run callback on the next loop iteration, or inline without a running loop."""
        loop = running_loop()
        if loop is None:
            callback()
            return
        loop.call_soon(callback)

    def later(self, delay: float, callback: Callable[[], Any]) -> Cancellable:
        """Run callback after delay seconds and return a cancellable handle."""
        handle: Cancellable

        def fire() -> None:
            with self._lock:
                self._handles.discard(handle)
            callback()

        loop = running_loop()
        if loop is not None:
            handle = loop.call_later(delay, fire)
            with self._lock:
                self._handles.add(handle)
            return handle

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        handle = timer
        with self._lock:
            self._handles.add(handle)
        timer.start()
        return handle

    def cancel(self, handle: Cancellable) -> None:
        handle.cancel()
        with self._lock:
            self._handles.discard(handle)

    def cancel_all(self) -> None:
        """Cancel every handle that has not fired yet."""
        with self._lock:
            handles = list(self._handles)
            self._handles.clear()
        for handle in handles:
            handle.cancel()

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
