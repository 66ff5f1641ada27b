from __future__ import annotations

import inspect
from collections.abc import Callable
from inspect import Parameter
from typing import Any

_POSITIONAL_KINDS = (Parameter.POSITIONAL_ONLY, Parameter.POSITIONAL_OR_KEYWORD)


class PositionalArity:
    """Count how many positional arguments a user callable accepts.

    Factories receive ``(supplies, assemblers)`` and ``init`` hooks receive
    ``(value, supplies)``, but both may declare fewer parameters. The count is
    taken once, when the supplier is declared, and capped at ``limit``.
    """

    def __init__(self, func: Callable[..., Any], limit: int) -> None:
        self.func = func
        self.count = self._count(func, limit)

    def __call__(self, *args: Any) -> Any:
        return self.func(*args[: self.count])

    def _count(self, func: Callable[..., Any], limit: int) -> int:
        try:
            parameters = tuple(inspect.signature(func).parameters.values())
        except (TypeError, ValueError):
            # builtins without introspectable signatures get every argument
            return limit

        count = 0
        for parameter in parameters:
            if parameter.kind is Parameter.VAR_POSITIONAL:
                return limit
            if parameter.kind in _POSITIONAL_KINDS:
                count += 1
        return min(count, limit)
