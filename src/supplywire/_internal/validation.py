from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from supplywire.exceptions import SupplyWireInvalidConfigError


def validate_name(name: object) -> str:
    if not isinstance(name, str):
        msg = f"name must be a string, got {type(name).__name__}"
        raise SupplyWireInvalidConfigError(msg)
    if not name:
        msg = "name cannot be an empty string"
        raise SupplyWireInvalidConfigError(msg)
    return name


def validate_defined(value: object, label: str) -> None:
    if value is None:
        msg = f"{label} is required, got None"
        raise SupplyWireInvalidConfigError(msg)


def validate_callable(value: object, label: str, *, required: bool = False) -> None:
    if value is None and not required:
        return
    if not callable(value):
        msg = f"{label} must be callable, got {type(value).__name__}"
        raise SupplyWireInvalidConfigError(msg)


def validate_flag(value: object, label: str) -> bool:
    if not isinstance(value, bool):
        msg = f"{label} must be a boolean, got {type(value).__name__}"
        raise SupplyWireInvalidConfigError(msg)
    return value


def validate_timeout(value: object, label: str) -> float | None:
    """Accept None or a non-negative number of seconds."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        msg = f"{label} must be a number of seconds, got {type(value).__name__}"
        raise SupplyWireInvalidConfigError(msg)
    if value < 0:
        msg = f"{label} cannot be negative, got {value}"
        raise SupplyWireInvalidConfigError(msg)
    return float(value)


def validate_members(
    values: object,
    label: str,
    kinds: tuple[type, ...],
) -> tuple[Any, ...]:
    """Return values as a tuple after checking every item is one of kinds."""
    if isinstance(values, (str, bytes, Mapping)) or not isinstance(values, Iterable):
        msg = f"{label} must be a sequence, got {type(values).__name__}"
        raise SupplyWireInvalidConfigError(msg)

    members = tuple(values)
    expected = " or ".join(kind.__name__ for kind in kinds)
    for index, member in enumerate(members):
        if not isinstance(member, kinds):
            msg = f"{label}[{index}] must be a {expected}, got {type(member).__name__}"
            raise SupplyWireInvalidConfigError(msg)
    return members


def validate_supply_map(
    values: object,
    label: str,
    kinds: tuple[type, ...],
    *,
    allow_none: bool = False,
) -> Mapping[str, Any]:
    """Check a mapping of supplies keyed by the name of each supply."""
    if not isinstance(values, Mapping):
        msg = f"{label} must be a mapping, got {type(values).__name__}"
        raise SupplyWireInvalidConfigError(msg)

    expected = " or ".join(kind.__name__ for kind in kinds)
    for name, supply in values.items():
        if not isinstance(name, str):
            msg = f"{label} keys must be strings, got {type(name).__name__}"
            raise SupplyWireInvalidConfigError(msg)
        if supply is None and allow_none:
            continue
        if not isinstance(supply, kinds):
            msg = f"{label}[{name!r}] must be a {expected}, got {type(supply).__name__}"
            raise SupplyWireInvalidConfigError(msg)
        if supply.name != name:
            msg = f"{label}[{name!r}] holds a supply named {supply.name!r}"
            raise SupplyWireInvalidConfigError(msg)
    return values


def validate_hook_pair(
    memo_fn: Callable[..., Any] | None,
    recall_fn: Callable[..., Any] | None,
) -> None:
    validate_callable(memo_fn, "memo_fn")
    validate_callable(recall_fn, "recall_fn")
    if (memo_fn is None) != (recall_fn is None):
        msg = "memo_fn and recall_fn must be supplied together"
        raise SupplyWireInvalidConfigError(msg)
