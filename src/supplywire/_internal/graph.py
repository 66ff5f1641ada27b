from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from supplywire.resources import ResourceSupplier

if TYPE_CHECKING:
    from supplywire.products import ProductSupplier


def find_cycle(name: str, children: Iterable[Any]) -> tuple[str, ...] | None:
    """Return a path from name back to itself through required or optional suppliers."""
    stack: list[tuple[Any, tuple[str, ...]]] = [
        (child, (name, child.name)) for child in children
    ]
    seen: set[int] = set()
    while stack:
        supplier, path = stack.pop()
        if isinstance(supplier, ResourceSupplier):
            continue
        if supplier.name == name:
            return path
        if id(supplier) in seen:
            continue
        seen.add(id(supplier))
        for child in (*supplier.suppliers, *supplier.optionals):
            stack.append((child, (*path, child.name)))
    return None


def plan_team(
    roots: Iterable[ProductSupplier],
    supplied: Mapping[str, Any],
) -> tuple[dict[str, ProductSupplier], tuple[str, ...]]:
    """Collect the product suppliers an assembly must pend, and the missing resources.

    The walk is breadth-first from ``roots`` so a supplier listed closer to the
    root claims its name before deeper declarations of the same name. Names
    already in ``supplied`` are not walked; supplied product suppliers waiting
    for re-assembly are passed as extra roots instead.
    """
    team: dict[str, ProductSupplier] = {}
    missing: dict[str, None] = {}
    queue: deque[ProductSupplier] = deque(roots)

    seen: set[int] = set()
    while queue:
        supplier = queue.popleft()
        if id(supplier) in seen:
            continue
        seen.add(id(supplier))
        for child in supplier.suppliers:
            if child.name in supplied or child.name in team:
                continue
            if isinstance(child, ResourceSupplier):
                missing[child.name] = None
                continue
            team[child.name] = child
            queue.append(child)
    return team, tuple(missing)
