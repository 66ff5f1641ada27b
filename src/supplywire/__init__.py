from supplywire.exceptions import (
    SupplyWireCircularDependencyError,
    SupplyWireError,
    SupplyWireInvalidConfigError,
    SupplyWireNameCollisionError,
    SupplyWireNotRecallableError,
    SupplyWireOptimisticPendingError,
    SupplyWireUnsatisfiedDependencyError,
)
from supplywire.lock_mode import LockMode
from supplywire.market import Market, Offer
from supplywire.memo import CacheKey, DictMemoStore, MemoRequest
from supplywire.products import Product, ProductSupplier, index
from supplywire.resources import Resource, ResourceSupplier
from supplywire.supplies import Assemblers, Supplies

__all__ = [
    "Assemblers",
    "CacheKey",
    "DictMemoStore",
    "LockMode",
    "Market",
    "MemoRequest",
    "Offer",
    "Product",
    "ProductSupplier",
    "Resource",
    "ResourceSupplier",
    "Supplies",
    "SupplyWireCircularDependencyError",
    "SupplyWireError",
    "SupplyWireInvalidConfigError",
    "SupplyWireNameCollisionError",
    "SupplyWireNotRecallableError",
    "SupplyWireOptimisticPendingError",
    "SupplyWireUnsatisfiedDependencyError",
    "index",
]
