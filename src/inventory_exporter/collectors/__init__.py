"""Inventory collectors."""

from .packages import (
    PACKAGE_MANAGERS,
    CollectionError,
    PackageCollector,
    PackageManager,
    PackageQueryError,
)
from .ports import PortCollector

__all__ = [
    "PACKAGE_MANAGERS",
    "CollectionError",
    "PackageCollector",
    "PackageManager",
    "PackageQueryError",
    "PortCollector",
]
