# src/chatstore/storage/__init__.py
"""
Storage backends for the chatstore session store.

Backends persist a single versioned snapshot per store name. Use
`create_snapshot_storage` to build and initialize one from settings.
"""

from typing import Any, Dict

from ..exceptions import ConfigError
from .base_snapshot import BaseSnapshotStorage, Snapshot
from .json_snapshot import JsonSnapshotStorage
from .migrations import CURRENT_SNAPSHOT_VERSION, MIGRATIONS, migrate_state
from .volatile import VolatileSnapshotStorage

STORAGE_MAP = {
    "json": JsonSnapshotStorage,
    "volatile": VolatileSnapshotStorage,
}


async def create_snapshot_storage(storage_type: str, config: Dict[str, Any]) -> BaseSnapshotStorage:
    """Instantiate and initialize the backend registered as `storage_type`."""
    storage_cls = STORAGE_MAP.get(storage_type.lower())
    if storage_cls is None:
        raise ConfigError(f"Unsupported snapshot storage type: '{storage_type}'. Available: {list(STORAGE_MAP)}")
    storage = storage_cls()
    await storage.initialize(config)
    return storage


__all__ = [
    "BaseSnapshotStorage",
    "CURRENT_SNAPSHOT_VERSION",
    "JsonSnapshotStorage",
    "MIGRATIONS",
    "Snapshot",
    "VolatileSnapshotStorage",
    "create_snapshot_storage",
    "migrate_state",
]
