# src/chatstore/storage/volatile.py
"""
In-process snapshot storage.

Keeps snapshots in a dictionary for the lifetime of the process. Used for
throwaway stores and in tests; nothing survives a restart.
"""

import copy
import logging
from typing import Any, Dict, Optional

from .base_snapshot import BaseSnapshotStorage, Snapshot

logger = logging.getLogger(__name__)


class VolatileSnapshotStorage(BaseSnapshotStorage):
    """Dictionary-backed snapshot storage. Values are deep-copied in and out."""

    def __init__(self) -> None:
        self._snapshots: Dict[str, Snapshot] = {}
        self.save_count = 0

    async def initialize(self, config: Dict[str, Any]) -> None:
        logger.debug("Volatile snapshot storage initialized.")

    async def load(self, name: str) -> Optional[Snapshot]:
        snapshot = self._snapshots.get(name)
        return copy.deepcopy(snapshot) if snapshot is not None else None

    async def save(self, name: str, snapshot: Snapshot) -> None:
        self._snapshots[name] = copy.deepcopy(snapshot)
        self.save_count += 1

    async def clear(self, name: str) -> bool:
        return self._snapshots.pop(name, None) is not None
