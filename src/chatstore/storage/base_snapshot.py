# src/chatstore/storage/base_snapshot.py
"""
Abstract Base Class for snapshot storage backends.

The session store persists itself as one opaque, versioned snapshot
(a JSON-compatible dictionary) under a single fixed store name. Backends
only move that blob; they never look inside it.
"""

import abc
from typing import Any, Dict, Optional

Snapshot = Dict[str, Any]


class BaseSnapshotStorage(abc.ABC):
    """
    Abstract Base Class for key-value snapshot storage.

    Concrete implementations decide where the blob lives (a JSON file, an
    in-process dictionary, ...).
    """

    @abc.abstractmethod
    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the storage backend with the given configuration.

        Args:
            config: Backend-specific settings (e.g. `path` for file storage).
        """
        pass

    @abc.abstractmethod
    async def load(self, name: str) -> Optional[Snapshot]:
        """
        Read the snapshot stored under `name`.

        Returns:
            The snapshot dictionary, or None if nothing was saved yet.
        """
        pass

    @abc.abstractmethod
    async def save(self, name: str, snapshot: Snapshot) -> None:
        """Write (replace) the snapshot stored under `name`."""
        pass

    @abc.abstractmethod
    async def clear(self, name: str) -> bool:
        """
        Remove the snapshot stored under `name`.

        Returns:
            True if a snapshot existed and was removed.
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the backend."""
        pass
