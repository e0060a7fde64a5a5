# src/chatstore/storage/json_snapshot.py
"""
JSON file-based snapshot storage.

This module implements the BaseSnapshotStorage interface, storing each
named snapshot as one JSON file in a configured directory. It uses aiofiles
for asynchronous file operations and writes through a temporary file so a
crash mid-write never leaves a truncated snapshot behind.
"""

import json
import logging
import os
import pathlib
import re
from typing import Any, Dict, Optional

import aiofiles
import aiofiles.os as aios

from ..exceptions import ConfigError, SnapshotStorageError
from .base_snapshot import BaseSnapshotStorage, Snapshot

logger = logging.getLogger(__name__)


class JsonSnapshotStorage(BaseSnapshotStorage):
    """
    Manages persistence of store snapshots in JSON files.

    Each snapshot name maps to `<path>/<name>.json`.
    """
    _storage_dir: pathlib.Path
    _file_extension: str

    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the JSON snapshot storage.

        Args:
            config: Configuration dictionary. Expected keys:
                    'path': The directory for snapshot files.
                    'file_extension' (optional): Extension for snapshot files (default: '.json').

        Raises:
            ConfigError: If the 'path' is not provided in the config.
            SnapshotStorageError: If the storage directory cannot be created.
        """
        storage_path_str = config.get("path")
        if not storage_path_str:
            raise ConfigError("JSON snapshot storage 'path' not specified in configuration.")

        self._storage_dir = pathlib.Path(os.path.expanduser(storage_path_str))
        self._file_extension = config.get("file_extension", ".json")
        if not self._file_extension.startswith('.'):
            self._file_extension = f".{self._file_extension}"

        try:
            await aios.makedirs(self._storage_dir, exist_ok=True)
            logger.info(f"JSON snapshot storage initialized at: {self._storage_dir.resolve()}")
        except OSError as e:
            logger.error(f"Failed to create JSON storage directory {self._storage_dir}: {e}")
            raise SnapshotStorageError(f"Could not create storage directory: {e}")

    def _get_snapshot_path(self, name: str) -> pathlib.Path:
        """Constructs the file path for a snapshot name."""
        sane_filename = re.sub(r'[^\w\-. ]', '_', name)
        return self._storage_dir / f"{sane_filename}{self._file_extension}"

    async def load(self, name: str) -> Optional[Snapshot]:
        """
        Read the snapshot file for `name`.

        Raises:
            SnapshotStorageError: If the file is corrupted or cannot be read.
        """
        snapshot_path = self._get_snapshot_path(name)
        try:
            if not await aios.path.exists(snapshot_path):
                logger.debug(f"No snapshot file for '{name}' at {snapshot_path}")
                return None
            async with aiofiles.open(snapshot_path, mode="r", encoding="utf-8") as f:
                content = await f.read()
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Error decoding JSON snapshot '{name}' from {snapshot_path}: {e}")
            raise SnapshotStorageError(f"Corrupted snapshot file for '{name}': {e}")
        except OSError as e:
            logger.error(f"Error reading snapshot file {snapshot_path}: {e}")
            raise SnapshotStorageError(f"Failed to read snapshot file for '{name}': {e}")
        if not isinstance(data, dict):
            raise SnapshotStorageError(f"Snapshot file for '{name}' does not contain a JSON object.")
        logger.debug(f"Snapshot '{name}' loaded from {snapshot_path}")
        return data

    async def save(self, name: str, snapshot: Snapshot) -> None:
        """
        Write the snapshot for `name`.

        Raises:
            SnapshotStorageError: If serialization or file I/O fails.
        """
        snapshot_path = self._get_snapshot_path(name)
        tmp_path = snapshot_path.with_suffix(snapshot_path.suffix + ".tmp")
        try:
            payload = json.dumps(snapshot, indent=2, ensure_ascii=False)
            async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
                await f.write(payload)
            await aios.replace(tmp_path, snapshot_path)
            logger.debug(f"Snapshot '{name}' saved to {snapshot_path}")
        except TypeError as e:
            logger.error(f"Error serializing snapshot '{name}' to JSON: {e}")
            raise SnapshotStorageError(f"Failed to serialize snapshot '{name}': {e}")
        except OSError as e:
            logger.error(f"Error writing snapshot '{name}' to {snapshot_path}: {e}")
            raise SnapshotStorageError(f"Failed to write snapshot file for '{name}': {e}")

    async def clear(self, name: str) -> bool:
        """
        Delete the snapshot file for `name`.

        Raises:
            SnapshotStorageError: If the file exists but cannot be removed.
        """
        snapshot_path = self._get_snapshot_path(name)
        try:
            if await aios.path.exists(snapshot_path):
                await aios.remove(snapshot_path)
                logger.info(f"Snapshot '{name}' deleted from {snapshot_path}")
                return True
            logger.debug(f"No snapshot '{name}' to delete at {snapshot_path}")
            return False
        except OSError as e:
            logger.error(f"Error deleting snapshot file {snapshot_path}: {e}")
            raise SnapshotStorageError(f"Failed to delete snapshot file for '{name}': {e}")
