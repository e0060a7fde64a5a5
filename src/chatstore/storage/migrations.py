# src/chatstore/storage/migrations.py
"""
Schema migrations for persisted store snapshots.

A snapshot carries an integer schema version. When a snapshot older than
``CURRENT_SNAPSHOT_VERSION`` is loaded, every migration step whose version
range covers the stored version is applied in list order to the raw
dictionary, before it is validated into models. Steps are cumulative, so a
snapshot several versions behind passes through each relevant step.

Snapshot Version History:
    v1: Sessions carried a free-form priming context.
    v2: Fixed priming context; long-term memory always enabled on load.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from ..exceptions import MigrationError

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

CURRENT_SNAPSHOT_VERSION = 2

StateDict = Dict[str, Any]


@dataclass
class SnapshotMigration:
    """
    One migration step.

    Applies to a stored snapshot whose version `v` satisfies
    ``from_version <= v < to_version``.
    """

    from_version: int
    to_version: int
    description: str
    apply: Callable[[StateDict], None]

    def applies_to(self, version: int) -> bool:
        return self.from_version <= version < self.to_version


def _sessions(state: StateDict) -> List[Dict[str, Any]]:
    sessions = state.get("sessions")
    return [s for s in sessions if isinstance(s, dict)] if isinstance(sessions, list) else []


def _clear_session_context(state: StateDict) -> None:
    for session in _sessions(state):
        session["context"] = []


def _enable_session_memory(state: StateDict) -> None:
    for session in _sessions(state):
        session["send_memory"] = True


# =============================================================================
# MIGRATION DEFINITIONS
# =============================================================================

MIGRATIONS: List[SnapshotMigration] = [
    SnapshotMigration(
        from_version=1,
        to_version=2,
        description="Clear priming context saved by v1 stores",
        apply=_clear_session_context,
    ),
    SnapshotMigration(
        from_version=0,
        to_version=2,
        description="Enable long-term memory on every session",
        apply=_enable_session_memory,
    ),
]


def migrate_state(state: StateDict, version: int) -> StateDict:
    """
    Bring a raw persisted state from `version` to the current version.

    Versions with no matching step are left unchanged. A version newer than
    the current one is returned as-is.

    Args:
        state: The raw `state` dictionary of a snapshot. Not modified.
        version: The schema version the snapshot was written with.

    Returns:
        A migrated copy of the state.

    Raises:
        MigrationError: If a migration step fails.
    """
    if version >= CURRENT_SNAPSHOT_VERSION:
        if version > CURRENT_SNAPSHOT_VERSION:
            logger.warning(
                f"Snapshot version {version} is newer than supported version "
                f"{CURRENT_SNAPSHOT_VERSION}; loading without migration."
            )
        return state

    migrated = copy.deepcopy(state)
    applied = 0
    logger.info(f"Migrating store snapshot from v{version} to v{CURRENT_SNAPSHOT_VERSION}...")
    for migration in MIGRATIONS:
        if not migration.applies_to(version):
            continue
        logger.info(
            f"Applying migration: v{migration.from_version} -> v{migration.to_version}: {migration.description}"
        )
        try:
            migration.apply(migrated)
        except Exception as e:
            logger.error(f"Migration '{migration.description}' failed: {e}")
            raise MigrationError(version, f"Migration '{migration.description}' failed: {e}")
        applied += 1

    if not applied:
        logger.warning(f"No migration step defined for snapshot version {version}; state left unchanged.")
    return migrated
