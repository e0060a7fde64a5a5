# src/chatstore/sessions/manager.py
"""
Session Store for chatstore.

This module defines the SessionStore class, the single source of truth for
the list of chat sessions, the active-session index and the chat
configuration. It is constructed once per application and passed to the
components that need it.

Every change goes through one commit step: the new session list, index and
config are assigned together, listeners are notified, and a debounced save
of the full snapshot is scheduled on the storage backend. Session contents
are changed copy-on-write through `mutate_session`: the updater works on a
deep copy and the resulting record replaces the old one in a new list, so a
reader holding the previous list never sees a half-applied change.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Set, Union

from pydantic import ValidationError

from ..config.models import ChatConfig, default_chat_config
from ..config.settings import DEFAULT_STORE_NAME
from ..exceptions import MigrationError, SessionNotFoundError, StorageError
from ..models import (ChatSession, ChatStat, Message, StoreSnapshot,
                      StoreState, create_empty_session, priming_messages)
from ..prompts import DEFAULT_TOPIC
from ..storage.base_snapshot import BaseSnapshotStorage, Snapshot
from ..storage.migrations import CURRENT_SNAPSHOT_VERSION, migrate_state

logger = logging.getLogger(__name__)

REVERT_WINDOW_SECONDS = 5.0

SessionUpdater = Callable[[ChatSession], Optional[ChatSession]]
MessageUpdater = Callable[[Message], Optional[Message]]
ConfigUpdater = Callable[[ChatConfig], Optional[ChatConfig]]
Listener = Callable[[], None]


def restore_state(raw: Snapshot) -> Optional[StoreState]:
    """
    Turn a raw persisted snapshot into a StoreState, migrating it first.

    Returns None if the snapshot cannot be validated even after migration;
    the caller then keeps its defaults.
    """
    version = raw.get("version", 0)
    if isinstance(version, bool) or not isinstance(version, int):
        logger.warning(f"Snapshot has a non-integer version {version!r}; treating it as v0.")
        version = 0
    state = raw.get("state")
    if not isinstance(state, dict):
        logger.error("Snapshot has no 'state' object; ignoring it.")
        return None

    try:
        state = migrate_state(state, version)
    except MigrationError as e:
        logger.error(f"{e}; loading the snapshot unmigrated.")

    try:
        return StoreState.model_validate(state)
    except ValidationError as e:
        logger.error(f"Persisted snapshot failed validation and was ignored: {e}")
        return None


class SessionDeletion:
    """
    Result of `SessionStore.delete_session`.

    `revert()` puts the deleted session back at its old position if it is
    called within the revert window.
    """

    def __init__(self, store: "SessionStore", session: ChatSession, index: int, was_last: bool, deleted_at: float):
        self._store = store
        self.session = session
        self.index = index
        self.was_last = was_last
        self.deleted_at = deleted_at
        self._reverted = False

    @property
    def expires_at(self) -> float:
        return self.deleted_at + REVERT_WINDOW_SECONDS

    def can_revert(self) -> bool:
        return not self._reverted and self._store.clock() < self.expires_at

    def revert(self) -> bool:
        """Restore the session. Returns False once the window closed or after a previous revert."""
        if not self.can_revert():
            logger.debug(f"Revert of session {self.session.id} refused (expired or already reverted).")
            return False
        self._reverted = True
        self._store._restore_deleted(self)
        return True


class SessionStore:
    """
    Owns the sessions, the active index and the chat configuration.

    Invariants kept by every operation:
      * the session list is never empty;
      * the active index is within [0, len(sessions) - 1];
      * each session's last_summarize_index is within [0, len(messages)].
    """

    def __init__(
        self,
        storage: Optional[BaseSnapshotStorage] = None,
        name: str = DEFAULT_STORE_NAME,
        persist_debounce_seconds: float = 0.5,
        state: Optional[StoreState] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initializes the SessionStore.

        Args:
            storage: Snapshot backend. None keeps the store purely in memory.
            name: Key the snapshot is saved under.
            persist_debounce_seconds: Delay between a commit and the save it
                triggers; further commits within the delay restart it.
            state: Initial state; defaults to one fresh session and default config.
            clock: Monotonic time source used for the revert window.
        """
        state = state or StoreState()
        self._storage = storage
        self.name = name
        self._debounce = persist_debounce_seconds
        self.clock = clock
        self._sessions: List[ChatSession] = list(state.sessions) or [create_empty_session()]
        self._current_index = self._clamp(state.current_session_index, len(self._sessions))
        self._config: ChatConfig = state.config
        self._listeners: List[Listener] = []
        self._dirty = False
        self._persist_handle: Optional[asyncio.TimerHandle] = None
        self._persist_tasks: Set[asyncio.Task] = set()
        logger.debug(f"SessionStore '{name}' initialized with {len(self._sessions)} session(s).")

    @classmethod
    async def create(
        cls,
        storage: Optional[BaseSnapshotStorage] = None,
        name: str = DEFAULT_STORE_NAME,
        persist_debounce_seconds: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ) -> "SessionStore":
        """Create a store and restore it from `storage` when a snapshot exists."""
        store = cls(storage, name, persist_debounce_seconds, clock=clock)
        await store.hydrate()
        return store

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def sessions(self) -> List[ChatSession]:
        """The committed session list (a new list object; do not mutate the records)."""
        return list(self._sessions)

    @property
    def current_session_index(self) -> int:
        return self._current_index

    def current_session(self) -> ChatSession:
        """Return the active session, clamping a stale index first."""
        clamped = self._clamp(self._current_index, len(self._sessions))
        if clamped != self._current_index:
            self._commit(current_index=clamped)
        return self._sessions[self._current_index]

    def session_index(self, session_id: int) -> int:
        for i, session in enumerate(self._sessions):
            if session.id == session_id:
                return i
        raise SessionNotFoundError(session_id)

    def get_session(self, session_id: int) -> ChatSession:
        return self._sessions[self.session_index(session_id)]

    def has_session(self, session_id: int) -> bool:
        return any(s.id == session_id for s in self._sessions)

    def get_config(self) -> ChatConfig:
        return self._config

    @property
    def config(self) -> ChatConfig:
        return self._config

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback run after every commit. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Store listener {listener!r} raised: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    @staticmethod
    def _clamp(index: int, length: int) -> int:
        return min(length - 1, max(0, index))

    def _commit(
        self,
        sessions: Optional[List[ChatSession]] = None,
        current_index: Optional[int] = None,
        config: Optional[ChatConfig] = None,
    ) -> None:
        """The only writer of store state: one assignment, then notify and persist."""
        new_sessions = list(sessions) if sessions is not None else self._sessions
        if not new_sessions:
            new_sessions = [create_empty_session()]
        new_index = self._current_index if current_index is None else current_index
        self._sessions, self._current_index, self._config = (
            new_sessions,
            self._clamp(new_index, len(new_sessions)),
            config if config is not None else self._config,
        )
        self._notify()
        self._schedule_persist()

    # ------------------------------------------------------------------
    # Session list operations
    # ------------------------------------------------------------------

    def clear_sessions(self) -> None:
        """Replace every session with a single fresh one."""
        logger.info("Clearing all sessions.")
        self._commit(sessions=[create_empty_session()], current_index=0)

    def select_session(self, index: int) -> None:
        self._commit(current_index=index)

    def create_session(self) -> ChatSession:
        """Insert a fresh session at the front and make it active."""
        session = create_empty_session()
        self._commit(sessions=[session] + self._sessions, current_index=0)
        logger.info(f"Created session {session.id}.")
        return session

    new_session = create_session

    def remove_session(self, index: int) -> ChatSession:
        """
        Delete the session at `index` and return it.

        Removing the only session replaces it with a fresh one. Otherwise a
        session before the active one shifts the active index down so the
        same session stays active; removing the active session activates its
        predecessor (or the new first session).
        """
        if not 0 <= index < len(self._sessions):
            raise IndexError(f"Session index {index} out of range (0..{len(self._sessions) - 1}).")
        removed = self._sessions[index]

        if len(self._sessions) == 1:
            logger.info(f"Removed last session {removed.id}; starting a fresh one.")
            self._commit(sessions=[create_empty_session()], current_index=0)
            return removed

        sessions = self._sessions[:index] + self._sessions[index + 1:]
        next_index = self._current_index
        if index <= next_index:
            next_index -= 1
        self._commit(sessions=sessions, current_index=max(0, next_index))
        logger.info(f"Removed session {removed.id} at index {index}.")
        return removed

    def delete_session(self, index: Optional[int] = None) -> SessionDeletion:
        """Remove a session (default: the active one) and return a revertable deletion."""
        if index is None:
            index = self._current_index
        was_last = len(self._sessions) == 1
        removed = self.remove_session(index)
        return SessionDeletion(self, removed, index, was_last, self.clock())

    def _restore_deleted(self, deletion: SessionDeletion) -> None:
        index = min(deletion.index, len(self._sessions))
        sessions = (
            self._sessions[:index]
            + [deletion.session]
            + self._sessions[index + int(deletion.was_last):]
        )
        self._commit(sessions=sessions)
        logger.info(f"Restored deleted session {deletion.session.id} at index {index}.")

    def move_session(self, from_index: int, to_index: int) -> None:
        """Move a session in the list; the active session stays active."""
        n = len(self._sessions)
        if not (0 <= from_index < n and 0 <= to_index < n):
            raise IndexError(f"Cannot move session {from_index} -> {to_index} in a list of {n}.")
        sessions = list(self._sessions)
        session = sessions.pop(from_index)
        sessions.insert(to_index, session)

        old_index = self._current_index
        new_index = to_index if old_index == from_index else old_index
        if from_index < old_index <= to_index:
            new_index -= 1
        elif to_index <= old_index < from_index:
            new_index += 1
        self._commit(sessions=sessions, current_index=new_index)

    # ------------------------------------------------------------------
    # Session content mutation
    # ------------------------------------------------------------------

    def mutate_session(self, session_id: int, updater: SessionUpdater) -> ChatSession:
        """
        Apply `updater` to a copy of the session and commit the result.

        The updater may change the copy in place or return a replacement.
        Returns the committed session.

        Raises:
            SessionNotFoundError: If no session has `session_id`.
        """
        index = self.session_index(session_id)
        draft = self._sessions[index].model_copy(deep=True)
        result = updater(draft)
        updated = result if isinstance(result, ChatSession) else draft
        if updated.last_summarize_index > len(updated.messages):
            updated.last_summarize_index = len(updated.messages)

        sessions = list(self._sessions)
        sessions[index] = updated
        self._commit(sessions=sessions)
        return updated

    def mutate_active_session(self, updater: SessionUpdater) -> ChatSession:
        """Apply `updater` to the active session (see `mutate_session`)."""
        return self.mutate_session(self.current_session().id, updater)

    update_current_session = mutate_active_session

    def update_message(self, session_id: int, message_id: int, updater: MessageUpdater) -> Optional[Message]:
        """
        Apply `updater` to one history message of a session.

        Returns the updated message, or None if the session has no such
        message (nothing is committed then).
        """
        if not self.has_session(session_id):
            return None
        if self.get_session(session_id).find_message(message_id) is None:
            return None
        updated: List[Message] = []

        def apply(session: ChatSession) -> None:
            for i, message in enumerate(session.messages):
                if message.id == message_id:
                    result = updater(message)
                    if isinstance(result, Message):
                        session.messages[i] = result
                    updated.append(session.messages[i])
                    return

        self.mutate_session(session_id, apply)
        return updated[0] if updated else None

    def reset_session(self) -> ChatSession:
        """Clear the active session's history and memory; restore its priming context."""

        def reset(session: ChatSession) -> None:
            session.messages = []
            session.memory_prompt = ""
            session.context = priming_messages()
            session.topic = DEFAULT_TOPIC
            session.stat = ChatStat()
            session.last_summarize_index = 0

        session = self.mutate_active_session(reset)
        logger.info(f"Reset session {session.id}.")
        return session

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def update_config(self, updater: ConfigUpdater) -> ChatConfig:
        """Apply `updater` to a copy of the config, re-validate and commit it."""
        draft = self._config.model_copy(deep=True)
        result = updater(draft)
        candidate = result if isinstance(result, ChatConfig) else draft
        config = ChatConfig.model_validate(candidate.model_dump())
        self._commit(config=config)
        return config

    def reset_config(self) -> ChatConfig:
        config = default_chat_config()
        self._commit(config=config)
        return config

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_snapshot(self) -> Snapshot:
        """Serialize the whole store into one versioned snapshot."""
        snapshot = StoreSnapshot(
            version=CURRENT_SNAPSHOT_VERSION,
            state=StoreState(
                sessions=self._sessions,
                current_session_index=self._current_index,
                config=self._config,
            ),
        )
        return snapshot.model_dump(mode="json")

    async def hydrate(self) -> bool:
        """
        Replace the in-memory state with the persisted snapshot, if any.

        Returns True if a snapshot was restored. Storage and validation
        problems are logged and leave the current state untouched.
        """
        if self._storage is None:
            return False
        try:
            raw = await self._storage.load(self.name)
        except StorageError as e:
            logger.error(f"Could not load store snapshot '{self.name}': {e}")
            return False
        if raw is None:
            logger.info(f"No persisted snapshot '{self.name}'; starting with defaults.")
            return False

        state = restore_state(raw)
        if state is None:
            return False
        self._sessions = list(state.sessions) or [create_empty_session()]
        self._current_index = self._clamp(state.current_session_index, len(self._sessions))
        self._config = state.config
        self._notify()
        logger.info(f"Restored {len(self._sessions)} session(s) from snapshot '{self.name}'.")
        return True

    def _schedule_persist(self) -> None:
        if self._storage is None:
            return
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the next flush() picks the change up.
            return
        if self._persist_handle is not None:
            self._persist_handle.cancel()
        self._persist_handle = loop.call_later(self._debounce, self._start_persist)

    def _start_persist(self) -> None:
        self._persist_handle = None
        task = asyncio.ensure_future(self.flush())
        self._persist_tasks.add(task)
        task.add_done_callback(self._persist_tasks.discard)

    async def flush(self) -> bool:
        """
        Save the current state now if it changed since the last save.

        Returns False if a save was needed but failed (the store stays dirty
        and the next commit retries).
        """
        if self._persist_handle is not None:
            self._persist_handle.cancel()
            self._persist_handle = None
        if self._storage is None or not self._dirty:
            return True
        self._dirty = False
        snapshot = self.to_snapshot()
        try:
            await self._storage.save(self.name, snapshot)
        except StorageError as e:
            self._dirty = True
            logger.error(f"Failed to persist store snapshot '{self.name}': {e}")
            return False
        logger.debug(f"Persisted store snapshot '{self.name}'.")
        return True

    async def clear_persisted(self) -> bool:
        """Delete the persisted snapshot. Returns True if one existed."""
        if self._persist_handle is not None:
            self._persist_handle.cancel()
            self._persist_handle = None
        self._dirty = False
        if self._storage is None:
            return False
        return await self._storage.clear(self.name)

    async def close(self) -> None:
        """Flush pending changes and wait for in-flight saves."""
        await self.flush()
        if self._persist_tasks:
            await asyncio.gather(*self._persist_tasks, return_exceptions=True)
