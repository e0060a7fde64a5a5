# src/chatstore/api.py
"""
Application facade for chatstore.

`ChatStoreApp` wires the session store, the storage backend, the completion
provider, the cancellation registry, the ingestion controller and the
summarization engine together, and exposes the operations a UI needs.
Confirmation dialogs and the page reload after "clear all data" are
injected as plain callables so the core never touches a UI primitive.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .config.models import ChatConfig
from .config.settings import AppSettings, load_settings
from .exceptions import ConfigError, StorageError
from .logging_config import configure_logging, log_display
from .memory.summarizer import SummarizationEngine
from .models import ChatSession, Message
from .prompts import CLEAR_ALL_CONFIRM, DELETE_CHAT_CONFIRM
from .providers.base import BaseProvider
from .providers.openai_provider import OpenAIProvider
from .sessions.cancellation import CancellationRegistry
from .sessions.ingestion import StreamingIngestionController
from .sessions.manager import ConfigUpdater, SessionDeletion, SessionStore
from .storage import create_snapshot_storage
from .storage.base_snapshot import BaseSnapshotStorage

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]
ReloadFn = Callable[[], None]

PROVIDER_MAP = {
    "openai": OpenAIProvider,
}


class ChatStoreApp:
    """
    Entry point for UI layers.

    Initialized asynchronously with `ChatStoreApp.create()`, which loads
    settings, opens the storage backend, restores the persisted store and
    builds the provider.
    """
    settings: AppSettings
    store: SessionStore
    registry: CancellationRegistry
    _storage: BaseSnapshotStorage
    _provider: BaseProvider
    _engine: SummarizationEngine
    _controller: StreamingIngestionController

    def __init__(self, confirm: Optional[ConfirmFn] = None, reload: Optional[ReloadFn] = None):
        """
        Private constructor. Use `ChatStoreApp.create()` for initialization.
        """
        self._confirm = confirm
        self._reload = reload

    @classmethod
    async def create(
        cls,
        config_overrides: Optional[Dict[str, Any]] = None,
        config_file_path: Optional[str] = None,
        env_prefix: Optional[str] = "CHATSTORE",
        *,
        settings: Optional[AppSettings] = None,
        storage: Optional[BaseSnapshotStorage] = None,
        provider: Optional[BaseProvider] = None,
        confirm: Optional[ConfirmFn] = None,
        reload: Optional[ReloadFn] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "ChatStoreApp":
        """
        Asynchronously create and initialize a ChatStoreApp.

        Args:
            config_overrides: Settings overrides, nested by section.
            config_file_path: Optional TOML settings file.
            env_prefix: Prefix of environment overrides; None disables them.
            settings: Pre-built settings; skips loading entirely.
            storage: Pre-built storage backend (otherwise built from settings).
            provider: Pre-built completion provider (otherwise built from settings).
            confirm: Asks the user a yes/no question; None means "always yes".
            reload: Called after all data was cleared.
            clock: Monotonic clock for the delete revert window.
        """
        instance = cls(confirm=confirm, reload=reload)
        await instance._initialize(settings, config_overrides, config_file_path, env_prefix, storage, provider, clock)
        return instance

    async def _initialize(
        self,
        settings: Optional[AppSettings],
        config_overrides: Optional[Dict[str, Any]],
        config_file_path: Optional[str],
        env_prefix: Optional[str],
        storage: Optional[BaseSnapshotStorage],
        provider: Optional[BaseProvider],
        clock: Callable[[], float],
    ) -> None:
        logger.info("Initializing chatstore components...")
        self.settings = settings or load_settings(config_file_path, config_overrides, env_prefix)
        if self.settings.logging:
            configure_logging("chatstore", self.settings.logging)

        if storage is None:
            storage = await create_snapshot_storage(self.settings.storage.type, self.settings.storage.model_dump())
        self._storage = storage

        if provider is None:
            provider_cls = PROVIDER_MAP.get(self.settings.provider.name)
            if provider_cls is None:
                raise ConfigError(f"Unsupported provider: '{self.settings.provider.name}'")
            provider = provider_cls(self.settings.provider.model_dump())
        self._provider = provider

        self.store = await SessionStore.create(
            storage=self._storage,
            name=self.settings.store.name,
            persist_debounce_seconds=self.settings.store.persist_debounce_seconds,
            clock=clock,
        )
        self.registry = CancellationRegistry()
        self._engine = SummarizationEngine(self.store, self._provider)
        self._controller = StreamingIngestionController(self.store, self._provider, self.registry, self._engine)
        logger.info(f"chatstore ready with {len(self.store.sessions)} session(s) using provider '{self._provider.get_name()}'.")

    def _ask(self, prompt: str) -> bool:
        if self._confirm is None:
            return True
        return bool(self._confirm(prompt))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @property
    def sessions(self) -> List[ChatSession]:
        return self.store.sessions

    @property
    def current_session_index(self) -> int:
        return self.store.current_session_index

    def current_session(self) -> ChatSession:
        return self.store.current_session()

    def new_session(self) -> ChatSession:
        return self.store.create_session()

    def select_session(self, index: int) -> None:
        self.store.select_session(index)

    def move_session(self, from_index: int, to_index: int) -> None:
        self.store.move_session(from_index, to_index)

    def delete_session(self, index: Optional[int] = None, ask: bool = True) -> Optional[SessionDeletion]:
        """
        Delete a session (default: the active one).

        Returns the revertable deletion, or None when the user declined.
        """
        if ask and not self._ask(DELETE_CHAT_CONFIRM):
            logger.debug("Session deletion declined.")
            return None
        deletion = self.store.delete_session(index)
        self._engine.cancel(deletion.session.id)
        log_display(logger, logging.INFO, f"Deleted conversation \"{deletion.session.topic}\".")
        return deletion

    def reset_session(self) -> ChatSession:
        session = self.store.current_session()
        self._cancel_session_requests(session)
        self._engine.cancel(session.id)
        return self.store.reset_session()

    def _cancel_session_requests(self, session: ChatSession) -> None:
        for message in session.messages:
            if message.streaming:
                self.registry.cancel_and_remove(session.id, message.id)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def on_user_input(self, content: str, session_id: Optional[int] = None) -> Optional[Message]:
        """Submit a user turn and stream the reply into the session."""
        return await self._controller.submit(content, session_id)

    def stop(self, session_id: int, message_id: int) -> bool:
        """Stop the reply streaming into `message_id`."""
        return self._controller.stop(session_id, message_id)

    async def wait_idle(self) -> None:
        """Wait for background topic and memory requests to settle."""
        await self._engine.wait_idle()

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def get_config(self) -> ChatConfig:
        return self.store.get_config()

    def update_config(self, updater: ConfigUpdater) -> ChatConfig:
        return self.store.update_config(updater)

    def reset_config(self) -> ChatConfig:
        return self.store.reset_config()

    # ------------------------------------------------------------------
    # Data lifecycle
    # ------------------------------------------------------------------

    async def clear_all_data(self) -> bool:
        """
        Wipe every session and the persisted snapshot, then reload.

        Returns False if the user declined.
        """
        if not self._ask(CLEAR_ALL_CONFIRM):
            logger.debug("Clearing all data declined.")
            return False
        self.registry.stop_all()
        self.store.clear_sessions()
        self.store.reset_config()
        try:
            await self.store.clear_persisted()
        except StorageError as e:
            logger.error(f"Failed to clear persisted data: {e}")
        log_display(logger, logging.INFO, "All chat and setting data cleared.")
        if self._reload is not None:
            self._reload()
        return True

    async def close(self) -> None:
        """Stop live requests, flush the store and release provider and storage."""
        logger.info("Closing chatstore resources...")
        self.registry.stop_all()
        await self._engine.close()
        await self.store.close()
        await asyncio.gather(
            self._provider.close(),
            self._storage.close(),
            return_exceptions=True,
        )
        logger.info("chatstore resources cleanup complete.")

    async def __aenter__(self) -> "ChatStoreApp":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
