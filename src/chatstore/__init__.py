# src/chatstore/__init__.py
"""
chatstore - client-side session and memory management for chat agents.

Owns the chat sessions, builds the bounded context window sent to a
completion service, ingests streamed replies and compresses older turns
into a running memory summary.
"""

from importlib.metadata import PackageNotFoundError, version

from .api import ChatStoreApp
from .config import AppSettings, ChatConfig, ModelConfig, load_settings
from .exceptions import (
    AuthenticationError,
    ChatStoreError,
    ConfigError,
    MigrationError,
    ProviderError,
    RequestCancelledError,
    SessionNotFoundError,
    SnapshotStorageError,
    StorageError,
)
from .memory import SummarizationEngine, build_context
from .models import ChatSession, ChatStat, Message, Role, create_message
from .providers import BaseProvider, CompletionStream, StreamDelta
from .sessions import (
    CancellationRegistry,
    SessionDeletion,
    SessionStore,
    StreamingIngestionController,
)

try:
    __version__ = version("chatstore")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "AppSettings",
    "AuthenticationError",
    "BaseProvider",
    "CancellationRegistry",
    "ChatConfig",
    "ChatSession",
    "ChatStat",
    "ChatStoreApp",
    "ChatStoreError",
    "CompletionStream",
    "ConfigError",
    "Message",
    "MigrationError",
    "ModelConfig",
    "ProviderError",
    "RequestCancelledError",
    "Role",
    "SessionDeletion",
    "SessionNotFoundError",
    "SessionStore",
    "SnapshotStorageError",
    "StorageError",
    "StreamDelta",
    "StreamingIngestionController",
    "SummarizationEngine",
    "__version__",
    "build_context",
    "create_message",
    "load_settings",
]
