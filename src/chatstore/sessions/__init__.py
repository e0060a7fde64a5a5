"""
Session handling for chatstore: the session store, the cancellation registry
for in-flight replies and the streaming ingestion controller.
"""

from .cancellation import CancellationRegistry
from .ingestion import StreamingIngestionController
from .manager import REVERT_WINDOW_SECONDS, SessionDeletion, SessionStore

__all__ = [
    "CancellationRegistry",
    "REVERT_WINDOW_SECONDS",
    "SessionDeletion",
    "SessionStore",
    "StreamingIngestionController",
]
