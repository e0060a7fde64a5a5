# src/chatstore/sessions/cancellation.py
"""
Registry of cancel handles for in-flight completion requests.

A handle is anything with a ``cancel()`` method (normally a
:class:`chatstore.providers.base.CompletionStream`). Entries are keyed by
``(session_id, message_id)``; the message id is the id of the assistant
placeholder the request is filling in.
"""

import logging
from typing import Dict, Protocol, Tuple

logger = logging.getLogger(__name__)


class CancelHandle(Protocol):
    """Opaque capability that aborts one in-flight request."""

    def cancel(self) -> None: ...


RegistryKey = Tuple[int, int]


class CancellationRegistry:
    """
    Holds at most one live cancel handle per (session, message) pair.

    Registering a second handle for a key that is still live cancels the
    first one before replacing it, so a retry issued before the previous
    stream settled cannot leak a request.
    """

    def __init__(self) -> None:
        self._handles: Dict[RegistryKey, CancelHandle] = {}

    def register(self, session_id: int, message_id: int, handle: CancelHandle) -> None:
        key = (session_id, message_id)
        previous = self._handles.get(key)
        if previous is not None and previous is not handle:
            logger.debug(f"Replacing live request for session {session_id}, message {message_id}; cancelling the old one.")
            previous.cancel()
        self._handles[key] = handle

    def cancel_and_remove(self, session_id: int, message_id: int) -> bool:
        """Cancel and forget the handle for the key. Returns False if nothing was registered."""
        handle = self._handles.pop((session_id, message_id), None)
        if handle is None:
            return False
        logger.info(f"Cancelling request for session {session_id}, message {message_id}.")
        handle.cancel()
        return True

    def remove(self, session_id: int, message_id: int) -> None:
        """Forget the handle for the key without cancelling it."""
        self._handles.pop((session_id, message_id), None)

    def has(self, session_id: int, message_id: int) -> bool:
        return (session_id, message_id) in self._handles

    def stop_all(self) -> int:
        """Cancel every live request. Returns how many were cancelled."""
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.cancel()
        if handles:
            logger.info(f"Cancelled {len(handles)} in-flight request(s).")
        return len(handles)

    def __len__(self) -> int:
        return len(self._handles)
