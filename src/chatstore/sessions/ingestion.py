# src/chatstore/sessions/ingestion.py
"""
Streaming ingestion of one user turn.

The controller appends the user message and an assistant placeholder to the
session, opens a completion stream for the built context and applies the
cumulative deltas to the placeholder in arrival order. Every write goes
through the session store, addressed by session id and message id, so the
turn keeps landing in the session that started it even if the user switches
or reorders sessions while the reply streams in.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from ..exceptions import (AuthenticationError, ChatStoreError,
                          RequestCancelledError, SessionNotFoundError)
from ..memory.context_builder import build_context
from ..models import ChatSession, Message, Role, create_message, display_date
from ..prompts import ERROR_MESSAGE, UNAUTHORIZED_MESSAGE
from ..providers.base import BaseProvider, CompletionStream
from .cancellation import CancellationRegistry
from .manager import SessionStore

if TYPE_CHECKING:
    from ..memory.summarizer import SummarizationEngine

logger = logging.getLogger(__name__)


def is_unauthorized(error: BaseException) -> bool:
    """True for authorization failures (explicit or reported as HTTP 401)."""
    if isinstance(error, AuthenticationError):
        return True
    return getattr(error, "status_code", None) == 401


class StreamingIngestionController:
    """
    Drives user turns from submission to a settled assistant message.

    A turn settles in exactly one of three ways:
      * completed: the final content is stored, the post-turn hook runs;
      * failed: the user and assistant messages are flagged ``is_error``;
      * cancelled: the streamed content is kept, nothing is flagged.
    In all three cases ``streaming`` is cleared and the cancel handle is
    removed from the registry.
    """

    def __init__(
        self,
        store: SessionStore,
        provider: BaseProvider,
        registry: Optional[CancellationRegistry] = None,
        engine: Optional["SummarizationEngine"] = None,
    ):
        self._store = store
        self._provider = provider
        self.registry = registry if registry is not None else CancellationRegistry()
        self._engine = engine

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def submit(self, content: str, session_id: Optional[int] = None) -> Optional[Message]:
        """
        Send `content` as a new user turn and stream the reply.

        Args:
            content: The user's text.
            session_id: Target session; defaults to the active one.

        Returns:
            The settled assistant message, or None if the session was
            removed before the turn settled.
        """
        session = (
            self._store.get_session(session_id) if session_id is not None
            else self._store.current_session()
        )
        config = self._store.get_config()

        user_message = create_message(role=Role.USER, content=content)
        bot_message = create_message(role=Role.ASSISTANT, streaming=True, id=user_message.id + 1)

        send_messages = build_context(session, config) + [user_message.model_copy()]
        if not config.send_bot_messages:
            send_messages = [m for m in send_messages if m.role != Role.ASSISTANT]

        def append_turn(draft: ChatSession) -> None:
            draft.messages.append(user_message.model_copy())
            draft.messages.append(bot_message.model_copy())

        self._store.mutate_session(session.id, append_turn)
        logger.info(f"[User Input] session={session.id} message={bot_message.id}: sending {len(send_messages)} message(s).")

        try:
            stream = self._provider.stream_chat_completion(send_messages, config.llm)
        except ChatStoreError as e:
            self._fail(session.id, user_message.id, bot_message.id, e)
            return self._settled(session.id, bot_message.id)

        self.registry.register(session.id, bot_message.id, stream)
        await self._consume(session.id, user_message.id, bot_message.id, stream)
        return self._settled(session.id, bot_message.id)

    on_user_input = submit

    def stop(self, session_id: int, message_id: int) -> bool:
        """Cancel the live reply for the message. Returns False if none is running."""
        return self.registry.cancel_and_remove(session_id, message_id)

    def stop_all(self) -> int:
        return self.registry.stop_all()

    # ------------------------------------------------------------------
    # Stream handling
    # ------------------------------------------------------------------

    async def _consume(self, session_id: int, user_id: int, bot_id: int, stream: CompletionStream) -> None:
        try:
            async for delta in stream:
                if delta.done:
                    self._complete(session_id, bot_id, delta.content)
                    return
                self._set_content(session_id, bot_id, delta.content)
        except RequestCancelledError:
            self._cancelled(session_id, bot_id)
        except asyncio.CancelledError:
            # The submitting task itself was cancelled: abort the request and settle the turn.
            stream.cancel()
            self._cancelled(session_id, bot_id)
            raise
        except ChatStoreError as e:
            self._fail(session_id, user_id, bot_id, e)
        except Exception as e:
            logger.error(f"Unexpected error while streaming message {bot_id}: {e}", exc_info=True)
            self._fail(session_id, user_id, bot_id, e)

    def _set_content(self, session_id: int, message_id: int, content: str) -> None:
        def apply(message: Message) -> None:
            if message.streaming:
                message.content = content

        self._store.update_message(session_id, message_id, apply)

    def _complete(self, session_id: int, bot_id: int, content: str) -> None:
        def finalize(message: Message) -> None:
            message.streaming = False
            message.content = content

        message = self._store.update_message(session_id, bot_id, finalize)
        self.registry.remove(session_id, bot_id)
        if message is None:
            logger.debug(f"Session {session_id} no longer holds message {bot_id}; reply dropped.")
            return
        logger.debug(f"Reply {bot_id} in session {session_id} completed ({len(content)} chars).")
        self._on_new_message(session_id, message)

    def _cancelled(self, session_id: int, bot_id: int) -> None:
        def settle(message: Message) -> None:
            message.streaming = False

        self._store.update_message(session_id, bot_id, settle)
        self.registry.remove(session_id, bot_id)
        logger.info(f"Reply {bot_id} in session {session_id} stopped by user.")

    def _fail(self, session_id: int, user_id: int, bot_id: int, error: BaseException) -> None:
        unauthorized = is_unauthorized(error)

        def mark_error(draft: ChatSession) -> None:
            for message in draft.messages:
                if message.id == bot_id:
                    if unauthorized:
                        message.content = UNAUTHORIZED_MESSAGE
                    else:
                        message.content += "\n\n" + ERROR_MESSAGE
                    message.streaming = False
                    message.is_error = True
                elif message.id == user_id:
                    message.is_error = True

        try:
            self._store.mutate_session(session_id, mark_error)
        except SessionNotFoundError:
            logger.debug(f"Session {session_id} was removed before its failed turn settled.")
        self.registry.remove(session_id, bot_id)
        if unauthorized:
            logger.warning(f"Reply {bot_id} in session {session_id} rejected as unauthorized.")
        else:
            logger.error(f"Reply {bot_id} in session {session_id} failed: {error}")

    # ------------------------------------------------------------------
    # Post-turn hook
    # ------------------------------------------------------------------

    def _on_new_message(self, session_id: int, message: Message) -> None:
        def record(draft: ChatSession) -> None:
            draft.last_update = display_date()
            draft.stat.record(message.content)

        try:
            self._store.mutate_session(session_id, record)
        except SessionNotFoundError:
            return
        if self._engine is not None:
            self._engine.summarize_session(session_id)

    def _settled(self, session_id: int, bot_id: int) -> Optional[Message]:
        if not self._store.has_session(session_id):
            return None
        return self._store.get_session(session_id).find_message(bot_id)
