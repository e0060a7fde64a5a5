# src/chatstore/memory/summarizer.py
"""
Summarization engine: topic inference and long-term memory compression.

Runs after every completed turn. Both checks are cheap and synchronous; when
a check fires, the network request runs as a background asyncio task and
folds its result back into the session through the session store.

Compression moves `last_summarize_index` forward only when the compression
stream completes, and only to the message count captured when the request
was issued, so turns that arrive while a summary is being written are never
skipped. A failed compression restores the previous memory text and leaves
the index alone; the next turn retries with a larger backlog.

A compression result only lands in the history it was computed from: the
request records the id of the last message it covers, and `cancel()` (called
before a reset or a delete) moves the session to a new epoch so a stale
result is dropped.
"""

import asyncio
import logging
import re
from typing import Coroutine, Dict, List, Set

from ..config.models import ChatConfig, ModelConfig
from ..exceptions import (ChatStoreError, RequestCancelledError,
                          SessionNotFoundError)
from ..models import ChatSession, Message, Role
from ..prompts import DEFAULT_TOPIC, SUMMARIZE_PROMPT, TOPIC_PROMPT
from ..providers.base import BaseProvider, CompletionStream
from ..sessions.manager import SessionStore
from .context_builder import count_messages, get_memory_prompt, short_term_floor

logger = logging.getLogger(__name__)

# Minimum characters of conversation before a topic is inferred.
SUMMARIZE_MIN_LEN = 50
# Trim budget used when the model's max_tokens is unset (0).
DEFAULT_SUMMARIZE_BUDGET = 4000


def trim_topic(topic: str) -> str:
    """Strip enclosing quotes and trailing punctuation from a generated title."""
    topic = re.sub(r'^["“”\']+|["“”\']+$', "", topic.strip())
    topic = re.sub(r'[，。！？”“"、,.!?]*$', "", topic)
    return topic.strip()


def summarize_budget(model_config: ModelConfig) -> int:
    """Character budget above which the compression backlog is trimmed."""
    return model_config.max_tokens if model_config.max_tokens else DEFAULT_SUMMARIZE_BUDGET


class SummarizationEngine:
    """
    Infers session topics and compresses old turns into `memory_prompt`.
    """

    def __init__(self, store: SessionStore, provider: BaseProvider):
        self._store = store
        self._provider = provider
        self._tasks: Set[asyncio.Task] = set()
        self._naming: Set[int] = set()
        self._compressing: Dict[int, CompletionStream] = {}
        self._epochs: Dict[int, int] = {}

    @property
    def pending(self) -> int:
        """Number of background requests still running."""
        return len(self._tasks)

    def is_compressing(self, session_id: int) -> bool:
        return session_id in self._compressing

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _epoch(self, session_id: int) -> int:
        return self._epochs.get(session_id, 0)

    def cancel(self, session_id: int) -> bool:
        """
        Abandon the compression running for a session.

        Any result still in flight for the session is discarded, and the
        memory it replaced is not restored. Returns True if a compression
        was running.
        """
        self._epochs[session_id] = self._epoch(session_id) + 1
        stream = self._compressing.pop(session_id, None)
        if stream is None:
            return False
        stream.cancel()
        logger.info(f"[Memory] Compression for session {session_id} cancelled.")
        return True

    async def wait_idle(self) -> None:
        """Wait until every background topic/compression request has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel running compression streams and background tasks."""
        for stream in list(self._compressing.values()):
            stream.cancel()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def summarize_session(self, session_id: int) -> None:
        """Run both post-turn checks for a session, scheduling requests as needed."""
        try:
            session = self._store.get_session(session_id)
        except SessionNotFoundError:
            logger.debug(f"Session {session_id} disappeared before summarization; skipping.")
            return
        config = self._store.get_config()
        self._check_topic(session, config)
        self._check_compression(session, config)

    # ------------------------------------------------------------------
    # Topic inference
    # ------------------------------------------------------------------

    def _check_topic(self, session: ChatSession, config: ChatConfig) -> None:
        if session.topic != DEFAULT_TOPIC or session.id in self._naming:
            return
        history = [m for m in session.messages if not m.is_error]
        if count_messages(history) < SUMMARIZE_MIN_LEN:
            return
        request = [m.model_copy() for m in history] + [Message(role=Role.USER, content=TOPIC_PROMPT, date="")]
        self._naming.add(session.id)
        self._spawn(self._infer_topic(session.id, request, config.llm), f"topic-{session.id}")

    async def _infer_topic(self, session_id: int, request: List[Message], model_config: ModelConfig) -> None:
        try:
            result = await self._provider.chat_completion(request, model_config)
        except ChatStoreError as e:
            logger.warning(f"[Topic] Inference failed for session {session_id}: {e}")
            return
        except Exception as e:
            logger.error(f"[Topic] Unexpected error for session {session_id}: {e}", exc_info=True)
            return
        finally:
            self._naming.discard(session_id)

        topic = trim_topic(result or "")
        if not topic:
            logger.debug(f"[Topic] Empty title returned for session {session_id}; keeping default.")
            return

        def apply(session: ChatSession) -> None:
            if session.topic == DEFAULT_TOPIC:
                session.topic = topic

        try:
            self._store.mutate_session(session_id, apply)
        except SessionNotFoundError:
            logger.debug(f"[Topic] Session {session_id} was removed before its title arrived.")
            return
        logger.info(f"[Topic] Session {session_id} titled '{topic}'.")

    # ------------------------------------------------------------------
    # Memory compression
    # ------------------------------------------------------------------

    def _check_compression(self, session: ChatSession, config: ChatConfig) -> None:
        to_summarize = [m for m in session.messages[session.last_summarize_index:] if not m.is_error]
        history_len = count_messages(to_summarize)

        if history_len > summarize_budget(config.llm):
            start = short_term_floor(len(to_summarize), config.history_message_count)
            to_summarize = to_summarize[start:]

        summarize_len = count_messages(to_summarize)
        threshold = config.compress_message_length_threshold
        logger.debug(
            f"[Chat History] session={session.id} backlog={len(to_summarize)} msgs, "
            f"{history_len} chars ({summarize_len} after trim), threshold={threshold}"
        )
        if summarize_len <= threshold or not session.send_memory:
            return
        if session.id in self._compressing:
            logger.debug(f"[Memory] Compression already running for session {session.id}; skipping.")
            return

        captured_index = len(session.messages)
        boundary_id = session.messages[captured_index - 1].id
        request = (
            [get_memory_prompt(session)]
            + [m.model_copy() for m in to_summarize]
            + [Message(role=Role.SYSTEM, content=SUMMARIZE_PROMPT, date="")]
        )
        try:
            stream = self._provider.stream_chat_completion(request, config.llm)
        except ChatStoreError as e:
            logger.warning(f"[Summarize] Could not start compression for session {session.id}: {e}")
            return
        self._compressing[session.id] = stream
        self._spawn(
            self._compress(session.id, stream, captured_index, boundary_id, self._epoch(session.id),
                           session.memory_prompt),
            f"compress-{session.id}",
        )

    async def _compress(self, session_id: int, stream: CompletionStream, captured_index: int,
                        boundary_id: int, epoch: int, previous_memory: str) -> None:
        completed = False
        try:
            async for delta in stream:
                if not self._apply_memory(session_id, delta.content, captured_index, boundary_id,
                                          epoch, delta.done):
                    stream.cancel()
                    return
                if delta.done:
                    completed = True
        except RequestCancelledError:
            logger.debug(f"[Summarize] Compression for session {session_id} was cancelled.")
        except ChatStoreError as e:
            logger.warning(f"[Summarize] Compression failed for session {session_id}: {e}")
        except Exception as e:
            logger.error(f"[Summarize] Unexpected error for session {session_id}: {e}", exc_info=True)
        finally:
            if self._compressing.get(session_id) is stream:
                del self._compressing[session_id]
            if not completed:
                self._restore_memory(session_id, previous_memory, captured_index, boundary_id, epoch)

    def _covers(self, session: ChatSession, captured_index: int, boundary_id: int, epoch: int) -> bool:
        """True while `session` still holds the history a compression was computed from."""
        if self._epoch(session.id) != epoch:
            return False
        if len(session.messages) < captured_index:
            return False
        return session.messages[captured_index - 1].id == boundary_id

    def _apply_memory(self, session_id: int, content: str, captured_index: int, boundary_id: int,
                      epoch: int, done: bool) -> bool:
        """Write a partial or final summary. Returns False if the session no longer accepts it."""
        accepted: List[bool] = []

        def apply(session: ChatSession) -> None:
            if not self._covers(session, captured_index, boundary_id, epoch):
                return
            session.memory_prompt = content
            if done:
                session.last_summarize_index = max(session.last_summarize_index, captured_index)
            accepted.append(True)

        try:
            self._store.mutate_session(session_id, apply)
        except SessionNotFoundError:
            logger.debug(f"[Memory] Session {session_id} was removed during compression.")
            return False
        if not accepted:
            logger.debug(f"[Memory] Session {session_id} no longer holds the summarized history; result dropped.")
        elif done:
            logger.info(f"[Memory] Session {session_id} summarized up to message {captured_index}.")
        return bool(accepted)

    def _restore_memory(self, session_id: int, previous_memory: str, captured_index: int,
                        boundary_id: int, epoch: int) -> None:
        def restore(session: ChatSession) -> None:
            if self._covers(session, captured_index, boundary_id, epoch):
                session.memory_prompt = previous_memory

        try:
            self._store.mutate_session(session_id, restore)
        except SessionNotFoundError:
            logger.debug(f"[Memory] Session {session_id} was removed; nothing to restore.")
