# src/chatstore/memory/context_builder.py
"""
Context window construction.

Pure functions that turn a session and the chat configuration into the
ordered message list submitted to the completion service:

    priming context -> optional memory summary -> chronological trailing window

The trailing window has two independent stopping conditions, an index floor
(never re-send turns already folded into memory, never more than
``history_message_count`` turns) and a character budget
(``compress_message_length_threshold``). The memory summary is inserted
before the budget walk and never counts against the budget.
"""

import logging
from typing import Iterable, List

from ..config.models import ChatConfig
from ..models import ChatSession, Message, Role
from ..prompts import format_history_prompt

logger = logging.getLogger(__name__)


def count_messages(messages: Iterable[Message]) -> int:
    """Total character length of the messages' content."""
    return sum(len(m.content) for m in messages)


def get_memory_prompt(session: ChatSession) -> Message:
    """Build the synthetic system message that carries the session's memory."""
    return Message(role=Role.SYSTEM, content=format_history_prompt(session.memory_prompt), date="")


def short_term_floor(message_count: int, history_message_count: int) -> int:
    """Index of the oldest message the short-term window may reach."""
    if history_message_count < 0:
        return 0
    return max(0, message_count - history_message_count)


def build_context(session: ChatSession, config: ChatConfig) -> List[Message]:
    """
    Build the context window for the next request.

    Args:
        session: The session to read. Not modified.
        config: The chat configuration.

    Returns:
        A new list: copies of the priming messages, then the memory message
        when memory is enabled and non-empty, then the trailing window in
        chronological order. Error turns are never included.
    """
    context = [m.model_copy() for m in session.context]

    if session.send_memory and session.memory_prompt:
        context.append(get_memory_prompt(session))

    messages = [m for m in session.messages if not m.is_error]
    n = len(messages)

    oldest_index = max(short_term_floor(n, config.history_message_count), session.last_summarize_index)
    threshold = config.compress_message_length_threshold

    reversed_recent: List[Message] = []
    count = 0
    i = n - 1
    while i >= oldest_index and count < threshold:
        msg = messages[i]
        count += len(msg.content)
        reversed_recent.append(msg)
        i -= 1

    logger.debug(
        f"Built context for session {session.id}: {len(context)} priming/memory message(s), "
        f"{len(reversed_recent)} recent message(s), {count} chars (floor={oldest_index}, threshold={threshold})."
    )
    reversed_recent.reverse()
    return context + [m.model_copy() for m in reversed_recent]
