# src/chatstore/models.py
"""
Core data models for the chatstore library.

This module defines the Pydantic models for messages, chat statistics, chat
sessions and the persisted store snapshot. The models carry data only; every
behavior that changes a session lives in the session store, the context
builder, the ingestion controller or the summarization engine.
"""

import time
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .config.models import ChatConfig
from .prompts import (DEFAULT_TOPIC, PRIMING_ASSISTANT_PROMPT,
                      PRIMING_SYSTEM_PROMPT, PRIMING_USER_PROMPT)


class Role(str, Enum):
    """
    Enumeration of possible roles in a conversation.
    These roles define the origin or type of a message.
    """
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def _missing_(cls, value: object): # type: ignore[misc] # Pydantic uses this signature
        """
        Handles case-insensitive matching and common aliases for roles.
        For example, "Agent" or "AGENT" will be mapped to Role.ASSISTANT.
        """
        if isinstance(value, str):
            lower_value = value.lower()
            if lower_value == "agent":
                return cls.ASSISTANT
            for member in cls:
                if member.value == lower_value:
                    return member
        return None


class _IdSequence:
    """
    Monotonic integer ids derived from the wall clock in milliseconds.

    Never hands out a value lower than or equal to one already issued or
    observed, so two messages created within the same millisecond still get
    distinct, ordered ids.
    """

    def __init__(self) -> None:
        self._last = 0

    def next(self) -> int:
        self._last = max(int(time.time() * 1000), self._last + 1)
        return self._last

    def observe(self, value: int) -> None:
        if value > self._last:
            self._last = value


_message_ids = _IdSequence()
_session_ids = _IdSequence()


def display_date() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


class Message(BaseModel):
    """
    Represents one turn within a chat session.

    Attributes:
        id: Monotonic numeric identifier; used for ordering and as the
            cancellation key of a streaming reply.
        role: The role of the entity that produced the message.
        content: The textual content; rewritten while a reply streams in.
        date: Creation time, for display only.
        streaming: True while content is still being received.
        is_error: True if the turn failed. Error turns stay in the history
            but are left out of context windows and size accounting.
    """
    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)

    id: int = Field(default_factory=_message_ids.next, description="Monotonic message identifier.")
    role: Role = Field(default=Role.USER, description="The role of the message sender (system, user, or assistant).")
    content: str = Field(default="", description="The textual content of the message.")
    date: str = Field(default_factory=display_date, description="Display timestamp of creation.")
    streaming: bool = Field(default=False, description="True while the content is still streaming in.")
    is_error: bool = Field(default=False, description="True if this turn failed.")

    @model_validator(mode="after")
    def _track_id(self) -> "Message":
        # Explicit ids (e.g. user id + 1, restored snapshots) must push the sequence forward.
        _message_ids.observe(self.id)
        return self


def create_message(**overrides: Any) -> Message:
    """Create a user message with a fresh id and date, overridden by keyword arguments."""
    return Message(**overrides)


def _build_priming_context() -> List[Message]:
    return [
        Message(role=Role.SYSTEM, content=PRIMING_SYSTEM_PROMPT),
        Message(role=Role.USER, content=PRIMING_USER_PROMPT),
        Message(role=Role.ASSISTANT, content=PRIMING_ASSISTANT_PROMPT),
    ]


# Created once so that every session (and every reset) is primed with the
# same three records.
PRIMING_CONTEXT = tuple(_build_priming_context())


def priming_messages() -> List[Message]:
    """Return fresh copies of the three fixed priming messages."""
    return [m.model_copy(deep=True) for m in PRIMING_CONTEXT]


class ChatStat(BaseModel):
    """Informational counters attached to a session."""
    model_config = ConfigDict(validate_assignment=True)

    token_count: int = 0
    word_count: int = 0
    char_count: int = 0

    def record(self, content: str) -> None:
        """Add one message's content to the counters."""
        self.char_count += len(content)
        self.word_count += len(content.split())
        self.token_count += max(1, len(content) // 4) if content else 0


class ChatSession(BaseModel):
    """
    Represents a single conversation.

    Attributes:
        id: Unique identifier for the session.
        topic: Display title; starts as DEFAULT_TOPIC and is inferred later.
        send_memory: Whether long-term compression is enabled.
        memory_prompt: The current compressed memory text.
        context: Priming messages fixed at session creation.
        messages: Append-only turn history, chronological.
        stat: Informational counters.
        last_update: Display timestamp of the last completed turn.
        last_summarize_index: Messages before this index are already folded
            into memory_prompt. Always within [0, len(messages)].
    """
    model_config = ConfigDict(validate_assignment=True)

    id: int = Field(default_factory=_session_ids.next, description="Unique identifier for the chat session.")
    topic: str = Field(default=DEFAULT_TOPIC)
    send_memory: bool = True
    memory_prompt: str = ""
    context: List[Message] = Field(default_factory=priming_messages)
    messages: List[Message] = Field(default_factory=list)
    stat: ChatStat = Field(default_factory=ChatStat)
    last_update: str = Field(default_factory=display_date)
    last_summarize_index: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _track_and_clamp(self) -> "ChatSession":
        _session_ids.observe(self.id)
        if self.last_summarize_index > len(self.messages):
            # Bypass validate_assignment to avoid re-entering this validator.
            object.__setattr__(self, "last_summarize_index", len(self.messages))
        return self

    def find_message(self, message_id: int) -> Optional[Message]:
        """Return the history message with `message_id`, or None."""
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


def create_empty_session() -> ChatSession:
    """Create a fresh session primed with the fixed context and an empty history."""
    return ChatSession()


class StoreState(BaseModel):
    """The persisted part of the session store."""
    sessions: List[ChatSession] = Field(default_factory=lambda: [create_empty_session()])
    current_session_index: int = 0
    config: ChatConfig = Field(default_factory=ChatConfig)


class StoreSnapshot(BaseModel):
    """Versioned, opaque snapshot written to the storage backend."""
    version: int
    state: StoreState
