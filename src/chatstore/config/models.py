# src/chatstore/config/models.py
"""
Pydantic models for the process-wide chat configuration.

`ChatConfig` is created with defaults when the store starts, changed only
through `SessionStore.update_config`, and persisted in the store snapshot.
`ModelConfig` holds the completion parameters; its values are clamped into
their valid ranges on validation and on every assignment instead of being
rejected, so a bad value from an old snapshot or a settings screen never
breaks the store.
"""

import math
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ==============================================================================
# Enumerations
# ==============================================================================


class SubmitKey(str, Enum):
    """Key combination that submits the user input."""
    ENTER = "Enter"
    CTRL_ENTER = "Ctrl + Enter"
    SHIFT_ENTER = "Shift + Enter"
    ALT_ENTER = "Alt + Enter"
    META_ENTER = "Meta + Enter"


class Theme(str, Enum):
    """UI color theme."""
    AUTO = "auto"
    DARK = "dark"
    LIGHT = "light"


# ==============================================================================
# Model catalogue and value limits
# ==============================================================================

ENABLE_GPT4 = True

ALL_MODELS: List[Dict[str, Any]] = [
    {"name": "gpt-4", "available": ENABLE_GPT4},
    {"name": "gpt-4-0314", "available": ENABLE_GPT4},
    {"name": "gpt-4-32k", "available": ENABLE_GPT4},
    {"name": "gpt-4-32k-0314", "available": ENABLE_GPT4},
    {"name": "gpt-3.5-turbo", "available": True},
    {"name": "gpt-3.5-turbo-0301", "available": True},
]

FALLBACK_MODEL = "gpt-3.5-turbo"


def limit_number(x: Any, min_value: float, max_value: float, default_value: float) -> float:
    """Clamp `x` into [min_value, max_value]; non-numbers and NaN become `default_value`."""
    if isinstance(x, bool) or not isinstance(x, (int, float)) or math.isnan(x):
        return default_value
    return min(max_value, max(min_value, x))


def limit_model(name: Any) -> str:
    """Return `name` if it is an available model, otherwise the fallback model."""
    if any(m["name"] == name and m["available"] for m in ALL_MODELS):
        return name
    return FALLBACK_MODEL


# ==============================================================================
# Configuration models
# ==============================================================================


class ModelConfig(BaseModel):
    """
    Completion parameters sent with every chat request.

    Attributes:
        model: Model name; must be listed (and available) in ALL_MODELS.
        temperature: Sampling temperature, clamped to [0, 2].
        max_tokens: Maximum response tokens, clamped to [0, 32000]. Also used
            as the character budget of the summarization trim step.
        presence_penalty: Presence penalty, clamped to [-2, 2].
    """
    model_config = ConfigDict(validate_assignment=True, protected_namespaces=())

    model: str = Field(default="gpt-3.5-turbo-0301", description="Completion model name.")
    temperature: float = Field(default=1.0, description="Sampling temperature.")
    max_tokens: int = Field(default=2000, description="Maximum tokens in a response.")
    presence_penalty: float = Field(default=0.0, description="Presence penalty.")

    @field_validator("model", mode="before")
    @classmethod
    def _limit_model(cls, v: Any) -> str:
        return limit_model(v)

    @field_validator("temperature", mode="before")
    @classmethod
    def _limit_temperature(cls, v: Any) -> float:
        return limit_number(v, 0, 2, 1)

    @field_validator("max_tokens", mode="before")
    @classmethod
    def _limit_max_tokens(cls, v: Any) -> int:
        return int(limit_number(v, 0, 32000, 2000))

    @field_validator("presence_penalty", mode="before")
    @classmethod
    def _limit_presence_penalty(cls, v: Any) -> float:
        return limit_number(v, -2, 2, 0)


class ChatConfig(BaseModel):
    """
    Process-wide chat configuration.

    Attributes:
        history_message_count: Trailing turns always eligible for the context
            window verbatim; -1 means unbounded.
        compress_message_length_threshold: Character budget of the trailing
            window and the trigger for memory compression.
        send_bot_messages: When False, assistant turns are left out of the
            chat request payload.
        llm: Completion parameters.
    """
    model_config = ConfigDict(validate_assignment=True, use_enum_values=True)

    history_message_count: int = Field(default=4, ge=-1)
    compress_message_length_threshold: int = Field(default=1000, ge=0)
    send_bot_messages: bool = True
    submit_key: SubmitKey = SubmitKey.ENTER
    avatar: str = ""
    font_size: int = 16
    theme: Theme = Theme.DARK
    tight_border: bool = False
    send_preview_bubble: bool = False
    sidebar_width: int = 300
    disable_prompt_hint: bool = False
    llm: ModelConfig = Field(default_factory=ModelConfig)


def default_chat_config() -> ChatConfig:
    """Return a fresh ChatConfig populated with defaults."""
    return ChatConfig()
