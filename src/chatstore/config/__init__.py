# src/chatstore/config/__init__.py
"""
Configuration package for chatstore.

Exports the persisted chat configuration models and the process settings
loader.
"""

from .models import (ALL_MODELS, ChatConfig, ModelConfig, SubmitKey, Theme,
                     default_chat_config, limit_model, limit_number)
from .settings import AppSettings, load_settings

__all__ = [
    "ALL_MODELS",
    "AppSettings",
    "ChatConfig",
    "ModelConfig",
    "SubmitKey",
    "Theme",
    "default_chat_config",
    "limit_model",
    "limit_number",
    "load_settings",
]
