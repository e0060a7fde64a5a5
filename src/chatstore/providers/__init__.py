# src/chatstore/providers/__init__.py
"""
Completion service providers for chatstore.
"""

from .base import BaseProvider, CompletionStream, ContextPayload, StreamDelta
from .openai_provider import OpenAIProvider

__all__ = [
    "BaseProvider",
    "CompletionStream",
    "ContextPayload",
    "OpenAIProvider",
    "StreamDelta",
]
