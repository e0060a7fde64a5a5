# src/chatstore/memory/__init__.py
"""
Memory handling for chatstore: context window construction (short-term
window plus long-term memory) and the summarization engine that maintains
the long-term memory.
"""

from .context_builder import build_context, count_messages, get_memory_prompt
from .summarizer import SummarizationEngine, trim_topic

__all__ = [
    "SummarizationEngine",
    "build_context",
    "count_messages",
    "get_memory_prompt",
    "trim_topic",
]
