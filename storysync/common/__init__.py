"""
Common utilities shared across storysync modules.
"""

from .llm import ChatResult, CompletionCallable, call_chat_completion
from .text import collect_note_lines, deduplicate, first_sentence, truncate

__all__ = [
    "ChatResult",
    "CompletionCallable",
    "call_chat_completion",
    "collect_note_lines",
    "deduplicate",
    "first_sentence",
    "truncate",
]
