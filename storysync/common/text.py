"""
Small text helpers reused by the continuity and prompt modules.
"""

from __future__ import annotations

import re
from typing import Iterable, Mapping, Sequence

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def collect_note_lines(value: Sequence[str] | Mapping[str, str] | str | None) -> list[str]:
    """
    Flatten strings, sequences or mappings into cleaned, bullet-free lines.
    """
    if value is None:
        return []

    if isinstance(value, str):
        items = [value]
    elif isinstance(value, Mapping):
        items = [f"{key}: {details}" for key, details in value.items()]
    else:
        items = [str(item) for item in value if item is not None]

    lines: list[str] = []
    for item in items:
        for raw in item.replace("\r", "\n").split("\n"):
            cleaned = raw.strip(" \t-•—")
            if cleaned:
                lines.append(cleaned)
    return lines


def deduplicate(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for item in items:
        key = item.lower()
        if key not in seen:
            ordered.append(item)
            seen.add(key)
    return ordered


def truncate(text: str, limit: int) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def first_sentence(text: str) -> str:
    stripped = text.strip()
    if not stripped:
        return ""
    return _SENTENCE_END.split(stripped, maxsplit=1)[0].strip()
