"""
LiteLLM chat completion wrapper used by the optional character describers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, MutableMapping, Sequence

from litellm import completion

ChatMessage = Mapping[str, Any]

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    """
    Text returned by a chat completion plus the token usage reported for it.
    """

    text: str
    model: str
    usage: Mapping[str, int] = field(default_factory=dict)
    raw: Any = None


CompletionCallable = Callable[..., ChatResult]


def call_chat_completion(
    *,
    model: str,
    messages: Sequence[ChatMessage],
    temperature: float | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    **extra_kwargs: Any,
) -> ChatResult:
    """
    Invoke LiteLLM's `completion` API and return the first choice's text.
    """
    payload: MutableMapping[str, Any] = {
        "model": model,
        "messages": list(messages),
    }
    if temperature is not None:
        payload["temperature"] = temperature
    if max_tokens is not None:
        payload["max_tokens"] = max_tokens
    if api_key is not None:
        payload["api_key"] = api_key
    payload.update(extra_kwargs)

    response = completion(**payload)

    try:
        message = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise RuntimeError("Unexpected LiteLLM response format.") from exc

    usage: dict[str, int] = {}
    raw_usage = _lookup(response, "usage")
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = _lookup(raw_usage, key)
        if isinstance(value, int):
            usage[key] = value
    logger.debug("Chat completion on %s used %s", model, usage or "unknown tokens")

    return ChatResult(text=str(message or "").strip(), model=model, usage=usage, raw=response)


def _lookup(container: Any, key: str) -> Any:
    if container is None:
        return None
    if isinstance(container, Mapping):
        return container.get(key)
    return getattr(container, key, None)
