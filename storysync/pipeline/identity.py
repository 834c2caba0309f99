"""
Main character description providers, tried in order until one succeeds.
"""

from __future__ import annotations

import base64
import logging
import mimetypes
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, Sequence

from storysync.common import CompletionCallable, call_chat_completion, collect_note_lines

PathLike = str | Path

logger = logging.getLogger(__name__)


_NON_PHYSICAL_PATTERN = re.compile(
    r"\b("
    r"jacket|hoodie|sweater|coat|shirt|t-shirt|tee|top|blouse|pants|jeans|shorts|skirt|dress|"
    r"outfit|clothing|attire|costume|cape|uniform|boots|shoes|sneakers|sandals|socks|"
    r"hat|beanie|cap|helmet|gloves|scarf|mask|backpack|bag|vest|overalls|goggles|"
    r"bracelet|necklace|earrings|watch|rings|belt"
    r")\b",
    re.IGNORECASE,
)


class DescriptionUnavailableError(RuntimeError):
    """Raised when every provider in a chain failed to describe the character."""


@dataclass(frozen=True)
class DescriptionRequest:
    character_name: str
    age: str | None = None
    reference_image: PathLike | None = None
    description: str | None = None


@dataclass(frozen=True)
class DescriptionAttempt:
    provider: str
    description: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return bool(self.description)


@dataclass(frozen=True)
class DescriptionOutcome:
    description: str
    provider: str
    attempts: tuple[DescriptionAttempt, ...] = field(default_factory=tuple)


class DescriptionProvider(Protocol):
    name: str

    def attempt(self, request: DescriptionRequest) -> DescriptionAttempt:
        ...


class ProvidedDescription:
    """Use the description supplied alongside the story, when there is one."""

    name = "provided"

    def attempt(self, request: DescriptionRequest) -> DescriptionAttempt:
        text = (request.description or "").strip()
        if not text:
            return DescriptionAttempt(provider=self.name, error="No description supplied.")
        return DescriptionAttempt(provider=self.name, description=text)


class LiteLLMPhotoDescriber:
    """
    Describe the child's physical traits from a reference photo with a multimodal chat model.
    """

    name = "litellm_photo"

    def __init__(
        self,
        *,
        model: str | None = None,
        api_key: str | None = None,
        completion_fn: CompletionCallable | None = None,
        max_tokens: int = 450,
        temperature: float = 0.2,
    ) -> None:
        self.model = (
            model
            or os.getenv("STORYSYNC_DESCRIBER_MODEL")
            or os.getenv("LITELLM_IDENTITY_MODEL")
            or "gpt-4o-mini"
        )
        self.api_key = api_key or os.getenv("STORYSYNC_DESCRIBER_API_KEY") or os.getenv("OPENAI_API_KEY")
        self.completion_fn = completion_fn or call_chat_completion
        self.max_tokens = max_tokens
        self.temperature = temperature

    def attempt(self, request: DescriptionRequest) -> DescriptionAttempt:
        if request.reference_image is None:
            return DescriptionAttempt(provider=self.name, error="No reference photo supplied.")

        try:
            image_payload = _normalize_image_input(request.reference_image)
            result = self.completion_fn(
                model=self.model,
                messages=self._messages(image_payload),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                api_key=self.api_key,
            )
        except Exception as exc:
            logger.exception("Photo description failed for %s.", request.character_name)
            return DescriptionAttempt(provider=self.name, error=str(exc) or exc.__class__.__name__)

        traits = _filter_physical_traits(result.text)
        if not traits:
            return DescriptionAttempt(provider=self.name, error="Model returned no physical traits.")

        lead = f"{request.character_name}, a {request.age} year old child" if request.age else request.character_name
        return DescriptionAttempt(provider=self.name, description=f"{lead} with {', '.join(traits)}")

    @staticmethod
    def _messages(image_payload: str) -> Sequence[dict[str, Any]]:
        user_prompt = (
            "Review the child in this reference portrait and produce a concise bullet list of immutable traits. "
            "Describe only physical characteristics such as hair color and style, eye color, skin tone or freckles. "
            "Do not mention clothing, outfits, accessories, or props. Limit to 6 bullets. Use the format '- detail'."
        )
        return [
            {
                "role": "system",
                "content": (
                    "You are an illustration continuity director. "
                    "Respond only with bullet points describing the child's inherent physical features. "
                    "Do not speculate about names, backstory, or personality."
                ),
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": user_prompt},
                    {"type": "image_url", "image_url": {"url": image_payload}},
                ],
            },
        ]


class DefaultDescription:
    """Last resort: a plain description built from the name and age."""

    name = "default"

    def attempt(self, request: DescriptionRequest) -> DescriptionAttempt:
        age = f"a {request.age} year old child" if request.age else "a young child"
        return DescriptionAttempt(
            provider=self.name,
            description=f"{request.character_name}, {age} with a warm, friendly smile",
        )


class DescriptionChain:
    """
    Ordered list of providers; the first successful attempt wins.
    """

    def __init__(self, providers: Sequence[DescriptionProvider]) -> None:
        if not providers:
            raise ValueError("A description chain needs at least one provider.")
        self.providers = tuple(providers)

    def describe(self, request: DescriptionRequest) -> DescriptionOutcome:
        attempts: list[DescriptionAttempt] = []
        for provider in self.providers:
            attempt = provider.attempt(request)
            attempts.append(attempt)
            if attempt.succeeded:
                logger.info("Described %s via %s.", request.character_name, attempt.provider)
                return DescriptionOutcome(
                    description=attempt.description or "",
                    provider=attempt.provider,
                    attempts=tuple(attempts),
                )
            logger.debug("Provider %s skipped: %s", attempt.provider, attempt.error)

        errors = "; ".join(f"{item.provider}: {item.error}" for item in attempts)
        raise DescriptionUnavailableError(f"No provider could describe {request.character_name} ({errors}).")


def default_description_chain(
    *,
    model: str | None = None,
    api_key: str | None = None,
    completion_fn: CompletionCallable | None = None,
) -> DescriptionChain:
    return DescriptionChain(
        [
            ProvidedDescription(),
            LiteLLMPhotoDescriber(model=model, api_key=api_key, completion_fn=completion_fn),
            DefaultDescription(),
        ]
    )


def _filter_physical_traits(notes: str) -> list[str]:
    return [line for line in collect_note_lines(notes) if not _NON_PHYSICAL_PATTERN.search(line)]


def _normalize_image_input(reference_image: PathLike) -> str:
    candidate = str(reference_image)
    if candidate.lower().startswith(("http://", "https://", "data:")):
        return candidate

    image_path = Path(reference_image).expanduser()
    data = image_path.read_bytes()
    mime_type, _ = mimetypes.guess_type(image_path.name)
    base64_data = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type or 'image/jpeg'};base64,{base64_data}"
