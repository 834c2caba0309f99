"""
Typed story page input and the normalization applied at the engine boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

_ALLOWED_KEYS = frozenset({"page_number", "text", "seed_prompt"})


class StoryInputError(ValueError):
    """Raised when story pages cannot be normalized into a contiguous sequence."""


@dataclass(frozen=True)
class StoryPage:
    """
    A single page of story text as produced by the upstream text generator.
    """

    page_number: int
    text: str
    seed_prompt: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "text": self.text,
            "seed_prompt": self.seed_prompt,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StoryPage":
        unknown = set(data) - _ALLOWED_KEYS
        if unknown:
            raise StoryInputError(
                f"Unexpected page fields {sorted(unknown)}; expected page_number, text, seed_prompt."
            )
        try:
            number = data["page_number"]
            text = data["text"]
        except KeyError as exc:
            raise StoryInputError(f"Page payload is missing {exc.args[0]!r}: {dict(data)}") from exc

        if isinstance(number, bool) or not isinstance(number, int):
            try:
                number = int(str(number).strip())
            except (TypeError, ValueError) as exc:
                raise StoryInputError(f"page_number must be an integer, got {number!r}") from exc

        if text is None:
            raise StoryInputError(f"Page {number} has no text.")

        seed_prompt = data.get("seed_prompt")
        seed_text = str(seed_prompt).strip() if seed_prompt is not None else ""
        return cls(page_number=number, text=str(text).strip(), seed_prompt=seed_text or None)


def normalize_pages(raw_pages: Iterable[StoryPage | Mapping[str, Any]]) -> list[StoryPage]:
    """
    Coerce raw pages into `StoryPage` objects sorted by page number.

    Page numbers must be positive, unique and contiguous; they may arrive in any order.
    """
    pages: list[StoryPage] = []
    for item in raw_pages:
        if isinstance(item, StoryPage):
            pages.append(item)
        elif isinstance(item, Mapping):
            pages.append(StoryPage.from_mapping(item))
        else:
            raise StoryInputError(f"Unsupported page payload: {item!r}")

    if not pages:
        raise StoryInputError("At least one story page is required.")

    pages.sort(key=lambda page: page.page_number)
    _validate_page_sequence(pages)
    return pages


def _validate_page_sequence(pages: Sequence[StoryPage]) -> None:
    if pages[0].page_number < 1:
        raise StoryInputError("Page numbers must start at 1 or above.")

    for previous, current in zip(pages, pages[1:]):
        if current.page_number == previous.page_number:
            raise StoryInputError(f"Duplicate page number {current.page_number}.")
        if current.page_number != previous.page_number + 1:
            raise StoryInputError(
                f"Page numbers must be contiguous; gap between {previous.page_number} "
                f"and {current.page_number}."
            )
