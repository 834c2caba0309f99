"""
Heuristic pronoun substitution against the story's character registry.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .characters import Character, CharacterRegistry
from .lexicon import NAME_TOKEN, OBJECT_PRONOUNS, POSSESSIVE_PRONOUNS, SUBJECT_PRONOUNS, Gender

if TYPE_CHECKING:
    from .scene import Scene

logger = logging.getLogger(__name__)

_PRONOUN_PATTERN = re.compile(r"\b(he|she|him|her|his|hers)\b", re.IGNORECASE)
_NEXT_WORD = re.compile(r"\s+([A-Za-z]+)")
_LEADING_WINDOW = 50

# Words after "her" that mark it as an object pronoun rather than a possessive.
_OBJECT_FOLLOWERS = frozenset(
    {
        "a", "about", "after", "again", "along", "an", "and", "around", "as", "at", "away",
        "back", "because", "before", "but", "by", "down", "for", "from", "home", "in", "into",
        "of", "off", "on", "or", "out", "over", "so", "that", "the", "then", "there", "through",
        "to", "too", "under", "up", "when", "while", "with",
    }
)


@dataclass
class PronounResolution:
    text: str
    unresolved: list[str] = field(default_factory=list)
    antecedents: dict[str, str] = field(default_factory=dict)


class PronounResolver:
    """
    Replace singular gendered pronouns with the name of their most plausible antecedent.

    For each gender the antecedent is the latest matching character named within the
    first characters of the page, else the latest matching character of the previous
    scene, else the first matching character found while scanning the story.
    """

    def resolve(
        self,
        text: str,
        previous_scene: "Scene | None",
        registry: CharacterRegistry,
    ) -> PronounResolution:
        antecedents: dict[Gender, Character | None] = {
            gender: self._antecedent(text, gender, previous_scene, registry)
            for gender in ("male", "female")
        }
        unresolved: list[str] = []

        def _substitute(match: re.Match[str]) -> str:
            pronoun = match.group(1)
            lowered = pronoun.lower()
            gender = SUBJECT_PRONOUNS.get(lowered) or OBJECT_PRONOUNS.get(lowered) or POSSESSIVE_PRONOUNS[lowered]
            character = antecedents.get(gender)
            if character is None:
                if lowered not in unresolved:
                    unresolved.append(lowered)
                return pronoun

            if lowered in ("his", "hers"):
                return f"{character.name}'s"
            if lowered == "her" and _is_possessive(text, match.end()):
                return f"{character.name}'s"
            return character.name

        resolved = _PRONOUN_PATTERN.sub(_substitute, text)
        if unresolved:
            logger.debug("Unresolved pronouns left in page text: %s", ", ".join(unresolved))

        return PronounResolution(
            text=resolved,
            unresolved=unresolved,
            antecedents={gender: character.name for gender, character in antecedents.items() if character},
        )

    @staticmethod
    def _antecedent(
        text: str,
        gender: Gender,
        previous_scene: "Scene | None",
        registry: CharacterRegistry,
    ) -> Character | None:
        leading: Character | None = None
        for match in NAME_TOKEN.finditer(text):
            if match.start() >= _LEADING_WINDOW:
                break
            character = registry.get(match.group(0))
            if character is not None and character.gender == gender:
                leading = character
        if leading is not None:
            return leading

        if previous_scene is not None:
            for character in reversed(previous_scene.characters):
                if character.gender == gender:
                    return registry.get(character.name) or character

        return registry.first_of_gender(gender)


def _is_possessive(text: str, position: int) -> bool:
    following = _NEXT_WORD.match(text, position)
    if following is None:
        return False
    word = following.group(1).lower()
    if word in _OBJECT_FOLLOWERS:
        return False
    if word.endswith("ly") and len(word) > 4:
        return False
    return True
