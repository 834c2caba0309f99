"""
Whole-story character discovery: names, genders, roles and relationships.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator

from .lexicon import (
    FEMALE_TERMS,
    MALE_TERMS,
    Gender,
    gender_from_name_ending,
    gender_from_terms,
    is_name_token,
    is_verb_like,
    split_sentences,
)
from .pages import StoryPage

logger = logging.getLogger(__name__)

_RELATION_PATTERN = re.compile(
    r"\b([A-Z][a-z]+) found (?:his|her|their) ([a-z]+(?: [a-z]+){0,2}),? ([A-Z][a-z]+)\b"
)
_INTRO_PATTERN = re.compile(r"\b([A-Z][a-z]+), (?:a|an|the) ([^,.;!?]{2,80})[,.;!?]")
_NAMING_PATTERN = re.compile(
    r"\b(?:a|an|the) ((?:[a-z]+ ){0,3}?[a-z]+) (?:named|called) ([A-Z][a-z]+)\b"
)
_ACTOR_PATTERN = re.compile(r"\b([A-Z][a-z]+) ([a-z]+)\b")
_AGE_PATTERN = re.compile(r"\b(\d{1,2})[- ]years?[- ]old\b", re.IGNORECASE)
_WORD = re.compile(r"[A-Za-z']+")
_DESCRIPTOR_HEAD = re.compile(r"\s*(?:[A-Z][a-z]+)?[\s,]*(?:is\s+)?(?:a|an|the)\s+([^,.;!?]+)", re.IGNORECASE)

_RELATION_QUALIFIERS = {
    "older": "younger",
    "younger": "older",
    "big": "little",
    "little": "big",
    "baby": "big",
    "best": "best",
    "twin": "twin",
}

# base relation -> (reciprocal for a male, for a female, for unknown gender)
_RECIPROCAL_BASES: dict[str, tuple[str, str, str]] = {
    "brother": ("brother", "sister", "sibling"),
    "sister": ("brother", "sister", "sibling"),
    "sibling": ("brother", "sister", "sibling"),
    "mother": ("son", "daughter", "child"),
    "father": ("son", "daughter", "child"),
    "mom": ("son", "daughter", "child"),
    "dad": ("son", "daughter", "child"),
    "parent": ("son", "daughter", "child"),
    "son": ("father", "mother", "parent"),
    "daughter": ("father", "mother", "parent"),
    "child": ("father", "mother", "parent"),
    "grandmother": ("grandson", "granddaughter", "grandchild"),
    "grandfather": ("grandson", "granddaughter", "grandchild"),
    "grandma": ("grandson", "granddaughter", "grandchild"),
    "grandpa": ("grandson", "granddaughter", "grandchild"),
    "grandson": ("grandfather", "grandmother", "grandparent"),
    "granddaughter": ("grandfather", "grandmother", "grandparent"),
    "aunt": ("nephew", "niece", "nibling"),
    "uncle": ("nephew", "niece", "nibling"),
    "nephew": ("uncle", "aunt", "relative"),
    "niece": ("uncle", "aunt", "relative"),
    "cousin": ("cousin", "cousin", "cousin"),
    "friend": ("friend", "friend", "friend"),
}

_PRONOUN_GENDER: dict[str, Gender] = {
    "he": "male",
    "his": "male",
    "him": "male",
    "she": "female",
    "her": "female",
    "hers": "female",
}


@dataclass
class Character:
    """
    A story character discovered from the page text.

    Gender and role are write-once: ``"other"`` and ``""`` count as unset and may be
    filled by later discoveries, anything else stays fixed for the story.
    """

    name: str
    gender: Gender = "other"
    role: str = ""
    age: str | None = None
    appearance: str = ""
    relationships: dict[str, str] = field(default_factory=dict)
    aliases: set[str] = field(default_factory=set)

    def merge(self, other: "Character") -> None:
        if self.gender == "other" and other.gender != "other":
            self.gender = other.gender
        if not self.role and other.role:
            self.role = other.role
        if self.age is None and other.age is not None:
            self.age = other.age
        if not self.appearance and other.appearance:
            self.appearance = other.appearance
        for name, relation in other.relationships.items():
            self.relationships.setdefault(name, relation)
        self.aliases |= other.aliases
        self.aliases |= generate_aliases(self.name, self.gender, self.role)

    def descriptive_aliases(self) -> list[str]:
        """Aliases that name the character without being pronouns, longest first."""
        candidates = [
            alias for alias in self.aliases if alias not in _PRONOUN_GENDER and " " in alias
        ]
        return sorted(candidates, key=lambda alias: (-len(alias), alias))

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "gender": self.gender,
            "role": self.role,
            "age": self.age,
            "appearance": self.appearance,
            "relationships": dict(self.relationships),
            "aliases": sorted(self.aliases),
        }


def generate_aliases(name: str, gender: Gender, role: str = "") -> set[str]:
    aliases = {name.lower()}
    if gender == "female":
        aliases.update({"she", "her", "hers", "the girl"})
    elif gender == "male":
        aliases.update({"he", "him", "his", "the boy"})

    role_words = [word for word in role.lower().split() if word.isalpha()]
    if role_words:
        aliases.add(f"the {role_words[-1]}")
        aliases.add(f"the {' '.join(role_words)}")
        if len(role_words) > 1:
            aliases.add(f"the {' '.join(role_words[-2:])}")
    return aliases


def reciprocal_relation(relation: str, gender: Gender) -> str | None:
    """
    Return what the finder is to the found character, or ``None`` if the term is unknown.

    ``reciprocal_relation("younger brother", "female") == "older sister"``.
    """
    words = relation.lower().split()
    if not words:
        return None
    base = words[-1]
    if base not in _RECIPROCAL_BASES:
        return None

    male, female, neutral = _RECIPROCAL_BASES[base]
    reciprocal = {"male": male, "female": female}.get(gender, neutral)

    qualifiers = [_RELATION_QUALIFIERS.get(word) for word in words[:-1]]
    prefix = " ".join(word for word in qualifiers if word)
    return f"{prefix} {reciprocal}".strip()


def infer_gender(text: str, name: str, hint: str = "") -> Gender:
    """
    Infer a character's gender.

    Order: a pronoun directly after the name ("Emma, she" or "Sam he"), gendered
    terms in the ``hint`` phrase, then the name-ending heuristic as a last resort.
    """
    from_pronoun = _gender_from_adjacent_pronoun(text, name)
    if from_pronoun != "other":
        return from_pronoun

    from_terms = gender_from_terms(hint)
    if from_terms != "other":
        return from_terms

    return gender_from_name_ending(name)


def gender_from_description(description: str, name: str) -> Gender:
    """
    Gender stated by a character description such as "Emma, a girl with brown pigtails".

    Only the leading descriptor ("girl") and a pronoun directly after the name count;
    nouns further in ("her brother's jacket") describe someone else.
    """
    head = _DESCRIPTOR_HEAD.match(description)
    if head is not None:
        from_terms = gender_from_terms(head.group(1).split(" with ")[0])
        if from_terms != "other":
            return from_terms
    return _gender_from_adjacent_pronoun(description, name)


def _gender_from_adjacent_pronoun(text: str, name: str) -> Gender:
    for sentence in split_sentences(text):
        tokens = _WORD.findall(sentence)
        for index, token in enumerate(tokens):
            if token != name:
                continue
            if index + 1 < len(tokens):
                follower = tokens[index + 1].lower()
                if follower in _PRONOUN_GENDER:
                    return _PRONOUN_GENDER[follower]
    return "other"


def _role_from_descriptor(descriptor: str) -> str:
    for word in re.findall(r"[a-z]+", descriptor.lower()):
        if word in MALE_TERMS or word in FEMALE_TERMS or word in _RECIPROCAL_BASES:
            return word
    return ""


class CharacterRegistry:
    """
    Per-story table of characters, populated once from the full page set.
    """

    def __init__(self) -> None:
        self._characters: dict[str, Character] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._characters

    def __iter__(self) -> Iterator[Character]:
        return iter(self._characters.values())

    def __len__(self) -> int:
        return len(self._characters)

    def get(self, name: str) -> Character | None:
        return self._characters.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._characters)

    def first_of_gender(self, gender: Gender) -> Character | None:
        for character in self._characters.values():
            if character.gender == gender:
                return character
        return None

    def register(self, character: Character) -> Character:
        """
        Add a character, or merge its details into the existing entry of the same name.
        """
        existing = self._characters.get(character.name)
        if existing is not None:
            existing.merge(character)
            return existing

        character.aliases |= generate_aliases(character.name, character.gender, character.role)
        self._characters[character.name] = character
        logger.debug("Registered character %s (%s, %s)", character.name, character.gender, character.role or "no role")
        return character

    def build(self, pages: Iterable[StoryPage]) -> dict[str, Character]:
        """
        Scan every page once and return the name -> character mapping.
        """
        for page in pages:
            self._scan_relationships(page.text)
            self._scan_introductions(page.text)
            self._scan_namings(page.text)
            self._scan_actors(page.text)

        logger.info("Character registry built: %s", ", ".join(self._characters) or "(none)")
        return dict(self._characters)

    def as_dict(self) -> dict[str, dict[str, Any]]:
        return {name: character.as_dict() for name, character in self._characters.items()}

    def _scan_relationships(self, text: str) -> None:
        for match in _RELATION_PATTERN.finditer(text):
            finder, relation, found = match.group(1), match.group(2).strip(), match.group(3)
            if not (is_name_token(finder) and is_name_token(found)) or finder == found:
                continue

            finder_gender = infer_gender(text, finder)
            reciprocal = reciprocal_relation(relation, finder_gender)
            # the relation term names the found character directly
            found_gender = gender_from_terms(relation)
            if found_gender == "other":
                found_gender = infer_gender(text, found)

            found_character = Character(name=found, gender=found_gender, role=relation)
            finder_character = Character(
                name=finder,
                gender=finder_gender,
                relationships={found: relation},
            )
            if reciprocal is not None:
                finder_character.role = reciprocal
                found_character.relationships[finder] = reciprocal

            self.register(finder_character)
            self.register(found_character)

    def _scan_introductions(self, text: str) -> None:
        for match in _INTRO_PATTERN.finditer(text):
            name, descriptor = match.group(1), match.group(2).strip()
            if not is_name_token(name):
                continue
            age_match = _AGE_PATTERN.search(descriptor)
            self.register(
                Character(
                    name=name,
                    gender=infer_gender(text, name, hint=descriptor),
                    role=_role_from_descriptor(descriptor),
                    age=age_match.group(1) if age_match else None,
                    appearance=descriptor,
                )
            )

    def _scan_namings(self, text: str) -> None:
        for match in _NAMING_PATTERN.finditer(text):
            descriptor, name = match.group(1).strip(), match.group(2)
            if not is_name_token(name):
                continue
            self.register(
                Character(
                    name=name,
                    gender=infer_gender(text, name, hint=descriptor),
                    role=descriptor,
                    appearance=descriptor,
                )
            )

    def _scan_actors(self, text: str) -> None:
        for match in _ACTOR_PATTERN.finditer(text):
            name, word = match.group(1), match.group(2)
            if not is_name_token(name) or not is_verb_like(word):
                continue
            if name in self._characters:
                continue
            self.register(Character(name=name, gender=infer_gender(text, name)))
