"""
Keyword-table extraction of the visual elements a page's illustration must show.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from .characters import CharacterRegistry
from .lexicon import NAME_TOKEN, is_name_token

logger = logging.getLogger(__name__)

UNSPECIFIED_SETTING = "unspecified location"
DEFAULT_ACTION = "exploring"
DEFAULT_MOOD = "peaceful"

UNDERWATER_CUES = re.compile(
    r"\b(underwater|beneath|submerged|plunged into|depths|deep)\b", re.IGNORECASE
)
_BEACH_CUES = re.compile(r"\b(beach|shore|sand|coast)\b", re.IGNORECASE)
_OCEAN_CUE = re.compile(r"\bocean\b", re.IGNORECASE)


def _keywords(*words: str) -> re.Pattern[str]:
    ordered = sorted(words, key=len, reverse=True)
    return re.compile(r"\b(" + "|".join(re.escape(word) for word in ordered) + r")\b", re.IGNORECASE)


SETTING_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("water", _keywords(
        "ocean", "sea", "underwater", "lake", "river", "pond", "beach", "waves", "depths",
        "waters", "water", "aquatic", "marine", "coral reef", "reef", "shore",
    )),
    ("forest", _keywords("forest", "woods", "trees", "jungle", "grove", "woodland", "meadow")),
    ("home", _keywords(
        "home", "house", "room", "bedroom", "kitchen", "living room", "yard", "garden", "backyard",
    )),
    ("sky", _keywords("sky", "clouds", "flying", "air", "heaven", "atmosphere", "rainbow")),
    ("mountain", _keywords("mountain", "mountains", "hill", "hills", "peak", "cliff", "valley", "cave")),
    ("city", _keywords("city", "town", "street", "building", "neighborhood", "urban", "market", "park")),
    ("school", _keywords("school", "classroom", "playground", "library")),
    ("fantasy", _keywords("castle", "kingdom", "magical", "enchanted", "fairyland", "palace", "tower")),
)

ACTION_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("movement", _keywords(
        "swim", "swam", "swimming", "dive", "dove", "diving", "plunge", "plunged", "plunging",
        "fly", "flew", "flying", "run", "ran", "running", "walk", "walked", "walking",
        "jump", "jumped", "jumping", "climb", "climbed", "climbing",
    )),
    ("interaction", _keywords(
        "meet", "met", "meeting", "talk", "talked", "talking", "play", "played", "playing",
        "help", "helped", "helping", "share", "shared", "sharing", "teach", "taught", "teaching",
        "greet", "greeted",
    )),
    ("discovery", _keywords(
        "find", "found", "finding", "discover", "discovered", "discovering", "explore",
        "explored", "exploring", "search", "searched", "searching", "learn", "learned", "learning",
    )),
    ("emotion", _keywords(
        "smile", "smiled", "smiling", "laugh", "laughed", "laughing", "cry", "cried", "crying",
        "hug", "hugged", "hugging",
    )),
)

# "to explore" states what the character set out to do, which outranks the verb tables.
_PURPOSE_VERBS = (
    "swim", "dive", "fly", "run", "walk", "jump", "climb", "meet", "talk", "play", "help",
    "share", "teach", "find", "discover", "explore", "search", "learn", "build", "dance",
    "paint", "sing", "read",
)
_PURPOSE_CLAUSE = re.compile(r"\bto (" + "|".join(_PURPOSE_VERBS) + r")\b", re.IGNORECASE)

# (pattern, label); a ``None`` label keeps the matched word.
MOOD_PATTERNS: tuple[tuple[re.Pattern[str], str | None], ...] = (
    (_keywords("happy", "excited", "joyful", "cheerful", "peaceful", "calm", "content", "proud", "brave", "confident"), None),
    (_keywords("adventure", "adventurous", "curious", "explore", "discover", "journey", "quest"), "adventurous"),
    (_keywords("magical", "wonder", "amazing", "enchanted", "mystical", "fantastic", "extraordinary"), "magical"),
    (_keywords("cozy", "warm", "comfortable", "safe", "gentle", "quiet", "serene"), "cozy"),
    (_keywords("sad", "scared", "afraid", "worried", "lonely", "nervous", "crying", "cried"), "sad"),
)

_OBJECT_PATTERN = _keywords(
    "crown", "toothbrush", "brush", "book", "toy", "ball", "flower", "treasure", "chest", "key",
    "door", "window", "boat", "ship", "shell", "map", "lantern", "kite", "wand", "umbrella",
    "blanket", "teddy bear", "bucket", "basket", "backpack",
)
_DESCRIBED_OBJECT_PATTERN = re.compile(
    r"\b(magical|glowing|sparkling|shiny|golden|silver)\s+([a-z]+)\b", re.IGNORECASE
)
_TIME_PATTERN = _keywords(
    "morning", "afternoon", "evening", "night", "sunset", "sunrise", "dawn", "dusk", "noon", "midnight",
)
_WEATHER_PATTERN = _keywords("sunny", "rainy", "stormy", "cloudy", "foggy", "misty", "windy", "snowy")

_NAMED_PATTERN = re.compile(r"\b(?:named|called)\s+([A-Z][a-z]+)\b")
_CANDIDATE_PATTERNS = (
    re.compile(r"\b([A-Z][a-z]+)\s+(?:(?:the|a|an)\s+)?(?:and|met|saw|found|with)\b"),
    re.compile(r"\b([A-Z][a-z]+)(?:'s|,)"),
)


@dataclass
class SceneElements:
    """
    What a page's illustration has to show, as literal words taken from the page.
    """

    setting: str
    action: str = DEFAULT_ACTION
    characters: list[str] = field(default_factory=list)
    mood: str = DEFAULT_MOOD
    key_objects: list[str] = field(default_factory=list)
    specific_location: str | None = None
    time_of_day: str | None = None
    weather: str | None = None

    @property
    def location(self) -> str:
        return self.specific_location or self.setting

    @property
    def is_underwater(self) -> bool:
        return self.specific_location == "underwater"

    def as_dict(self) -> dict[str, Any]:
        return {
            "setting": self.setting,
            "specific_location": self.specific_location,
            "action": self.action,
            "characters": list(self.characters),
            "mood": self.mood,
            "key_objects": list(self.key_objects),
            "time_of_day": self.time_of_day,
            "weather": self.weather,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SceneElements":
        return cls(
            setting=str(data.get("setting") or UNSPECIFIED_SETTING),
            specific_location=data.get("specific_location") or None,
            action=str(data.get("action") or DEFAULT_ACTION),
            characters=[str(name) for name in data.get("characters") or []],
            mood=str(data.get("mood") or DEFAULT_MOOD),
            key_objects=[str(item) for item in data.get("key_objects") or []],
            time_of_day=data.get("time_of_day") or None,
            weather=data.get("weather") or None,
        )


class SceneExtractor:
    """
    Extract `SceneElements` from (pronoun-resolved) page text.

    The page's first name-like word always counts. With a registry, other capitalized
    words only count as characters when the registry knows them; without one every
    pattern candidate is kept.
    """

    def __init__(self, registry: CharacterRegistry | None = None) -> None:
        self.registry = registry

    def extract(self, text: str, previous: SceneElements | None = None) -> SceneElements:
        setting, specific_location = extract_setting(text)
        if setting is None:
            if previous is not None and previous.setting != UNSPECIFIED_SETTING:
                setting, specific_location = previous.setting, previous.specific_location
                logger.debug("No location cue on page; carrying forward %s", previous.location)
            else:
                setting, specific_location = UNSPECIFIED_SETTING, None

        characters = self._extract_characters(text)
        if previous is not None:
            for name in previous.characters:
                if name not in characters and self._is_referenced(name, text):
                    characters.append(name)

        return SceneElements(
            setting=setting,
            specific_location=specific_location,
            action=extract_action(text),
            characters=characters,
            mood=extract_mood(text),
            key_objects=extract_key_objects(text),
            time_of_day=_first_keyword(_TIME_PATTERN, text),
            weather=_first_keyword(_WEATHER_PATTERN, text),
        )

    def _extract_characters(self, text: str) -> list[str]:
        found: dict[str, int] = {}

        def _add(name: str, position: int) -> None:
            if name not in found or position < found[name]:
                found[name] = position

        for match in _NAMED_PATTERN.finditer(text):
            _add(match.group(1), match.start(1))

        # probable protagonist of the page
        for match in NAME_TOKEN.finditer(text):
            if is_name_token(match.group(0)):
                _add(match.group(0), match.start())
                break

        if self.registry is not None:
            for match in NAME_TOKEN.finditer(text):
                if match.group(0) in self.registry:
                    _add(match.group(0), match.start())
        else:
            for pattern in _CANDIDATE_PATTERNS:
                for match in pattern.finditer(text):
                    if is_name_token(match.group(1)):
                        _add(match.group(1), match.start(1))

        return [name for name, _ in sorted(found.items(), key=lambda item: item[1])]

    def _is_referenced(self, name: str, text: str) -> bool:
        lowered = text.lower()
        if re.search(rf"\b{re.escape(name.lower())}\b", lowered):
            return True
        character = self.registry.get(name) if self.registry is not None else None
        if character is None:
            return False
        return any(re.search(rf"\b{re.escape(alias)}\b", lowered) for alias in character.descriptive_aliases())


def extract_setting(text: str) -> tuple[str | None, str | None]:
    """
    Return ``(category, specific_location)`` for the first matching setting category.
    """
    for category, pattern in SETTING_PATTERNS:
        match = pattern.search(text)
        if match is None:
            continue
        specific = match.group(1).lower()
        if category == "water":
            if UNDERWATER_CUES.search(text):
                specific = "underwater"
            elif _BEACH_CUES.search(text):
                specific = "beach"
            elif _OCEAN_CUE.search(text):
                specific = "ocean"
        return category, specific
    return None, None


def extract_action(text: str) -> str:
    purpose = _PURPOSE_CLAUSE.search(text)
    if purpose is not None:
        return purpose.group(1).lower()
    for _, pattern in ACTION_PATTERNS:
        match = pattern.search(text)
        if match is not None:
            return match.group(1).lower()
    return DEFAULT_ACTION


def extract_mood(text: str) -> str:
    for pattern, label in MOOD_PATTERNS:
        match = pattern.search(text)
        if match is not None:
            return label or match.group(1).lower()
    return DEFAULT_MOOD


def extract_key_objects(text: str) -> list[str]:
    found: list[tuple[int, str]] = []
    seen: set[str] = set()
    for pattern in (_DESCRIBED_OBJECT_PATTERN, _OBJECT_PATTERN):
        for match in pattern.finditer(text):
            item = match.group(0).lower()
            # "golden key" already covers "key"
            if item in seen or any(item in existing.split() for existing in seen):
                continue
            seen.add(item)
            found.append((match.start(), item))
    return [item for _, item in sorted(found)]


def describe_elements(elements: SceneElements, characters: Sequence[str] | None = None) -> str:
    """
    Render scene elements as a one-line summary, e.g. for the next page's context.
    """
    names = list(characters if characters is not None else elements.characters)
    who = " and ".join(names) if names else "The characters"
    parts = [f"{who} {elements.action} in the {elements.location}"]
    if elements.time_of_day:
        parts.append(f"during the {elements.time_of_day}")
    summary = " ".join(parts)
    if elements.key_objects:
        summary += f" with {', '.join(elements.key_objects)}"
    return f"{summary}; mood: {elements.mood}."


def _first_keyword(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1).lower() if match else None
