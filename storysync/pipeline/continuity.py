"""
Continuity helpers to keep storysync illustrations consistent across pages.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping, Sequence

from storysync.common import first_sentence, truncate

StoryTheme = Literal["fantasy", "realistic", "adventure", "educational", "magical"]
STORY_THEMES: tuple[str, ...] = ("fantasy", "realistic", "adventure", "educational", "magical")

DEFAULT_STORY_ARC: tuple[str, ...] = ("introduction", "problem", "journey", "climax", "resolution")
_TRANSITION_LIMIT = 80


@dataclass(frozen=True)
class WorldTemplate:
    world_description: str
    atmosphere_words: tuple[str, ...]
    avoid_words: tuple[str, ...]
    color_palettes: Mapping[str, str]
    default_palette: str

    def palette_for(self, art_style: str) -> str:
        return self.color_palettes.get(art_style, self.default_palette)


STORY_WORLD_TEMPLATES: dict[str, WorldTemplate] = {
    "fantasy": WorldTemplate(
        world_description="a magical kingdom with castles, enchanted forests, and mystical creatures",
        atmosphere_words=("magical", "enchanted", "mystical", "ethereal", "wondrous"),
        avoid_words=("modern", "technology", "cars", "phones", "computers"),
        color_palettes={
            "studio_ghibli": "soft pastels with magical glows, deep forest greens, sky blues",
            "disney_pixar_3d": "vibrant jewel tones, golden accents, rich purples and blues",
            "classic_fairytale": "muted vintage colors with gold leaf accents",
        },
        default_palette="vibrant jewel tones, golden accents, rich purples and blues",
    ),
    "realistic": WorldTemplate(
        world_description="a familiar everyday world with cozy homes and a friendly community",
        atmosphere_words=("warm", "familiar", "comfortable", "everyday", "relatable"),
        avoid_words=("magical", "fantasy", "dragons", "castles", "impossible"),
        color_palettes={
            "watercolor_illustration": "soft natural tones, gentle pastels",
            "disney_pixar_3d": "bright, cheerful colors with natural lighting",
            "chibi_kawaii": "pastel rainbow with pink and mint accents",
        },
        default_palette="bright, cheerful colors with natural lighting",
    ),
    "adventure": WorldTemplate(
        world_description="diverse landscapes from mountains to oceans, full of discovery",
        atmosphere_words=("exciting", "dynamic", "vast", "unexplored", "thrilling"),
        avoid_words=("boring", "static", "confined", "ordinary"),
        color_palettes={
            "dreamworks_animation": "dramatic contrasts, sunset oranges, ocean blues",
            "studio_ghibli": "natural earth tones with dramatic sky colors",
            "disney_pixar_3d": "vibrant nature colors, bright and saturated",
        },
        default_palette="vibrant nature colors, bright and saturated",
    ),
    "educational": WorldTemplate(
        world_description="a bright, curious world full of things to learn and discover",
        atmosphere_words=("curious", "bright", "inviting", "clear", "encouraging"),
        avoid_words=("scary", "violent", "confusing"),
        color_palettes={
            "watercolor_illustration": "clean pastel washes with clear accents",
            "disney_pixar_3d": "clear primary colors with friendly highlights",
        },
        default_palette="clear primary colors with friendly highlights",
    ),
    "magical": WorldTemplate(
        world_description="an everyday world touched by wishes, dreams and gentle magic",
        atmosphere_words=("dreamy", "whimsical", "glowing", "wondrous", "gentle"),
        avoid_words=("scary", "dark", "menacing"),
        color_palettes={
            "studio_ghibli": "soft pastels with glowing highlights",
            "chibi_kawaii": "pastel rainbow with sparkling accents",
            "classic_fairytale": "muted vintage palette with golden glows",
        },
        default_palette="soft pastels with glowing highlights",
    ),
}

_THEME_EXCLUSIONS: dict[str, tuple[str, ...]] = {
    "realistic": ("magical elements", "fantasy creatures", "impossible physics"),
    "fantasy": ("modern technology", "contemporary settings"),
}

_FEATURE_PATTERNS = (
    re.compile(r"\b((?:[a-z-]+\s+){0,2}(?:hair|pigtails|braids|ponytail|curls))\b", re.IGNORECASE),
    re.compile(r"\b((?:[a-z-]+\s+){0,2}eyes)\b", re.IGNORECASE),
    re.compile(
        r"\b((?:[a-z-]+\s+){0,2}(?:dress|shirt|t-shirt|outfit|clothes|swimsuit|overalls|jacket|sweater))\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b((?:[a-z-]+\s+){0,2}(?:glasses|hat|bow|ribbon|necklace|bracelet|backpack))\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b((?:[a-z-]+\s+){0,2}(?:skin|freckles))\b", re.IGNORECASE),
)
_FEATURE_FILLER = frozenset(
    {"a", "an", "and", "has", "her", "his", "in", "of", "the", "their", "with", "wearing", "wears", "is"}
)


@dataclass(frozen=True)
class MainCharacterProfile:
    name: str
    appearance: str = ""
    consistent_features: tuple[str, ...] = ()
    age: str = ""
    personality_traits: tuple[str, ...] = ()


@dataclass(frozen=True)
class SettingProfile:
    world: str
    time_of_day: str = "day"
    season: str = "spring"
    location_details: tuple[str, ...] = ()
    atmosphere: str = ""


@dataclass(frozen=True)
class VisualStyle:
    color_palette: str
    lighting_style: str = ""
    mood_tone: str = ""


@dataclass
class NarrativeProgression:
    current_page: int = 1
    total_pages: int = 1
    story_arc: tuple[str, ...] = DEFAULT_STORY_ARC
    previous_page_summary: str | None = None


@dataclass
class StoryVisualContext:
    """
    Story-wide visual facts every page prompt has to agree with.

    Only `narrative_progression` changes during a pass, through `advance_to_page`.
    """

    story_id: str
    theme: str
    main_character: MainCharacterProfile
    setting: SettingProfile
    visual_style: VisualStyle
    narrative_progression: NarrativeProgression = field(default_factory=NarrativeProgression)

    @property
    def world_template(self) -> WorldTemplate:
        return STORY_WORLD_TEMPLATES.get(self.theme, STORY_WORLD_TEMPLATES["realistic"])

    def advance_to_page(self, page_number: int, summary: str | None = None) -> None:
        current = self.narrative_progression.current_page
        if page_number < current:
            raise ValueError(
                f"Cannot move story {self.story_id!r} back from page {current} to page {page_number}."
            )
        self.narrative_progression.current_page = page_number
        if summary is not None:
            self.narrative_progression.previous_page_summary = summary

    def as_dict(self) -> dict[str, Any]:
        progression = self.narrative_progression
        return {
            "story_id": self.story_id,
            "theme": self.theme,
            "main_character": {
                "name": self.main_character.name,
                "appearance": self.main_character.appearance,
                "consistent_features": list(self.main_character.consistent_features),
                "age": self.main_character.age,
                "personality_traits": list(self.main_character.personality_traits),
            },
            "setting": {
                "world": self.setting.world,
                "time_of_day": self.setting.time_of_day,
                "season": self.setting.season,
                "location_details": list(self.setting.location_details),
                "atmosphere": self.setting.atmosphere,
            },
            "visual_style": {
                "color_palette": self.visual_style.color_palette,
                "lighting_style": self.visual_style.lighting_style,
                "mood_tone": self.visual_style.mood_tone,
            },
            "narrative_progression": {
                "current_page": progression.current_page,
                "total_pages": progression.total_pages,
                "story_arc": list(progression.story_arc),
                "previous_page_summary": progression.previous_page_summary,
            },
        }


@dataclass(frozen=True)
class PageContinuityRequirement:
    """
    Continuity constraints for a single page prompt.
    """

    page_number: int
    must_include: tuple[str, ...] = ()
    must_maintain: tuple[str, ...] = ()
    cannot_include: tuple[str, ...] = ()
    transition_from: str | None = None
    transition_to: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "must_include": list(self.must_include),
            "must_maintain": list(self.must_maintain),
            "cannot_include": list(self.cannot_include),
            "transition_from": self.transition_from,
            "transition_to": self.transition_to,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PageContinuityRequirement":
        return cls(
            page_number=int(data["page_number"]),
            must_include=tuple(str(item) for item in data.get("must_include") or ()),
            must_maintain=tuple(str(item) for item in data.get("must_maintain") or ()),
            cannot_include=tuple(str(item) for item in data.get("cannot_include") or ()),
            transition_from=data.get("transition_from") or None,
            transition_to=data.get("transition_to") or None,
        )


class StoryContinuityManager:
    """
    Produces per-page continuity requirements and keeps their history for one story.
    """

    def __init__(self, context: StoryVisualContext) -> None:
        self.context = context
        self._history: dict[int, PageContinuityRequirement] = {}

    @property
    def history(self) -> Mapping[int, PageContinuityRequirement]:
        return MappingProxyType(self._history)

    def requirements_for(self, page_number: int, page_text: str) -> PageContinuityRequirement:
        context = self.context
        character = context.main_character

        must_maintain = [
            f"{character.name} with EXACTLY: {', '.join(character.consistent_features)}",
            f"Setting: {context.setting.world}",
            f"Atmosphere: {context.setting.atmosphere}",
            f"Color palette: {context.visual_style.color_palette}",
        ]

        must_include: list[str] = []
        transition_from: str | None = None
        if page_number == 1:
            must_include.extend(
                [
                    f"Establishing shot of {context.setting.world}",
                    f"Clear view of {character.name}'s full appearance",
                ]
            )
        else:
            previous = self._history.get(page_number - 1)
            if previous is not None:
                if previous.transition_to:
                    transition_from = f'Continue from: "{previous.transition_to}"'
                else:
                    transition_from = "Continue from: previous scene"

        opening = first_sentence(page_text)
        requirement = PageContinuityRequirement(
            page_number=page_number,
            must_include=tuple(must_include),
            must_maintain=tuple(must_maintain),
            cannot_include=theme_exclusions(context.theme),
            transition_from=transition_from,
            transition_to=truncate(opening, _TRANSITION_LIMIT) if opening else None,
        )
        self._history[page_number] = requirement
        return requirement

    def advance_to_page(self, page_number: int, summary: str | None = None) -> None:
        self.context.advance_to_page(page_number, summary)


def theme_exclusions(theme: str) -> tuple[str, ...]:
    if theme in _THEME_EXCLUSIONS:
        return _THEME_EXCLUSIONS[theme]
    template = STORY_WORLD_TEMPLATES.get(theme)
    return template.avoid_words if template else ()


def detect_story_theme(text: str) -> str:
    """
    Guess the story theme from free text such as a template description or the story itself.
    """
    lowered = text.lower()
    if any(word in lowered for word in ("magical", "fantasy", "dragon")):
        return "fantasy"
    if any(word in lowered for word in ("adventure", "journey", "quest")):
        return "adventure"
    if any(word in lowered for word in ("learn", "science", "discover")):
        return "educational"
    if any(word in lowered for word in ("magic", "wish", "dream")):
        return "magical"
    return "realistic"


def extract_consistent_features(description: str) -> list[str]:
    """
    Pull the visual features that must never change (hair, eyes, clothing, accessories).

    ``"a girl with brown pigtails and green eyes"`` gives
    ``["brown pigtails", "green eyes"]``.
    """
    features: list[str] = []
    for pattern in _FEATURE_PATTERNS:
        match = pattern.search(description)
        if match is None:
            continue
        words = match.group(1).split()
        while len(words) > 1 and words[0].lower() in _FEATURE_FILLER:
            words = words[1:]
        feature = " ".join(words)
        if feature.lower() not in {existing.lower() for existing in features}:
            features.append(feature)
    return features


def derive_story_seed(story_id: str, character_name: str, features: Sequence[str] = ()) -> int:
    """
    Deterministic render seed shared by every page of a story.
    """
    hasher = hashlib.blake2b(digest_size=8)
    hasher.update(story_id.strip().lower().encode("utf-8"))
    hasher.update(character_name.strip().lower().encode("utf-8"))
    for feature in features:
        hasher.update(feature.strip().lower().encode("utf-8"))
    seed = int.from_bytes(hasher.digest(), "big") % 2_147_483_647
    return seed or 1
