"""
Per-page scene assembly: pronoun resolution, element extraction and interactions.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from .characters import Character, CharacterRegistry
from .lexicon import is_name_token
from .pages import StoryPage
from .pronouns import PronounResolver
from .scene_extractor import UNSPECIFIED_SETTING, SceneElements, SceneExtractor

logger = logging.getLogger(__name__)

_INTERACTION_PATTERNS: tuple[tuple[re.Pattern[str], str | None], ...] = (
    (
        re.compile(r"\b([A-Z][a-z]+) bent down\b[^.!?]*?\b(?:asked|told|hugged|to|and)\s+([A-Z][a-z]+)\b(?!')"),
        "bent down",
    ),
    (
        re.compile(r"\b([A-Z][a-z]+) (asked|told|showed|gave|helped|hugged|greeted) ([A-Z][a-z]+)\b(?!')"),
        None,
    ),
    (
        re.compile(
            r"\b([A-Z][a-z]+) found (?:(?:[A-Z][a-z]+'s|his|her|their|a|an|the)\s+)?"
            r"(?:[a-z]+,?\s+){0,4}?([A-Z][a-z]+)\b(?!')"
        ),
        "found",
    ),
)


@dataclass(frozen=True)
class Interaction:
    actor: str
    verb: str
    target: str

    def as_dict(self) -> dict[str, str]:
        return {"actor": self.actor, "verb": self.verb, "target": self.target}


@dataclass
class Scene:
    """
    The semantic snapshot of one page; only the latest one is kept to inform the next.
    """

    page_number: int
    characters: list[Character]
    setting: str
    action: str
    emotion: str
    elements: SceneElements
    resolved_text: str
    interactions: list[Interaction] = field(default_factory=list)
    previous_setting: str | None = None

    @property
    def character_names(self) -> list[str]:
        return [character.name for character in self.characters]

    @property
    def is_multi_character(self) -> bool:
        return len(self.characters) > 1

    @property
    def moved(self) -> bool:
        return self.previous_setting is not None and self.previous_setting != self.setting

    def as_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "characters": self.character_names,
            "setting": self.setting,
            "previous_setting": self.previous_setting,
            "action": self.action,
            "emotion": self.emotion,
            "interactions": [interaction.as_dict() for interaction in self.interactions],
        }


@dataclass
class SceneAnalysis:
    scene: Scene
    unresolved_pronouns: list[str] = field(default_factory=list)

    @property
    def setting_missing(self) -> bool:
        return self.scene.elements.setting == UNSPECIFIED_SETTING


def extract_interactions(text: str) -> list[Interaction]:
    interactions: list[Interaction] = []
    for pattern, fixed_verb in _INTERACTION_PATTERNS:
        for match in pattern.finditer(text):
            actor = match.group(1)
            target = match.group(match.lastindex or 1)
            verb = fixed_verb or match.group(2)
            if actor == target or not (is_name_token(actor) and is_name_token(target)):
                continue
            interaction = Interaction(actor=actor, verb=verb, target=target)
            if interaction not in interactions:
                interactions.append(interaction)
    return interactions


class SceneAnalyzer:
    """
    Turn one page into a `Scene`, given the story's registry and the previous scene.
    """

    def __init__(
        self,
        registry: CharacterRegistry,
        *,
        resolver: PronounResolver | None = None,
        extractor: SceneExtractor | None = None,
    ) -> None:
        self.registry = registry
        self.resolver = resolver or PronounResolver()
        self.extractor = extractor or SceneExtractor(registry)

    def analyze(self, page: StoryPage, previous: Scene | None = None) -> SceneAnalysis:
        resolution = self.resolver.resolve(page.text, previous, self.registry)
        elements = self.extractor.extract(
            resolution.text,
            previous.elements if previous is not None else None,
        )

        characters = [
            self.registry.get(name) or Character(name=name)
            for name in elements.characters
        ]
        scene = Scene(
            page_number=page.page_number,
            characters=characters,
            setting=elements.location,
            action=elements.action,
            emotion=elements.mood,
            elements=elements,
            resolved_text=resolution.text,
            interactions=extract_interactions(resolution.text),
            previous_setting=previous.setting if previous is not None else None,
        )
        logger.debug(
            "Page %s scene: %s at %s (%s)",
            page.page_number,
            ", ".join(scene.character_names) or "no characters",
            scene.setting,
            scene.action,
        )
        return SceneAnalysis(scene=scene, unresolved_pronouns=list(resolution.unresolved))
