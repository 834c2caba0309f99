"""
Scores a candidate image prompt against the scene elements of its story page.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Literal, Mapping

from storysync.common import deduplicate
from storysync.story_understanding.lexicon import ANIMAL_WORDS
from storysync.story_understanding.scene_extractor import SceneElements

Severity = Literal["error", "warning"]

_SEVERITY_WEIGHT = {"error": 2, "warning": 1}

_SUBMERSION_CUES = re.compile(
    r"\b(underwater|submerged|ocean depths|beneath the (?:water|waves|sea|surface))\b", re.IGNORECASE
)
_PROMPT_SUBMERSION = re.compile(r"\b(underwater|submerged|beneath the water)\b", re.IGNORECASE)
_ANIMAL_ENCOUNTER = re.compile(
    r"\b(?:met|meet|meets|with|saw|found)\s+(?:a|an|the)\s+(?:[a-z]+\s+){0,2}?("
    + "|".join(sorted(ANIMAL_WORDS, key=len, reverse=True))
    + r")\b",
    re.IGNORECASE,
)
_LAND_POSTURES = re.compile(r"\b(standing|walking|on the ground)\b", re.IGNORECASE)
_QUOTED = re.compile(r'"[^"]*"')


@dataclass(frozen=True)
class RuleFailure:
    message: str
    directive: str


@dataclass(frozen=True)
class ValidationRule:
    name: str
    severity: Severity
    suggestion: str
    check: Callable[[str, str, SceneElements], RuleFailure | None]

    @property
    def weight(self) -> int:
        return _SEVERITY_WEIGHT[self.severity]


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one prompt.

    ``repairs`` holds one additive directive per failed rule, in rule order.
    """

    valid: bool
    score: int
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    repairs: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "score": self.score,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "suggestions": list(self.suggestions),
            "repairs": list(self.repairs),
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ValidationResult":
        return cls(
            valid=bool(data.get("valid")),
            score=int(data.get("score", 0)),
            errors=tuple(data.get("errors") or ()),
            warnings=tuple(data.get("warnings") or ()),
            suggestions=tuple(data.get("suggestions") or ()),
            repairs=tuple(data.get("repairs") or ()),
        )


def _contains(prompt: str, term: str) -> bool:
    return term.lower() in prompt.lower()


def _check_setting(_: str, prompt: str, elements: SceneElements) -> RuleFailure | None:
    if _contains(prompt, elements.location):
        return None
    return RuleFailure(
        message=f"Prompt missing required setting/location: {elements.location}",
        directive=f"SETTING: The scene takes place in the {elements.location}.",
    )


def _check_main_character(_: str, prompt: str, elements: SceneElements) -> RuleFailure | None:
    if not elements.characters or _contains(prompt, elements.characters[0]):
        return None
    name = elements.characters[0]
    return RuleFailure(
        message=f"Main character not mentioned in prompt: {name}",
        directive=f"Show {name} clearly as the main character of the scene.",
    )


def _check_supporting_characters(_: str, prompt: str, elements: SceneElements) -> RuleFailure | None:
    missing = [name for name in elements.characters[1:] if not _contains(prompt, name)]
    if not missing:
        return None
    names = ", ".join(missing)
    return RuleFailure(
        message=f"Supporting characters missing from prompt: {names}",
        directive=f"Include {names} in the scene, clearly visible alongside {elements.characters[0]}.",
    )


def _check_action(_: str, prompt: str, elements: SceneElements) -> RuleFailure | None:
    if any(_contains(prompt, word) for word in elements.action.split()):
        return None
    return RuleFailure(
        message=f"Action from story not represented in prompt: {elements.action}",
        directive=f"Show the action from the story: {elements.action}.",
    )


def _check_underwater(story: str, prompt: str, elements: SceneElements) -> RuleFailure | None:
    if not (elements.is_underwater or _SUBMERSION_CUES.search(story)):
        return None
    if _PROMPT_SUBMERSION.search(prompt):
        return None
    return RuleFailure(
        message="Underwater scene not clearly specified",
        directive="The scene is completely underwater: the characters are submerged with water all around them.",
    )


def _check_animal(story: str, prompt: str, _: SceneElements) -> RuleFailure | None:
    match = _ANIMAL_ENCOUNTER.search(story)
    if match is None:
        return None
    animal = match.group(1).lower()
    if _contains(prompt, animal):
        return None
    return RuleFailure(
        message=f"Animal character mentioned in story missing from prompt: {animal}",
        directive=f"Include the {animal} from the story, clearly visible.",
    )


def _check_key_objects(_: str, prompt: str, elements: SceneElements) -> RuleFailure | None:
    if not elements.key_objects:
        return None
    missing = [item for item in elements.key_objects if not _contains(prompt, item)]
    present = len(elements.key_objects) - len(missing)
    if present >= math.ceil(len(elements.key_objects) / 2):
        return None
    return RuleFailure(
        message=f"Important objects from story not included: {', '.join(missing)}",
        directive=f"Include these objects from the story: {', '.join(missing)}.",
    )


def _without_quotes(story: str, prompt: str) -> str:
    """
    The prompt's own wording: quoted story text and quoted actions are the story speaking.
    """
    stripped = prompt.replace(story.strip(), " ") if story.strip() else prompt
    return _QUOTED.sub(" ", stripped)


def _check_contradictions(story: str, prompt: str, elements: SceneElements) -> RuleFailure | None:
    own_words = _without_quotes(story, prompt)
    if elements.is_underwater and _LAND_POSTURES.search(own_words):
        return RuleFailure(
            message="Prompt contains contradictions with story: land posture in an underwater scene",
            directive="The characters swim or float in the water throughout the scene.",
        )
    if re.search(r"\bnight\b", story, re.IGNORECASE) and re.search(r"\bsunny\b", own_words, re.IGNORECASE):
        return RuleFailure(
            message="Prompt contains contradictions with story: daylight in a night scene",
            directive="Show the scene at night, as the story describes.",
        )
    return None


VALIDATION_RULES: tuple[ValidationRule, ...] = (
    ValidationRule("setting_match", "error", "Add the specific location mentioned in the story", _check_setting),
    ValidationRule("main_character_present", "error", "Include the character name explicitly", _check_main_character),
    ValidationRule(
        "supporting_characters_present",
        "error",
        "Include every character mentioned in the story text",
        _check_supporting_characters,
    ),
    ValidationRule("action_represented", "warning", "Describe what the character is doing", _check_action),
    ValidationRule(
        "underwater_specificity",
        "error",
        'Explicitly state "underwater" or "submerged" for ocean depth scenes',
        _check_underwater,
    ),
    ValidationRule(
        "animal_character_present",
        "error",
        "Include every character mentioned in the story text",
        _check_animal,
    ),
    ValidationRule("key_objects_included", "warning", "Include key objects mentioned in the story", _check_key_objects),
    ValidationRule("no_contradictions", "error", "Ensure prompt elements match story context", _check_contradictions),
)

TOTAL_WEIGHT = sum(rule.weight for rule in VALIDATION_RULES)


def validate_prompt(story_text: str, prompt: str, scene_elements: SceneElements) -> ValidationResult:
    """
    Run every rule in order and score the prompt.

    Errors weigh 2 and warnings 1; the prompt is valid when no error-severity rule failed.
    """
    errors: list[str] = []
    warnings: list[str] = []
    suggestions: list[str] = []
    repairs: list[str] = []
    passed_weight = 0

    for rule in VALIDATION_RULES:
        failure = rule.check(story_text, prompt, scene_elements)
        if failure is None:
            passed_weight += rule.weight
            continue
        if rule.severity == "error":
            errors.append(failure.message)
        else:
            warnings.append(failure.message)
        suggestions.append(rule.suggestion)
        repairs.append(failure.directive)

    return ValidationResult(
        valid=not errors,
        score=round(100 * passed_weight / TOTAL_WEIGHT),
        errors=tuple(errors),
        warnings=tuple(warnings),
        suggestions=tuple(deduplicate(suggestions)),
        repairs=tuple(repairs),
    )
