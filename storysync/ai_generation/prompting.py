"""
Prompt construction for storysync page illustrations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from storysync.common import collect_note_lines
from storysync.story_understanding.scene import Interaction, Scene
from storysync.story_understanding.scene_extractor import UNSPECIFIED_SETTING

from .art_styles import ArtStyle, get_art_style, setting_adaptation

if TYPE_CHECKING:
    from storysync.pipeline.continuity import MainCharacterProfile, PageContinuityRequirement


def build_page_prompt(
    scene: Scene,
    character: "MainCharacterProfile",
    requirement: "PageContinuityRequirement",
    art_style: str,
    story_text: str,
    *,
    story_id: str = "story",
) -> str:
    """
    Build the draft illustration prompt for one page.

    Parameters
    ----------
    scene:
        The page's extracted scene; more than one character switches to the
        multi-character layout.
    character:
        The story's main character, whose consistent features are repeated verbatim.
    requirement:
        Continuity constraints produced for this page.
    art_style:
        Identifier from the art style catalogue.
    story_text:
        The raw page text, quoted in the action statement and at the end of the prompt.
    """
    if not story_text or not story_text.strip():
        raise ValueError("story_text must be a non-empty string.")

    style = get_art_style(art_style)
    if scene.is_multi_character:
        return _build_multi_character_prompt(scene, character, requirement, style, story_text.strip(), story_id)
    return _build_single_character_prompt(scene, character, requirement, style, story_text.strip())


def location_statement(scene: Scene) -> str:
    elements = scene.elements
    if elements.setting == UNSPECIFIED_SETTING:
        return f"Location: {UNSPECIFIED_SETTING}; keep the surroundings consistent with the previous page"
    if elements.is_underwater:
        return "Location: underwater. The scene is completely underwater, submerged beneath the water's surface"
    if elements.specific_location and elements.specific_location != elements.setting:
        return f"Location: {elements.specific_location} ({elements.setting} setting)"
    return f"Location: {elements.location}"


def _build_single_character_prompt(
    scene: Scene,
    character: "MainCharacterProfile",
    requirement: "PageContinuityRequirement",
    style: ArtStyle,
    story_text: str,
) -> str:
    elements = scene.elements
    sections: list[str] = []

    setting_lines = [f"{location_statement(scene)}."]
    adaptation = setting_adaptation(style.id, elements.location, elements.setting)
    if adaptation:
        setting_lines.append(f"Style setting: {adaptation}")
    if elements.time_of_day:
        setting_lines.append(f"Time of day: {elements.time_of_day}")
    if elements.weather:
        setting_lines.append(f"Weather: {elements.weather}")
    sections.append(_format_bullet_section("SETTING (MANDATORY)", setting_lines))

    sections.append(_format_bullet_section("MAIN CHARACTER", _identity_lines(character)))

    actor = scene.characters[0].name if scene.characters else character.name
    sections.append(
        _format_bullet_section(
            "ACTION",
            [f'{actor} is shown in the moment of "{elements.action}", exactly as the story says: "{story_text}"'],
        )
    )

    others = [item for item in scene.characters if item.name != character.name]
    if others:
        sections.append(
            _format_bullet_section(
                "OTHER CHARACTERS",
                [f"{item.name}: {item.role or item.appearance or 'as described in the story'}" for item in others],
            )
        )

    sections.append(_format_bullet_section("MOOD", [elements.mood]))

    if elements.key_objects:
        sections.append(_format_bullet_section("KEY OBJECTS", elements.key_objects))

    sections.extend(_continuity_sections(requirement))
    sections.append(_format_bullet_section("ART STYLE", _style_lines(style, character)))
    sections.append(f'STORY TEXT\n"{story_text}"')
    return "\n\n".join(sections)


def _build_multi_character_prompt(
    scene: Scene,
    character: "MainCharacterProfile",
    requirement: "PageContinuityRequirement",
    style: ArtStyle,
    story_text: str,
    story_id: str,
) -> str:
    elements = scene.elements
    count = len(scene.characters)
    blocks: list[str] = [f"[SCENE ID: {story_id}-page{scene.page_number}]"]

    roster = [
        "=== MANDATORY: ALL CHARACTERS MUST BE VISIBLE ===",
        f"This scene REQUIRES {count} characters ({count} characters required):",
    ]
    for index, member in enumerate(scene.characters, start=1):
        roster.append("")
        roster.append(f"CHARACTER {index}: {member.name}")
        if member.name == character.name:
            roster.append(f"- Appearance: {character.appearance or member.appearance}")
            roster.append(f"- Consistent features: {', '.join(character.consistent_features)}")
            roster.append("- This is the MAIN character who appears in ALL images")
            relations = [f"has a {relation} named {name}" for name, relation in member.relationships.items()]
        else:
            if member.role:
                roster.append(f"- Role: {member.role}")
            if member.gender != "other":
                roster.append(f"- Gender: {member.gender}")
            if member.appearance and member.appearance != member.role:
                roster.append(f"- Appearance: {member.appearance}")
            relations = [f"is the {member.role or 'companion'} of {name}" for name in member.relationships]
        if relations:
            roster.append(f"- Relationships: {', '.join(relations)}")
    blocks.append("\n".join(roster))

    if not any(member.name == character.name for member in scene.characters):
        blocks.append(_format_bullet_section("MAIN CHARACTER REFERENCE", _identity_lines(character)))

    setting = ["=== SCENE SETTING ===", f"{location_statement(scene)}."]
    if scene.moved:
        setting.append(f"(Scene has moved from {scene.previous_setting} to {scene.setting})")
    adaptation = setting_adaptation(style.id, elements.location, elements.setting)
    if adaptation:
        setting.append(f"Style setting: {adaptation}")
    if elements.time_of_day:
        setting.append(f"Time of day: {elements.time_of_day}")
    blocks.append("\n".join(setting))

    action = ["=== ACTION & POSITIONING ===", f'Main action: "{elements.action}"']
    if scene.interactions:
        action.append("Character interactions:")
        for interaction in scene.interactions:
            action.append(f"- {interaction.actor} {interaction.verb} {interaction.target}")
            guidance = _positioning_guidance(interaction)
            if guidance:
                action.append(f"  -> {guidance}")
    blocks.append("\n".join(action))

    emotion = ["=== EMOTIONAL CONTEXT ===", f"Mood: {elements.mood}"]
    if elements.mood == "sad":
        emotion.append("Show visible tears or signs of distress")
    if elements.key_objects:
        emotion.append(f"Key objects: {', '.join(elements.key_objects)}")
    blocks.append("\n".join(emotion))

    names = [member.name for member in scene.characters]
    critical = [
        "=== CRITICAL REQUIREMENTS (DO NOT MISS) ===",
        f"1. ALL {count} characters must be clearly visible",
        f"2. Show {' AND '.join(names)} in the same frame",
        f"3. Setting must be: {elements.location}",
        f"4. Action must show: {elements.action}",
    ]
    if scene.interactions:
        critical.append(f"5. Character positioning: {_positioning_summary(scene.interactions[0])}")
    blocks.append("\n".join(critical))

    continuity = _continuity_sections(requirement)
    if continuity:
        blocks.append("=== CONTINUITY ===\n" + "\n\n".join(continuity))

    style_lines = _style_lines(style, character)
    style_lines.append("IMPORTANT: Style must not change the mandatory requirements above")
    blocks.append("=== ART STYLE ===\n" + "\n".join(f"- {line}" for line in style_lines))

    blocks.append(f'=== STORY TEXT ===\n"{story_text}"')
    return "\n\n".join(blocks)


def _identity_lines(character: "MainCharacterProfile") -> list[str]:
    lines = [f"{character.name}: {character.appearance or 'as established on the first page'}"]
    if character.consistent_features:
        lines.append(
            f"Consistent features (identical on every page): {', '.join(character.consistent_features)}"
        )
    if character.age:
        lines.append(f"Age: {character.age}")
    return lines


def _style_lines(style: ArtStyle, character: "MainCharacterProfile") -> list[str]:
    lines = [style.directive()]
    if style.overrides_identity:
        lines.append(
            f"Maintain the exact individual identity of {character.name}: this is NOT a generic "
            f"{style.label} character, but specifically {character.name} rendered in this style."
        )
    return lines


def _continuity_sections(requirement: "PageContinuityRequirement") -> list[str]:
    sections: list[str] = []
    if requirement.must_include:
        sections.append(_format_bullet_section("MUST INCLUDE", requirement.must_include))
    if requirement.must_maintain:
        sections.append(_format_bullet_section("MUST MAINTAIN", requirement.must_maintain))
    if requirement.transition_from:
        sections.append(_format_bullet_section("SCENE TRANSITION", [requirement.transition_from]))
    if requirement.cannot_include:
        sections.append(_format_bullet_section("DO NOT INCLUDE", requirement.cannot_include))
    return sections


def _positioning_guidance(interaction: Interaction) -> str | None:
    if "bent down" in interaction.verb:
        return f"{interaction.actor} must be shown bending or kneeling to {interaction.target}'s eye level"
    if interaction.verb in ("asked", "told"):
        return f"{interaction.actor} and {interaction.target} must be facing each other in conversation"
    if interaction.verb == "found":
        return f"Show the moment of discovery: {interaction.actor} finding {interaction.target}"
    return None


def _positioning_summary(interaction: Interaction) -> str:
    if "bent down" in interaction.verb:
        return f"{interaction.actor} at {interaction.target}'s eye level (bending or kneeling)"
    if interaction.verb in ("asked", "told"):
        return f"{interaction.actor} and {interaction.target} facing each other"
    if interaction.verb == "found":
        return f"{interaction.actor} discovering {interaction.target}"
    return "characters interacting as described"


def _format_bullet_section(title: str, lines: Sequence[str]) -> str:
    bullet_block = "\n".join(f"- {line}" for line in collect_note_lines(list(lines)))
    return f"{title}\n{bullet_block}"
