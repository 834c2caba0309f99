"""
Helpers for assembling a story's visual context before the page pass starts.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from storysync.ai_generation.art_styles import get_art_style
from storysync.common import collect_note_lines, deduplicate
from storysync.story_understanding import StoryPage
from storysync.story_understanding.scene_extractor import extract_setting

from .continuity import (
    DEFAULT_STORY_ARC,
    STORY_THEMES,
    STORY_WORLD_TEMPLATES,
    MainCharacterProfile,
    NarrativeProgression,
    SettingProfile,
    StoryVisualContext,
    VisualStyle,
    detect_story_theme,
    extract_consistent_features,
)

logger = logging.getLogger(__name__)

_TIME_OF_DAY = re.compile(r"\b(morning|afternoon|evening|night|sunset|sunrise|dawn|dusk|noon|midnight)\b", re.IGNORECASE)
_SEASON = re.compile(r"\b(spring|summer|autumn|fall|winter)\b", re.IGNORECASE)


def build_story_visual_context(
    *,
    story_id: str,
    pages: Sequence[StoryPage],
    character_name: str,
    character_description: str,
    art_style: str,
    theme: str | None = None,
    age: str | None = None,
    personality_traits: Sequence[str] = (),
    feature_overrides: Sequence[str] | str | None = None,
) -> StoryVisualContext:
    """
    Combine the character description, story text and style choice into a visual context.

    Parameters
    ----------
    theme:
        One of the story themes; detected from the story text when ``None``.
    feature_overrides:
        Extra consistent features (bullet lines or a list) placed before the ones
        extracted from ``character_description``.
    """
    if theme is not None and theme not in STORY_THEMES:
        raise ValueError(f"Unknown story theme {theme!r}; expected one of {', '.join(STORY_THEMES)}.")

    story_text = " ".join(page.text for page in pages)
    resolved_theme = theme or detect_story_theme(story_text)
    template = STORY_WORLD_TEMPLATES[resolved_theme]
    style = get_art_style(art_style)

    features = deduplicate(
        collect_note_lines(feature_overrides) + extract_consistent_features(character_description)
    )
    if not features:
        logger.warning("No consistent features found in description of %s.", character_name)

    locations: list[str] = []
    for page in pages:
        category, specific = extract_setting(page.text)
        if category is not None:
            locations.append(specific or category)

    time_match = _TIME_OF_DAY.search(story_text)
    season_match = _SEASON.search(story_text)

    context = StoryVisualContext(
        story_id=story_id,
        theme=resolved_theme,
        main_character=MainCharacterProfile(
            name=character_name,
            appearance=character_description,
            consistent_features=tuple(features),
            age=age or "",
            personality_traits=tuple(personality_traits),
        ),
        setting=SettingProfile(
            world=template.world_description,
            time_of_day=time_match.group(1).lower() if time_match else "day",
            season=season_match.group(1).lower() if season_match else "spring",
            location_details=tuple(deduplicate(locations)),
            atmosphere=" and ".join(template.atmosphere_words[:2]),
        ),
        visual_style=VisualStyle(
            color_palette=template.palette_for(art_style),
            lighting_style=style.lighting,
            mood_tone=template.atmosphere_words[0],
        ),
        narrative_progression=NarrativeProgression(
            current_page=pages[0].page_number if pages else 1,
            total_pages=len(pages),
            story_arc=DEFAULT_STORY_ARC,
        ),
    )
    logger.info(
        "Visual context for %s: theme=%s, features=%s",
        story_id,
        resolved_theme,
        ", ".join(features) or "(none)",
    )
    return context
