"""
End-to-end orchestration for storysync prompt generation.
"""

from .config import EngineConfig
from .continuity import (
    STORY_WORLD_TEMPLATES,
    PageContinuityRequirement,
    StoryContinuityManager,
    StoryVisualContext,
    detect_story_theme,
    extract_consistent_features,
)
from .continuity_builder import build_story_visual_context
from .identity import DescriptionChain, DescriptionRequest, default_description_chain
from .issues import PageIssue, StoryInProgressError
from .pipeline import PageResult, StoryPromptPackage, StorySyncEngine

__all__ = [
    "DescriptionChain",
    "DescriptionRequest",
    "EngineConfig",
    "PageContinuityRequirement",
    "PageIssue",
    "PageResult",
    "STORY_WORLD_TEMPLATES",
    "StoryContinuityManager",
    "StoryInProgressError",
    "StoryPromptPackage",
    "StorySyncEngine",
    "StoryVisualContext",
    "build_story_visual_context",
    "default_description_chain",
    "detect_story_theme",
    "extract_consistent_features",
]
