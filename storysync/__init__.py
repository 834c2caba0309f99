"""
storysync package: story understanding, visual continuity and validated illustration prompts.
"""

from .pipeline import (
    EngineConfig,
    PageIssue,
    PageResult,
    StoryInProgressError,
    StoryPromptPackage,
    StorySyncEngine,
)
from .story_understanding import StoryInputError, StoryPage

__all__ = [
    "EngineConfig",
    "PageIssue",
    "PageResult",
    "StoryInProgressError",
    "StoryInputError",
    "StoryPage",
    "StoryPromptPackage",
    "StorySyncEngine",
]
