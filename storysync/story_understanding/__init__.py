from .characters import Character, CharacterRegistry
from .pages import StoryInputError, StoryPage, normalize_pages
from .pronouns import PronounResolution, PronounResolver
from .scene import Interaction, Scene, SceneAnalysis, SceneAnalyzer, extract_interactions
from .scene_extractor import UNSPECIFIED_SETTING, SceneElements, SceneExtractor, describe_elements

__all__ = [
    "Character",
    "CharacterRegistry",
    "Interaction",
    "PronounResolution",
    "PronounResolver",
    "Scene",
    "SceneAnalysis",
    "SceneAnalyzer",
    "SceneElements",
    "SceneExtractor",
    "StoryInputError",
    "StoryPage",
    "UNSPECIFIED_SETTING",
    "describe_elements",
    "extract_interactions",
    "normalize_pages",
]
