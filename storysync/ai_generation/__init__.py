"""
Prompt building, validation, repair and rendering for storysync page illustrations.
"""

from .art_styles import ART_STYLES, ArtStyle, get_art_style
from .prompting import build_page_prompt
from .repair import FinalizedPrompt, PromptStage, finalize_prompt, repair_prompt
from .replicate_service import ImageRenderer, RenderError, ReplicateImageRenderer, normalize_image_outputs
from .validation import ValidationResult, validate_prompt

__all__ = [
    "ART_STYLES",
    "ArtStyle",
    "FinalizedPrompt",
    "ImageRenderer",
    "PromptStage",
    "RenderError",
    "ReplicateImageRenderer",
    "ValidationResult",
    "build_page_prompt",
    "finalize_prompt",
    "get_art_style",
    "normalize_image_outputs",
    "repair_prompt",
    "validate_prompt",
]
