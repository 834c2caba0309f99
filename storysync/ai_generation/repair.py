"""
Additive prompt repair and the draft-to-accepted prompt lifecycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from storysync.common import deduplicate
from storysync.story_understanding.scene_extractor import SceneElements

from .validation import ValidationResult, validate_prompt

logger = logging.getLogger(__name__)

REPAIR_HEADER = "ADDITIONAL REQUIREMENTS (MUST INCLUDE):"


class PromptStage(str, Enum):
    DRAFT = "draft"
    VALIDATED = "validated"
    REPAIRED = "repaired"
    ACCEPTED = "accepted"


@dataclass(frozen=True)
class FinalizedPrompt:
    """
    The prompt handed to the renderer, with the validation that applies to it.

    ``initial_validation`` scores the draft; ``validation`` scores ``prompt`` itself.
    """

    prompt: str
    stage: PromptStage
    validation: ValidationResult
    initial_validation: ValidationResult
    history: tuple[PromptStage, ...] = (PromptStage.DRAFT,)

    @property
    def repaired(self) -> bool:
        return self.stage is PromptStage.ACCEPTED

    def as_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "history": [stage.value for stage in self.history],
            "validation": self.validation.as_dict(),
            "initial_validation": self.initial_validation.as_dict(),
        }


def repair_prompt(prompt: str, directives: Sequence[str]) -> str:
    """
    Append one requirement line per distinct directive; the original text is kept intact.
    """
    lines = deduplicate(directive.strip() for directive in directives if directive and directive.strip())
    if not lines:
        return prompt
    block = "\n".join(f"- {line}" for line in lines)
    return f"{prompt}\n\n{REPAIR_HEADER}\n{block}"


def finalize_prompt(draft: str, story_text: str, elements: SceneElements) -> FinalizedPrompt:
    """
    Validate the draft and repair it at most once.

    A valid draft stops at ``VALIDATED``. An invalid one is repaired and accepted
    whatever the second score; that score is kept for reporting only.
    """
    initial = validate_prompt(story_text, draft, elements)
    if initial.valid:
        return FinalizedPrompt(
            prompt=draft,
            stage=PromptStage.VALIDATED,
            validation=initial,
            initial_validation=initial,
            history=(PromptStage.DRAFT, PromptStage.VALIDATED),
        )

    repaired = repair_prompt(draft, initial.repairs)
    revalidated = validate_prompt(story_text, repaired, elements)
    logger.info(
        "Prompt repaired: score %s -> %s (%s)",
        initial.score,
        revalidated.score,
        "valid" if revalidated.valid else "still invalid",
    )
    return FinalizedPrompt(
        prompt=repaired,
        stage=PromptStage.ACCEPTED,
        validation=revalidated,
        initial_validation=initial,
        history=(PromptStage.DRAFT, PromptStage.VALIDATED, PromptStage.REPAIRED, PromptStage.ACCEPTED),
    )
