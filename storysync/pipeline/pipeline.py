"""
Orchestrates the storysync pass from story pages to validated prompts and rendered images.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Sequence

import yaml

from storysync.ai_generation import (
    FinalizedPrompt,
    ImageRenderer,
    PromptStage,
    ValidationResult,
    build_page_prompt,
    finalize_prompt,
    get_art_style,
)
from storysync.story_understanding import (
    Character,
    CharacterRegistry,
    Scene,
    SceneAnalyzer,
    SceneElements,
    StoryPage,
    describe_elements,
    normalize_pages,
)
from storysync.story_understanding.characters import gender_from_description
from storysync.story_understanding.lexicon import gender_from_name_ending

from .config import EngineConfig
from .continuity import PageContinuityRequirement, StoryContinuityManager, derive_story_seed
from .continuity_builder import build_story_visual_context
from .identity import DescriptionChain, DescriptionRequest, default_description_chain
from .issues import PageIssue, StoryInProgressError

ProgressCallback = Callable[[str, dict[str, Any]], None]

logger = logging.getLogger(__name__)


@dataclass
class PageResult:
    """Everything produced for a single story page."""

    page: StoryPage
    final_prompt: str
    scene: Mapping[str, Any]
    scene_elements: SceneElements
    requirement: PageContinuityRequirement
    stage: PromptStage
    validation: ValidationResult
    initial_validation: ValidationResult
    issues: list[PageIssue] = field(default_factory=list)
    image_url: str | None = None

    @property
    def page_number(self) -> int:
        return self.page.page_number

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page.page_number,
            "text": self.page.text,
            "seed_prompt": self.page.seed_prompt,
            "final_prompt": self.final_prompt,
            "stage": self.stage.value,
            "scene": dict(self.scene),
            "scene_elements": self.scene_elements.as_dict(),
            "continuity": self.requirement.as_dict(),
            "validation": self.validation.as_dict(),
            "initial_validation": self.initial_validation.as_dict(),
            "issues": [issue.as_dict() for issue in self.issues],
            "image_url": self.image_url,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PageResult":
        try:
            page = StoryPage(
                page_number=int(payload["page_number"]),
                text=str(payload["text"]),
                seed_prompt=payload.get("seed_prompt") or None,
            )
            final_prompt = str(payload["final_prompt"])
            stage = PromptStage(payload["stage"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid page entry: {payload}") from exc

        validation = ValidationResult.from_mapping(payload.get("validation") or {})
        return cls(
            page=page,
            final_prompt=final_prompt,
            scene=dict(payload.get("scene") or {}),
            scene_elements=SceneElements.from_mapping(payload.get("scene_elements") or {}),
            requirement=PageContinuityRequirement.from_mapping(
                payload.get("continuity") or {"page_number": page.page_number}
            ),
            stage=stage,
            validation=validation,
            initial_validation=ValidationResult.from_mapping(payload.get("initial_validation") or {})
            if payload.get("initial_validation")
            else validation,
            issues=[PageIssue.from_mapping(item) for item in payload.get("issues") or []],
            image_url=payload.get("image_url") or None,
        )


@dataclass
class StoryPromptPackage:
    """Aggregated output of one storysync pass."""

    story_id: str
    main_character: str
    theme: str
    art_style: str
    pages: list[PageResult]
    characters: Mapping[str, Any] = field(default_factory=dict)
    visual_context: Mapping[str, Any] = field(default_factory=dict)
    skipped_pages: list[int] = field(default_factory=list)
    cancelled: bool = False
    seed: int | None = None
    reference_image: str | None = None

    @property
    def issues(self) -> list[PageIssue]:
        return [issue for page in self.pages for issue in page.issues]

    def page(self, page_number: int) -> PageResult:
        for result in self.pages:
            if result.page_number == page_number:
                return result
        raise KeyError(page_number)

    def to_dict(self) -> dict[str, Any]:
        return {
            "story_id": self.story_id,
            "main_character": self.main_character,
            "theme": self.theme,
            "art_style": self.art_style,
            "seed": self.seed,
            "reference_image": self.reference_image,
            "cancelled": self.cancelled,
            "skipped_pages": list(self.skipped_pages),
            "characters": dict(self.characters),
            "visual_context": dict(self.visual_context),
            "pages": [result.to_dict() for result in self.pages],
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "StoryPromptPackage":
        for key in ("story_id", "main_character", "pages"):
            if key not in payload:
                raise ValueError(f"Story prompt package payload must include '{key}'.")

        return cls(
            story_id=str(payload["story_id"]),
            main_character=str(payload["main_character"]),
            theme=str(payload.get("theme") or "realistic"),
            art_style=str(payload.get("art_style") or EngineConfig().art_style),
            pages=[PageResult.from_dict(entry) for entry in payload.get("pages") or []],
            characters=dict(payload.get("characters") or {}),
            visual_context=dict(payload.get("visual_context") or {}),
            skipped_pages=[int(number) for number in payload.get("skipped_pages") or []],
            cancelled=bool(payload.get("cancelled", False)),
            seed=payload.get("seed"),
            reference_image=payload.get("reference_image") or None,
        )

    @classmethod
    def from_yaml(cls, source: str | Path) -> "StoryPromptPackage":
        path = Path(source)
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(data, Mapping):
            raise ValueError("Story prompt package YAML must deserialize to a mapping.")
        return cls.from_dict(data)


@dataclass
class StoryContext:
    """
    Per-story state threaded through every component call of one pass.
    """

    story_id: str
    registry: CharacterRegistry
    continuity: StoryContinuityManager
    analyzer: SceneAnalyzer
    previous_scene: Scene | None = None


class StorySyncEngine:
    """
    High-level coordinator that turns story pages into validated, render-ready prompts.
    """

    def __init__(
        self,
        *,
        config: EngineConfig | None = None,
        renderer: ImageRenderer | None = None,
        description_chain: DescriptionChain | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._renderer = renderer
        self._description_chain = description_chain or default_description_chain()
        self._active_story_ids: set[str] = set()
        self._lock = threading.Lock()

    @property
    def config(self) -> EngineConfig:
        return self._config

    def run(
        self,
        pages: Iterable[StoryPage | Mapping[str, Any]],
        *,
        character_name: str,
        character_description: str | None = None,
        reference_image: str | Path | None = None,
        age: str | int | None = None,
        personality_traits: Sequence[str] = (),
        story_id: str | None = None,
        render: bool = False,
        cancel_event: threading.Event | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> StoryPromptPackage:
        """
        Run the understanding pass over every page, then optionally render the prompts.
        """
        if not character_name or not character_name.strip():
            raise ValueError("character_name must be a non-empty string.")
        if render and self._renderer is None:
            raise ValueError("render=True requires an ImageRenderer.")

        normalized = normalize_pages(pages)
        resolved_story_id = story_id or self._config.story_id or uuid.uuid4().hex[:12]

        self._claim(resolved_story_id)
        try:
            package = self._run_pass(
                story_id=resolved_story_id,
                pages=normalized,
                character_name=character_name.strip(),
                character_description=character_description,
                reference_image=reference_image,
                age=str(age) if age is not None else None,
                personality_traits=personality_traits,
                cancel_event=cancel_event,
                progress_callback=progress_callback,
            )
            if render and not package.cancelled:
                self.render_pages(package, progress_callback=progress_callback)
        finally:
            self._release(resolved_story_id)

        self._notify(
            progress_callback,
            "pipeline:complete",
            story_id=resolved_story_id,
            total_pages=len(package.pages),
            cancelled=package.cancelled,
        )
        return package

    def run_from_file(self, story_path: Path | str, **kwargs: Any) -> StoryPromptPackage:
        """
        Load a story from a YAML or JSON file and run the pass.

        The file holds ``pages`` plus a ``character`` mapping (``name``, optional
        ``description``, ``age``, ``reference_image``) and an optional ``story_id``.
        """
        data = _load_mapping_file(Path(story_path))
        character = data.get("character") or {}
        if not isinstance(character, Mapping) or not character.get("name"):
            raise ValueError("Story file must include a 'character' mapping with a 'name'.")

        if kwargs.get("story_id") is None:
            kwargs["story_id"] = data.get("story_id")
        return self.run(
            data.get("pages") or [],
            character_name=str(character["name"]),
            character_description=character.get("description"),
            reference_image=character.get("reference_image"),
            age=character.get("age"),
            personality_traits=tuple(character.get("personality_traits") or ()),
            **kwargs,
        )

    def render_pages(
        self,
        package: StoryPromptPackage,
        *,
        progress_callback: ProgressCallback | None = None,
    ) -> StoryPromptPackage:
        """
        Render every page concurrently; a failed page records an issue and the rest continue.
        """
        if self._renderer is None:
            raise ValueError("No ImageRenderer configured.")

        style_params: dict[str, Any] = get_art_style(package.art_style).render_params()
        if package.seed is not None:
            style_params["seed"] = package.seed
        if package.reference_image:
            style_params["reference_image"] = package.reference_image

        renderer = self._renderer
        self._notify(progress_callback, "render:start", total_pages=len(package.pages))
        with ThreadPoolExecutor(max_workers=self._config.render_workers) as executor:
            futures = {
                executor.submit(renderer.render, result.final_prompt, dict(style_params)): result
                for result in package.pages
            }
            for future in as_completed(futures):
                result = futures[future]
                try:
                    result.image_url = future.result()
                except Exception as exc:
                    logger.exception("Rendering failed for page %s.", result.page_number)
                    result.issues.append(
                        PageIssue(
                            kind="render_failure",
                            message=str(exc) or exc.__class__.__name__,
                            page_number=result.page_number,
                        )
                    )
                self._notify(
                    progress_callback,
                    "render:page_done",
                    page_number=result.page_number,
                    image_url=result.image_url,
                )
        return package

    def _run_pass(
        self,
        *,
        story_id: str,
        pages: Sequence[StoryPage],
        character_name: str,
        character_description: str | None,
        reference_image: str | Path | None,
        age: str | None,
        personality_traits: Sequence[str],
        cancel_event: threading.Event | None,
        progress_callback: ProgressCallback | None,
    ) -> StoryPromptPackage:
        processed = list(pages)
        skipped: list[int] = []
        if self._config.testing_mode:
            processed = processed[: self._config.testing_page_limit]
            skipped = [page.page_number for page in pages[self._config.testing_page_limit :]]
            logger.info("Testing mode: processing %s of %s pages.", len(processed), len(pages))

        self._notify(progress_callback, "character:describing", name=character_name)
        outcome = self._description_chain.describe(
            DescriptionRequest(
                character_name=character_name,
                age=age,
                reference_image=reference_image,
                description=character_description,
            )
        )
        self._notify(progress_callback, "character:ready", name=character_name, provider=outcome.provider)

        context = self._build_story_context(
            story_id=story_id,
            pages=pages,
            character_name=character_name,
            description=outcome.description,
            age=age,
            personality_traits=personality_traits,
        )
        visual = context.continuity.context
        seed = derive_story_seed(story_id, character_name, visual.main_character.consistent_features)

        results: list[PageResult] = []
        cancelled = False
        total_pages = len(processed)
        for index, page in enumerate(processed, start=1):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                logger.info("Story %s cancelled before page %s.", story_id, page.page_number)
                break

            self._notify(
                progress_callback,
                "page:processing",
                page_number=page.page_number,
                page_index=index,
                total_pages=total_pages,
            )
            result = self._process_page(context, page)
            if result is None:
                skipped.append(page.page_number)
            else:
                results.append(result)
            self._notify(
                progress_callback,
                "page:done",
                page_number=page.page_number,
                page_index=index,
                total_pages=total_pages,
                score=result.validation.score if result else None,
            )

        return StoryPromptPackage(
            story_id=story_id,
            main_character=character_name,
            theme=visual.theme,
            art_style=self._config.art_style,
            pages=results,
            characters=context.registry.as_dict(),
            visual_context=visual.as_dict(),
            skipped_pages=sorted(skipped),
            cancelled=cancelled,
            seed=seed,
            reference_image=str(reference_image) if reference_image is not None else None,
        )

    def _build_story_context(
        self,
        *,
        story_id: str,
        pages: Sequence[StoryPage],
        character_name: str,
        description: str,
        age: str | None,
        personality_traits: Sequence[str],
    ) -> StoryContext:
        registry = CharacterRegistry()
        registry.register(
            Character(
                name=character_name,
                gender=gender_from_description(description, character_name),
                age=age,
                appearance=description,
            )
        )
        registry.build(pages)
        # name-ending guess; merge only fills a gender that is still unset
        registry.register(Character(name=character_name, gender=gender_from_name_ending(character_name)))

        visual = build_story_visual_context(
            story_id=story_id,
            pages=pages,
            character_name=character_name,
            character_description=description,
            art_style=self._config.art_style,
            theme=self._config.theme,
            age=age,
            personality_traits=personality_traits,
        )
        return StoryContext(
            story_id=story_id,
            registry=registry,
            continuity=StoryContinuityManager(visual),
            analyzer=SceneAnalyzer(registry),
        )

    def _process_page(self, context: StoryContext, page: StoryPage) -> PageResult | None:
        issues: list[PageIssue] = []
        story_text = page.text or (page.seed_prompt or "")
        if not story_text:
            logger.warning("Page %s has no text; skipping.", page.page_number)
            return None
        if not page.text:
            issues.append(
                PageIssue(
                    kind="malformed_input",
                    message="Page has no story text; the seed prompt was used instead.",
                    page_number=page.page_number,
                )
            )
            page = StoryPage(page_number=page.page_number, text=story_text, seed_prompt=page.seed_prompt)

        previous = context.previous_scene
        summary = describe_elements(previous.elements, previous.character_names) if previous else None
        context.continuity.advance_to_page(page.page_number, summary)

        analysis = context.analyzer.analyze(page, previous)
        scene = analysis.scene
        if analysis.unresolved_pronouns:
            issues.append(
                PageIssue(
                    kind="extraction_ambiguity",
                    message=f"Could not resolve pronouns: {', '.join(analysis.unresolved_pronouns)}",
                    page_number=page.page_number,
                )
            )
        if analysis.setting_missing:
            issues.append(
                PageIssue(
                    kind="malformed_input",
                    message="No location cue on this page or any earlier page.",
                    page_number=page.page_number,
                )
            )

        requirement = context.continuity.requirements_for(page.page_number, page.text)
        draft = build_page_prompt(
            scene,
            context.continuity.context.main_character,
            requirement,
            self._config.art_style,
            page.text,
            story_id=context.story_id,
        )
        finalized: FinalizedPrompt = finalize_prompt(draft, page.text, scene.elements)

        if not finalized.initial_validation.valid:
            issues.append(
                PageIssue(
                    kind="validation_failure",
                    message="; ".join(finalized.initial_validation.errors),
                    page_number=page.page_number,
                )
            )
            if not finalized.validation.valid:
                issues.append(
                    PageIssue(
                        kind="persistent_validation_failure",
                        message="; ".join(finalized.validation.errors),
                        page_number=page.page_number,
                    )
                )

        context.previous_scene = scene
        return PageResult(
            page=page,
            final_prompt=finalized.prompt,
            scene=scene.as_dict(),
            scene_elements=scene.elements,
            requirement=requirement,
            stage=finalized.stage,
            validation=finalized.validation,
            initial_validation=finalized.initial_validation,
            issues=issues,
        )

    def _claim(self, story_id: str) -> None:
        with self._lock:
            if story_id in self._active_story_ids:
                raise StoryInProgressError(f"Story {story_id!r} is already being processed.")
            self._active_story_ids.add(story_id)

    def _release(self, story_id: str) -> None:
        with self._lock:
            self._active_story_ids.discard(story_id)

    @staticmethod
    def _notify(
        callback: ProgressCallback | None,
        stage: str,
        **payload: Any,
    ) -> None:
        if callback is not None:
            callback(stage, payload)


def _load_mapping_file(path: Path) -> Mapping[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    elif path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        raise ValueError("Unsupported story file format. Use YAML or JSON.")
    if not isinstance(data, Mapping):
        raise ValueError(f"Story file {path} must contain a mapping.")
    return data
