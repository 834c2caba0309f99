from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Mapping

import pytest
import yaml

from storysync import EngineConfig, StoryInProgressError, StoryInputError, StoryPromptPackage, StorySyncEngine
from storysync.ai_generation import PromptStage, RenderError
from storysync.pipeline.identity import DefaultDescription, DescriptionChain, ProvidedDescription

PAGES = [
    {"page_number": 1, "text": "Emma, a girl with brown pigtails, dove into the ocean to explore."},
    {"page_number": 2, "text": "As she plunged into the waters, she was greeted by a friendly sea turtle named Tito."},
    {"page_number": 3, "text": "Tito showed Emma a glowing shell."},
]


class FakeRenderer:
    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def render(self, prompt: str, style_params: Mapping[str, Any]) -> str:
        self.calls.append((prompt, dict(style_params)))
        if self.fail_on and self.fail_on in prompt:
            raise RenderError("renderer exploded")
        return f"https://images.example.com/{len(prompt)}.png"


def _engine(*, renderer: FakeRenderer | None = None, **config: Any) -> StorySyncEngine:
    return StorySyncEngine(
        config=EngineConfig(**config),
        renderer=renderer,
        description_chain=DescriptionChain([ProvidedDescription(), DefaultDescription()]),
    )


def _run(engine: StorySyncEngine, pages: list[dict[str, Any]] = PAGES, **kwargs: Any) -> StoryPromptPackage:
    kwargs.setdefault("character_description", "Emma, a girl with brown pigtails")
    kwargs.setdefault("story_id", "emma-dive")
    return engine.run(pages, character_name="Emma", **kwargs)


def test_engine_builds_validated_prompts_for_every_page() -> None:
    package = _run(_engine())

    assert [result.page_number for result in package.pages] == [1, 2, 3]
    assert package.story_id == "emma-dive"
    assert package.theme == "realistic"
    assert package.issues == []
    assert package.skipped_pages == []
    assert not package.cancelled
    assert isinstance(package.seed, int)
    assert set(package.characters) >= {"Emma", "Tito"}

    first, second, _ = package.pages
    assert first.scene_elements.characters == ["Emma"]
    assert first.scene_elements.specific_location == "ocean"
    assert second.scene_elements.characters == ["Emma", "Tito"]
    assert second.scene_elements.specific_location == "underwater"
    assert second.scene["previous_setting"] == "ocean"
    for result in package.pages:
        assert result.stage is PromptStage.VALIDATED
        assert result.validation.valid
        assert "brown pigtails" in result.final_prompt
        assert result.final_prompt.endswith(f'"{result.page.text}"')
        assert result.image_url is None


def test_engine_carries_setting_and_transitions_between_pages() -> None:
    package = _run(_engine())
    third = package.page(3)

    assert third.scene_elements.location == "underwater"
    assert third.requirement.transition_from == f'Continue from: "{package.page(2).requirement.transition_to}"'
    assert package.visual_context["narrative_progression"]["current_page"] == 3


def test_engine_reports_progress_stages() -> None:
    stages: list[str] = []

    _run(_engine(), progress_callback=lambda stage, payload: stages.append(stage))

    assert stages[0] == "character:describing"
    assert stages.count("page:processing") == 3
    assert stages.count("page:done") == 3
    assert stages[-1] == "pipeline:complete"


def test_testing_mode_limits_processed_pages() -> None:
    package = _run(_engine(testing_mode=True, testing_page_limit=2))

    assert [result.page_number for result in package.pages] == [1, 2]
    assert package.skipped_pages == [3]


def test_cancellation_stops_between_pages() -> None:
    cancel = threading.Event()

    def on_progress(stage: str, payload: dict[str, Any]) -> None:
        if stage == "page:done" and payload["page_number"] == 1:
            cancel.set()

    renderer = FakeRenderer()
    package = _run(_engine(renderer=renderer), cancel_event=cancel, progress_callback=on_progress, render=True)

    assert package.cancelled
    assert [result.page_number for result in package.pages] == [1]
    assert renderer.calls == []


def test_second_pass_for_same_story_is_rejected_while_first_runs() -> None:
    engine = _engine()
    errors: list[StoryInProgressError] = []
    others: list[StoryPromptPackage] = []

    def on_progress(stage: str, payload: dict[str, Any]) -> None:
        if stage != "page:processing" or errors:
            return
        try:
            _run(engine, story_id="emma-dive")
        except StoryInProgressError as exc:
            errors.append(exc)
        others.append(_run(engine, story_id="another-story"))

    _run(engine, progress_callback=on_progress)

    assert len(errors) == 1
    assert others[0].story_id == "another-story"
    assert len(_run(engine).pages) == 3


def test_render_failure_is_isolated_to_its_page() -> None:
    renderer = FakeRenderer(fail_on="glowing shell")
    package = _run(_engine(renderer=renderer, art_style="watercolor_illustration", render_workers=2), render=True)

    assert len(renderer.calls) == 3
    assert package.page(1).image_url is not None
    assert package.page(2).image_url is not None
    assert package.page(3).image_url is None
    assert [issue.kind for issue in package.page(3).issues] == ["render_failure"]
    assert package.page(3).issues[0].message == "renderer exploded"

    style_params = renderer.calls[0][1]
    assert style_params["art_style"] == "watercolor_illustration"
    assert style_params["seed"] == package.seed
    assert style_params["negative_prompt"] == "NOT digital, NOT harsh lines, NOT oversaturated"


def test_issues_for_ambiguous_and_location_free_pages() -> None:
    pages = [
        {"page_number": 1, "text": "Emma smiled."},
        {"page_number": 2, "text": "He waved at everyone."},
    ]

    package = _run(_engine(), pages)

    assert [issue.kind for issue in package.page(1).issues] == ["malformed_input"]
    assert [issue.kind for issue in package.page(2).issues] == ["extraction_ambiguity", "malformed_input"]
    assert "he" in package.page(2).issues[0].message
    assert "unspecified location" in package.page(2).final_prompt


def test_persistent_validation_failure_is_recorded_and_prompt_accepted(monkeypatch: pytest.MonkeyPatch) -> None:
    def contradictory_prompt(scene: Any, character: Any, requirement: Any, art_style: str, story_text: str, **_: Any) -> str:
        return f'{character.name} standing underwater on the sea floor. STORY TEXT\n"{story_text}"'

    monkeypatch.setattr("storysync.pipeline.pipeline.build_page_prompt", contradictory_prompt)
    pages = [{"page_number": 1, "text": "Emma plunged into the deep sea."}]

    package = _run(_engine(), pages)
    result = package.page(1)

    assert result.stage is PromptStage.ACCEPTED
    assert not result.validation.valid
    assert [issue.kind for issue in result.issues] == ["validation_failure", "persistent_validation_failure"]
    assert "ADDITIONAL REQUIREMENTS (MUST INCLUDE):" in result.final_prompt


def test_story_words_in_quoted_text_do_not_contradict_the_scene() -> None:
    pages = [{"page_number": 1, "text": "Emma, a girl with brown pigtails, was walking beneath the waves of the ocean."}]

    package = _run(_engine(), pages)
    result = package.page(1)

    assert result.scene_elements.specific_location == "underwater"
    assert result.validation.valid
    assert result.stage is PromptStage.VALIDATED
    assert result.issues == []


def test_main_character_gender_ignores_other_people_in_description() -> None:
    pages = [
        {"page_number": 1, "text": "Emma walked along the beach."},
        {"page_number": 2, "text": "She found a shell."},
    ]

    package = _run(_engine(), pages, character_description="Emma, with brown pigtails and her brother's red jacket")

    assert package.characters["Emma"]["gender"] == "female"
    second = package.page(2)
    assert second.scene_elements.characters == ["Emma"]
    assert "extraction_ambiguity" not in [issue.kind for issue in second.issues]


def test_engine_rejects_bad_input_before_processing() -> None:
    engine = _engine()

    with pytest.raises(StoryInputError):
        _run(engine, [{"page_number": 1, "text": "a"}, {"page_number": 3, "text": "b"}])
    with pytest.raises(ValueError):
        engine.run(PAGES, character_name="  ")
    with pytest.raises(ValueError):
        _run(engine, render=True)


def test_default_description_is_used_without_details() -> None:
    package = _engine().run(PAGES, character_name="Emma", age=6, story_id="no-details")

    assert package.visual_context["main_character"]["appearance"] == (
        "Emma, a 6 year old child with a warm, friendly smile"
    )


def test_package_yaml_round_trip(tmp_path: Path) -> None:
    package = _run(_engine(renderer=FakeRenderer()), render=True)
    output = tmp_path / "package.yaml"
    output.write_text(package.to_yaml(), encoding="utf-8")

    restored = StoryPromptPackage.from_yaml(output)

    assert restored.to_dict() == package.to_dict()
    assert restored.page(2).stage is PromptStage.VALIDATED


def test_run_from_file_reads_story_and_character(tmp_path: Path) -> None:
    story_path = tmp_path / "story.yaml"
    story_path.write_text(
        yaml.safe_dump(
            {
                "story_id": "from-file",
                "character": {"name": "Emma", "description": "Emma, a girl with brown pigtails", "age": 6},
                "pages": PAGES[:2],
            }
        ),
        encoding="utf-8",
    )

    package = _engine().run_from_file(story_path)

    assert package.story_id == "from-file"
    assert [result.page_number for result in package.pages] == [1, 2]

    text_path = tmp_path / "story.txt"
    text_path.write_text("Emma dove into the ocean.", encoding="utf-8")
    with pytest.raises(ValueError):
        _engine().run_from_file(text_path)
