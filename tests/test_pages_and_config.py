from __future__ import annotations

import pytest

from storysync.pipeline.config import EngineConfig
from storysync.story_understanding import StoryInputError, StoryPage, normalize_pages


def test_normalize_pages_sorts_and_coerces_mappings() -> None:
    pages = normalize_pages(
        [
            {"page_number": "2", "text": "  Emma swam.  ", "seed_prompt": ""},
            StoryPage(page_number=1, text="Emma woke up."),
        ]
    )

    assert [page.page_number for page in pages] == [1, 2]
    assert pages[1].text == "Emma swam."
    assert pages[1].seed_prompt is None


@pytest.mark.parametrize(
    "raw_pages",
    [
        [],
        [{"page_number": 1, "text": "a"}, {"page_number": 1, "text": "b"}],
        [{"page_number": 1, "text": "a"}, {"page_number": 3, "text": "b"}],
        [{"page_number": 0, "text": "a"}],
        [{"page_number": 1, "text": "a", "title": "extra"}],
        [{"page_number": 1}],
        [{"page_number": "one", "text": "a"}],
    ],
)
def test_normalize_pages_rejects_malformed_input(raw_pages: list[dict[str, object]]) -> None:
    with pytest.raises(StoryInputError):
        normalize_pages(raw_pages)


def test_story_input_error_is_a_value_error() -> None:
    assert issubclass(StoryInputError, ValueError)


def test_engine_config_from_env_reads_storysync_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORYSYNC_THEME", "Fantasy")
    monkeypatch.setenv("STORYSYNC_ART_STYLE", "watercolor_illustration")
    monkeypatch.setenv("STORYSYNC_TESTING_MODE", "yes")
    monkeypatch.setenv("STORYSYNC_TESTING_PAGE_LIMIT", "3")
    monkeypatch.setenv("STORYSYNC_RENDER_WORKERS", "2")

    config = EngineConfig.from_env()

    assert config.theme == "fantasy"
    assert config.art_style == "watercolor_illustration"
    assert config.testing_mode is True
    assert config.testing_page_limit == 3
    assert config.render_workers == 2


def test_engine_config_overrides_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORYSYNC_ART_STYLE", "watercolor_illustration")
    monkeypatch.delenv("STORYSYNC_THEME", raising=False)

    config = EngineConfig.from_env(art_style="studio_ghibli", theme=None)

    assert config.art_style == "studio_ghibli"
    assert config.theme is None


@pytest.mark.parametrize(
    "payload",
    [
        {"theme": "horror"},
        {"art_style": "oil_painting"},
        {"testing_mode": "maybe"},
        {"render_workers": "0"},
        {"testing_page_limit": "many"},
    ],
)
def test_engine_config_rejects_invalid_values(payload: dict[str, str]) -> None:
    with pytest.raises(ValueError):
        EngineConfig.from_mapping(payload)
