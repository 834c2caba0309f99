"""
Engine configuration, read from mappings or ``STORYSYNC_*`` environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping

from storysync.ai_generation.art_styles import ART_STYLES, DEFAULT_ART_STYLE

from .continuity import STORY_THEMES

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class EngineConfig:
    """
    Settings for one story pass.

    Attributes
    ----------
    theme:
        Story theme; ``None`` detects it from the story text.
    art_style:
        Identifier from the art style catalogue.
    testing_mode:
        Process only the first ``testing_page_limit`` pages.
    story_id:
        Identifier used for the in-flight guard and scene ids; generated when ``None``.
    render_workers:
        Thread count for the rendering fan-out.
    """

    theme: str | None = None
    art_style: str = DEFAULT_ART_STYLE
    testing_mode: bool = False
    testing_page_limit: int = 2
    story_id: str | None = None
    render_workers: int = 4

    def __post_init__(self) -> None:
        if self.theme is not None and self.theme not in STORY_THEMES:
            raise ValueError(f"Unknown story theme {self.theme!r}; expected one of {', '.join(STORY_THEMES)}.")
        if self.art_style not in ART_STYLES:
            raise ValueError(
                f"Unknown art style {self.art_style!r}; expected one of {', '.join(sorted(ART_STYLES))}."
            )
        if self.testing_page_limit < 1:
            raise ValueError("testing_page_limit must be at least 1.")
        if self.render_workers < 1:
            raise ValueError("render_workers must be at least 1.")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EngineConfig":
        theme = _coerce_optional_str(data.get("theme"))
        story_id = _coerce_optional_str(data.get("story_id"))
        return cls(
            theme=theme.lower() if theme else None,
            art_style=_coerce_optional_str(data.get("art_style")) or DEFAULT_ART_STYLE,
            testing_mode=_coerce_bool(data.get("testing_mode", False), "testing_mode"),
            testing_page_limit=_coerce_int(data.get("testing_page_limit", 2), "testing_page_limit"),
            story_id=story_id,
            render_workers=_coerce_int(data.get("render_workers", 4), "render_workers"),
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> "EngineConfig":
        data: dict[str, Any] = {
            "theme": os.getenv("STORYSYNC_THEME"),
            "art_style": os.getenv("STORYSYNC_ART_STYLE"),
            "testing_mode": os.getenv("STORYSYNC_TESTING_MODE", "false"),
            "testing_page_limit": os.getenv("STORYSYNC_TESTING_PAGE_LIMIT", "2"),
            "render_workers": os.getenv("STORYSYNC_RENDER_WORKERS", "4"),
        }
        data.update({key: value for key, value in overrides.items() if value is not None})
        return cls.from_mapping(data)


def _coerce_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{field_name} must be a boolean, got {value!r}.")


def _coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be an integer, got {value!r}.")
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be an integer, got {value!r}.") from exc
