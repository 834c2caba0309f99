from __future__ import annotations

import importlib.util
import shlex
import sys
from pathlib import Path
from types import ModuleType

import pytest

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "run_story_prompts.py"


def _load_script() -> ModuleType:
    spec = importlib.util.spec_from_file_location("run_story_prompts", SCRIPT)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_usage_example_is_accepted_by_the_parser(monkeypatch: pytest.MonkeyPatch) -> None:
    script = _load_script()
    usage = script.__doc__.split("Usage:", 1)[1].replace("\\\n", " ")
    argv = shlex.split(usage)[1:]
    monkeypatch.setattr(sys, "argv", argv)

    args = script.parse_args()

    assert args.story == "story.yaml"
    assert args.art_style == "watercolor_illustration"
