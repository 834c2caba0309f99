"""
CLI to turn a story file into validated, continuity-aware illustration prompts.

Usage:
    python scripts/run_story_prompts.py \
        --story story.yaml \
        --art-style watercolor_illustration \
        --output story_prompts.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict

from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from storysync import EngineConfig, StorySyncEngine
from storysync.ai_generation import ART_STYLES, ReplicateImageRenderer
from storysync.pipeline.continuity import STORY_THEMES


class ProgressTracker:
    """
    Provides command-line progress updates for a storysync pass.
    """

    def __init__(self) -> None:
        self._page_bar: tqdm | None = None
        self._render_bar: tqdm | None = None

    def __call__(self, stage: str, payload: Dict[str, Any]) -> None:
        match stage:
            case "character:describing":
                self._write(f"[1/3] Describing {payload.get('name', 'the main character')}...")
            case "character:ready":
                self._write(f"[1/3] Character description ready (source: {payload.get('provider')}).")
            case "page:processing":
                if self._page_bar is None:
                    total = payload.get("total_pages", 0)
                    self._write("[2/3] Analyzing pages and building prompts...")
                    self._page_bar = tqdm(total=total, desc="Prompted pages", unit="page")
                self._page_bar.set_description(f"Page {payload.get('page_number')}")
            case "page:done":
                if self._page_bar is not None:
                    self._page_bar.update(1)
            case "render:start":
                self._close_page_bar()
                self._write("[3/3] Rendering illustrations...")
                self._render_bar = tqdm(total=payload.get("total_pages", 0), desc="Rendered pages", unit="page")
            case "render:page_done":
                if self._render_bar is not None:
                    self._render_bar.update(1)
            case "pipeline:complete":
                suffix = " (cancelled)" if payload.get("cancelled") else ""
                self.close()
                self._write(f"[3/3] Pipeline complete{suffix}.")

    def _close_page_bar(self) -> None:
        if self._page_bar is not None:
            self._page_bar.close()
            self._page_bar = None

    def close(self) -> None:
        self._close_page_bar()
        if self._render_bar is not None:
            self._render_bar.close()
            self._render_bar = None

    @staticmethod
    def _write(message: str) -> None:
        tqdm.write(message)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate continuity-aware illustration prompts for a story.")
    parser.add_argument(
        "--story",
        required=True,
        help="Path to the story YAML/JSON file (pages plus a character mapping).",
    )
    parser.add_argument(
        "--output",
        default="story_prompts.yaml",
        help="Output YAML file for prompts, validation results and issues.",
    )
    parser.add_argument(
        "--art-style",
        choices=sorted(ART_STYLES),
        default=None,
        help="Art style for every page (defaults to STORYSYNC_ART_STYLE or disney_pixar_3d).",
    )
    parser.add_argument(
        "--theme",
        choices=STORY_THEMES,
        default=None,
        help="Story theme; detected from the text when omitted.",
    )
    parser.add_argument(
        "--story-id",
        default=None,
        help="Identifier for this story pass.",
    )
    parser.add_argument(
        "--testing-mode",
        action="store_true",
        default=None,
        help="Only process the first pages of the story.",
    )
    parser.add_argument(
        "--render",
        action="store_true",
        help="Render every prompt through Replicate after validation.",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Override the Replicate model identifier used for rendering.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = EngineConfig.from_env(
        theme=args.theme,
        art_style=args.art_style,
        testing_mode=args.testing_mode,
    )
    renderer = ReplicateImageRenderer(model_identifier=args.model) if args.render else None
    engine = StorySyncEngine(config=config, renderer=renderer)
    tracker = ProgressTracker()

    try:
        package = engine.run_from_file(
            Path(args.story),
            story_id=args.story_id,
            render=args.render,
            progress_callback=tracker,
        )
    finally:
        tracker.close()

    output_path = Path(args.output)
    output_path.write_text(package.to_yaml(), encoding="utf-8")

    for issue in package.issues:
        tqdm.write(f"  page {issue.page_number}: [{issue.kind}] {issue.message}")
    print(f"Saved {len(package.pages)} page prompts to {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
