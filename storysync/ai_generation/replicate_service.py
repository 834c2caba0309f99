"""
Image rendering collaborator: the renderer contract and its Replicate implementation.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable as IterableABC
from contextlib import ExitStack
from pathlib import Path
from typing import Any, BinaryIO, Callable, Mapping, Protocol

import replicate
from replicate.exceptions import ReplicateError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "black-forest-labs/flux-schnell"


class RenderError(RuntimeError):
    """Raised when an image could not be rendered for a prompt."""


class ImageRenderer(Protocol):
    def render(self, prompt: str, style_params: Mapping[str, Any]) -> str:
        """Render ``prompt`` and return the image URL; raise `RenderError` on failure."""
        ...


def _build_flux_schnell_input(
    *,
    prompt: str,
    style_params: Mapping[str, Any],
    image_input: str | BinaryIO | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt,
        "aspect_ratio": style_params.get("aspect_ratio", "1:1"),
        "output_format": "png",
        "num_outputs": 1,
    }
    if style_params.get("seed") is not None:
        payload["seed"] = style_params["seed"]
    return payload


def _build_flux_kontext_input(
    *,
    prompt: str,
    style_params: Mapping[str, Any],
    image_input: str | BinaryIO | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt,
        "output_format": "png",
        "safety_tolerance": 2,
        "prompt_upsampling": False,
        "aspect_ratio": style_params.get("aspect_ratio", "1:1"),
    }
    if image_input is not None:
        payload["input_image"] = image_input
    if style_params.get("seed") is not None:
        payload["seed"] = style_params["seed"]
    return payload


def _build_sdxl_input(
    *,
    prompt: str,
    style_params: Mapping[str, Any],
    image_input: str | BinaryIO | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt,
        "negative_prompt": style_params.get("negative_prompt", ""),
        "width": 1024,
        "height": 1024,
        "guidance_scale": 7.5,
    }
    if image_input is not None:
        payload["image"] = image_input
    if style_params.get("seed") is not None:
        payload["seed"] = style_params["seed"]
    return payload


_MODEL_INPUT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "black-forest-labs/flux-schnell": _build_flux_schnell_input,
    "black-forest-labs/flux-kontext-pro": _build_flux_kontext_input,
    "stability-ai/sdxl": _build_sdxl_input,
}


def _build_replicate_input_payload(
    *,
    model_identifier: str,
    prompt: str,
    style_params: Mapping[str, Any],
    image_input: str | BinaryIO | None,
) -> dict[str, Any]:
    normalized_identifier = model_identifier.strip().lower()
    builder = _MODEL_INPUT_BUILDERS.get(normalized_identifier)
    if builder is None and ":" in normalized_identifier:
        base_identifier = normalized_identifier.split(":", maxsplit=1)[0]
        builder = _MODEL_INPUT_BUILDERS.get(base_identifier)
    if builder is None:
        supported_models = ", ".join(sorted(_MODEL_INPUT_BUILDERS))
        raise ValueError(
            "Model identifier "
            f"'{model_identifier}' is not configured with a default input payload. "
            f"Supported models: {supported_models}."
        )

    payload = builder(prompt=prompt, style_params=style_params, image_input=image_input)
    # Caller-supplied model knobs win over the defaults above.
    payload.update(style_params.get("model_overrides") or {})
    return payload


class ReplicateImageRenderer:
    """
    `ImageRenderer` backed by a Replicate-hosted text-to-image model.

    Parameters
    ----------
    api_token:
        Replicate API token. Falls back to ``REPLICATE_API_TOKEN`` environment variable.
    model_identifier:
        ``owner/model`` or ``owner/model:version``. Falls back to ``REPLICATE_MODEL`` and
        then to ``black-forest-labs/flux-schnell``.
    client:
        Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
    max_attempts:
        How many times a failing Replicate call is tried before giving up.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        model_identifier: str | None = None,
        client: replicate.Client | None = None,
        max_attempts: int = 2,
    ) -> None:
        self._api_token = api_token or os.getenv("REPLICATE_API_TOKEN")
        if not self._api_token and not client:
            raise ValueError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token."
            )
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")

        self._model_identifier = model_identifier or os.getenv("REPLICATE_MODEL") or DEFAULT_MODEL
        self._client = client or replicate.Client(api_token=self._api_token)
        self._max_attempts = max_attempts

    @property
    def model_identifier(self) -> str:
        """Return the model identifier currently used."""
        return self._model_identifier

    def render(self, prompt: str, style_params: Mapping[str, Any]) -> str:
        """
        Render one page prompt and return the first image URL.

        ``style_params`` may carry ``negative_prompt``, ``seed``, ``aspect_ratio``,
        ``reference_image`` and ``model_overrides``.
        """
        reference = style_params.get("reference_image")
        last_error: ReplicateError | None = None
        for attempt in range(1, self._max_attempts + 1):
            # every attempt uploads the reference image from its first byte
            with ExitStack() as stack:
                try:
                    image_input = _prepare_image_input(reference, stack=stack) if reference else None
                except OSError as exc:
                    raise RenderError(f"Reference image could not be prepared: {exc}") from exc
                replicate_input = _build_replicate_input_payload(
                    model_identifier=self._model_identifier,
                    prompt=prompt,
                    style_params=style_params,
                    image_input=image_input,
                )
                try:
                    outputs = self._client.run(self._model_identifier, input=replicate_input)
                except ReplicateError as exc:
                    last_error = exc
                    logger.warning(
                        "Replicate call failed (attempt %s/%s): %s", attempt, self._max_attempts, exc
                    )
                    continue

            urls = normalize_image_outputs(outputs)
            if not urls:
                raise RenderError(f"Replicate model {self._model_identifier} returned no image output.")
            return urls[0]

        raise RenderError(
            f"Replicate model {self._model_identifier} failed after {self._max_attempts} attempts."
        ) from last_error


def normalize_image_outputs(raw: Any) -> list[str]:
    """
    Normalize the image outputs returned by Replicate into a list of URL strings.
    """

    if raw is None:
        return []

    if isinstance(raw, str):
        return [raw]

    if isinstance(raw, bytes):
        return [raw.decode("utf-8", errors="ignore")]

    url = getattr(raw, "url", None)
    if isinstance(url, str):
        return [url]

    if isinstance(raw, IterableABC):
        collected = list(raw)
        if not collected:
            return []

        if all(isinstance(item, str) and len(item) == 1 for item in collected):
            return ["".join(collected)]

        normalized: list[str] = []
        for item in collected:
            normalized.extend(normalize_image_outputs(item))
        return normalized

    return [str(raw)]


def _prepare_image_input(
    input_image: str | Path | BinaryIO,
    *,
    stack: ExitStack,
) -> str | BinaryIO:
    """
    Normalize the image input so Replicate can consume it, keeping resources open via ExitStack.
    """
    if hasattr(input_image, "read"):
        if hasattr(input_image, "seek"):
            input_image.seek(0)
        return input_image  # type: ignore[return-value]

    if isinstance(input_image, Path):
        input_path = input_image.expanduser()
    else:
        input_candidate = str(input_image)
        if input_candidate.lower().startswith(("http://", "https://", "data:")):
            return input_candidate
        input_path = Path(input_candidate).expanduser()

    if not input_path.exists():
        raise FileNotFoundError(f"Input image not found at '{input_path}'.")

    return stack.enter_context(input_path.open("rb"))
