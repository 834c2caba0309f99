from __future__ import annotations

import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest
from replicate.exceptions import ReplicateError

from storysync.ai_generation import RenderError, ReplicateImageRenderer, get_art_style, normalize_image_outputs
from storysync.common import ChatResult
from storysync.pipeline.identity import (
    DefaultDescription,
    DescriptionChain,
    DescriptionRequest,
    DescriptionUnavailableError,
    ProvidedDescription,
    default_description_chain,
)


def _photo_request() -> DescriptionRequest:
    return DescriptionRequest(character_name="Emma", age="6", reference_image="https://example.com/emma.png")


def test_provided_description_wins() -> None:
    chain = default_description_chain(completion_fn=lambda **_: pytest.fail("model should not be called"))

    outcome = chain.describe(
        DescriptionRequest(character_name="Emma", description="Emma, a girl with brown pigtails")
    )

    assert outcome.provider == "provided"
    assert outcome.description == "Emma, a girl with brown pigtails"


def test_photo_describer_keeps_only_physical_traits() -> None:
    calls: list[dict[str, Any]] = []

    def fake_completion(**kwargs: Any) -> ChatResult:
        calls.append(kwargs)
        return ChatResult(text="- curly red hair\n- blue eyes\n- wearing a yellow dress", model=kwargs["model"])

    chain = default_description_chain(model="fake-vision", completion_fn=fake_completion)

    outcome = chain.describe(_photo_request())

    assert outcome.provider == "litellm_photo"
    assert outcome.description == "Emma, a 6 year old child with curly red hair, blue eyes"
    assert calls[0]["model"] == "fake-vision"
    image_part = calls[0]["messages"][1]["content"][1]
    assert image_part["image_url"]["url"] == "https://example.com/emma.png"


def test_photo_failure_falls_back_to_default_description() -> None:
    def failing_completion(**_: Any) -> ChatResult:
        raise RuntimeError("vision model offline")

    chain = default_description_chain(completion_fn=failing_completion)

    outcome = chain.describe(_photo_request())

    assert outcome.provider == "default"
    assert outcome.description == "Emma, a 6 year old child with a warm, friendly smile"
    assert [attempt.provider for attempt in outcome.attempts] == ["provided", "litellm_photo", "default"]
    assert outcome.attempts[1].error == "vision model offline"


def test_default_description_without_age() -> None:
    attempt = DefaultDescription().attempt(DescriptionRequest(character_name="Leo"))

    assert attempt.description == "Leo, a young child with a warm, friendly smile"


def test_chain_raises_when_every_provider_fails() -> None:
    chain = DescriptionChain([ProvidedDescription()])

    with pytest.raises(DescriptionUnavailableError):
        chain.describe(DescriptionRequest(character_name="Emma"))


@dataclass
class FakeReplicateClient:
    outputs: list[Any] = field(default_factory=list)
    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    def run(self, model: str, input: dict[str, Any]) -> Any:
        self.calls.append((model, input))
        result = self.outputs.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def test_replicate_renderer_builds_model_payload() -> None:
    client = FakeReplicateClient(outputs=[["https://cdn.example.com/page1.png"]])
    renderer = ReplicateImageRenderer(client=client, model_identifier="stability-ai/sdxl")
    style_params = {**get_art_style("watercolor_illustration").render_params(), "seed": 42}

    url = renderer.render("Emma dives into the ocean.", style_params)

    assert url == "https://cdn.example.com/page1.png"
    model, payload = client.calls[0]
    assert model == "stability-ai/sdxl"
    assert payload["prompt"] == "Emma dives into the ocean."
    assert payload["negative_prompt"] == "NOT digital, NOT harsh lines, NOT oversaturated"
    assert payload["seed"] == 42


def test_replicate_renderer_retries_then_succeeds() -> None:
    client = FakeReplicateClient(outputs=[ReplicateError("busy"), "https://cdn.example.com/page2.png"])
    renderer = ReplicateImageRenderer(client=client, max_attempts=2)

    assert renderer.render("prompt", {"model_overrides": {"aspect_ratio": "4:3"}}) == "https://cdn.example.com/page2.png"
    assert len(client.calls) == 2
    assert client.calls[0][1]["aspect_ratio"] == "4:3"


def test_replicate_renderer_raises_render_error() -> None:
    exhausted = ReplicateImageRenderer(
        client=FakeReplicateClient(outputs=[ReplicateError("busy"), ReplicateError("busy")]),
        max_attempts=2,
    )
    with pytest.raises(RenderError):
        exhausted.render("prompt", {})

    empty = ReplicateImageRenderer(client=FakeReplicateClient(outputs=[[]]))
    with pytest.raises(RenderError):
        empty.render("prompt", {})


def test_replicate_renderer_rejects_unknown_model() -> None:
    renderer = ReplicateImageRenderer(client=FakeReplicateClient(), model_identifier="someone/unknown")

    with pytest.raises(ValueError):
        renderer.render("prompt", {})


def test_normalize_image_outputs() -> None:
    class FileOutput:
        url = "https://cdn.example.com/file.png"

    assert normalize_image_outputs(None) == []
    assert normalize_image_outputs("https://a.png") == ["https://a.png"]
    assert normalize_image_outputs([FileOutput(), "https://b.png"]) == [
        "https://cdn.example.com/file.png",
        "https://b.png",
    ]


@dataclass
class ReadingReplicateClient(FakeReplicateClient):
    uploads: list[bytes] = field(default_factory=list)

    def run(self, model: str, input: dict[str, Any]) -> Any:
        self.uploads.append(input["image"].read())
        return super().run(model, input)


def test_replicate_renderer_uploads_full_reference_on_every_attempt(tmp_path: Path) -> None:
    reference = tmp_path / "emma.png"
    reference.write_bytes(b"emma-photo")
    client = ReadingReplicateClient(outputs=[ReplicateError("busy"), "https://cdn.example.com/page3.png"])
    renderer = ReplicateImageRenderer(client=client, model_identifier="stability-ai/sdxl", max_attempts=2)

    url = renderer.render("prompt", {"reference_image": str(reference)})

    assert url == "https://cdn.example.com/page3.png"
    assert client.uploads == [b"emma-photo", b"emma-photo"]

    stream_client = ReadingReplicateClient(outputs=[ReplicateError("busy"), "https://cdn.example.com/page4.png"])
    stream_renderer = ReplicateImageRenderer(client=stream_client, model_identifier="stability-ai/sdxl")

    stream_renderer.render("prompt", {"reference_image": io.BytesIO(b"emma-photo")})

    assert stream_client.uploads == [b"emma-photo", b"emma-photo"]


def test_replicate_renderer_reports_missing_reference_as_render_error(tmp_path: Path) -> None:
    client = FakeReplicateClient(outputs=["https://cdn.example.com/page1.png"])
    renderer = ReplicateImageRenderer(client=client, model_identifier="stability-ai/sdxl")

    with pytest.raises(RenderError):
        renderer.render("prompt", {"reference_image": str(tmp_path / "missing.png")})
    assert client.calls == []
