from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from avatar_studio.errors import AvatarServiceError, ErrorKind
from avatar_studio.services.prompt_form import (
    AvatarPromptForm,
    art_style_label,
    build_image_prompt,
    parse_request,
)

DESCRIPTION = "I am a calm, creative problem solver who loves nature"


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


class FakeDescriptions:
    def __init__(self, text: str = "A serene pixel-art ranger", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def generate(self, description: str, game_style: str) -> str:
        self.calls.append((description, game_style))
        if self.error is not None:
            raise self.error
        return self.text


def test_submit_builds_prompt_and_hands_it_to_caller() -> None:
    descriptions = FakeDescriptions()
    started: list[tuple[str, str]] = []
    form = AvatarPromptForm(
        descriptions, on_start_image_generation=lambda prompt, style: started.append((prompt, style))
    )

    submission = _run(
        form.submit({"description": DESCRIPTION, "artStyle": "pixel-art", "gameName": "Minecraft"})
    )

    assert descriptions.calls == [(DESCRIPTION, "Pixel Art style from Minecraft")]
    expected_prompt = (
        "A serene pixel-art ranger\n\n"
        "Style Guidelines:\n"
        "- Use a Pixel Art art style inspired by Minecraft\n"
        "- Use colors and design elements appropriate for the art style\n"
        "- Include subtle shading and highlights\n"
        "- Keep the design cohesive and recognizable"
    )
    assert submission.image_prompt == expected_prompt
    assert started == [(expected_prompt, "Pixel Art (Minecraft)")]
    assert form.is_generating is False


def test_async_start_callback_is_awaited() -> None:
    started: list[str] = []

    async def on_start(prompt: str, style: str) -> None:
        started.append(style)

    form = AvatarPromptForm(FakeDescriptions(), on_start_image_generation=on_start)
    _run(form.submit({"description": DESCRIPTION, "art_style": "anime", "game_name": "Persona 5"}))
    assert started == ["Anime (Persona 5)"]


def test_description_failure_aborts_before_image_generation() -> None:
    error = AvatarServiceError(ErrorKind.RATE_LIMITED, "Rate limit exceeded. Please try again later.")
    started: list[tuple[str, str]] = []
    form = AvatarPromptForm(
        FakeDescriptions(error=error),
        on_start_image_generation=lambda prompt, style: started.append((prompt, style)),
    )

    with pytest.raises(AvatarServiceError) as excinfo:
        _run(form.submit({"description": DESCRIPTION, "artStyle": "anime", "gameName": "Zelda"}))

    assert excinfo.value.kind is ErrorKind.RATE_LIMITED
    assert started == []
    assert form.error_message == error.message
    assert form.is_generating is False


@pytest.mark.parametrize(
    ("values", "message"),
    [
        ({"description": "too short", "artStyle": "anime", "gameName": "Zelda"},
         "Description should be at least 20 characters"),
        ({"description": "x" * 501, "artStyle": "anime", "gameName": "Zelda"},
         "Description should not exceed 500 characters"),
        ({"description": DESCRIPTION, "artStyle": "", "gameName": "Zelda"}, "Please select an art style"),
        ({"description": DESCRIPTION, "artStyle": "anime", "gameName": "  "}, "Game name is required"),
        ({"description": DESCRIPTION}, "Please select an art style"),
    ],
)
def test_invalid_fields_are_reported(values: dict, message: str) -> None:
    descriptions = FakeDescriptions()
    form = AvatarPromptForm(descriptions)
    with pytest.raises(AvatarServiceError) as excinfo:
        _run(form.submit(values))
    assert excinfo.value.kind is ErrorKind.VALIDATION_ERROR
    assert message in excinfo.value.details["fields"].values()
    assert descriptions.calls == []


def test_parse_request_is_frozen() -> None:
    request = parse_request({"description": DESCRIPTION, "artStyle": "realistic", "gameName": "Halo"})
    with pytest.raises(ValidationError):
        request.game_name = "Doom"  # type: ignore[misc]


def test_unknown_art_style_is_used_verbatim() -> None:
    assert art_style_label("cartoonish") == "Cartoonish"
    assert art_style_label("Watercolor") == "Watercolor"


def test_build_image_prompt_keeps_description_verbatim() -> None:
    prompt = build_image_prompt("  Exact text. ", "Anime", "Zelda")
    assert prompt.startswith("  Exact text. \n\nStyle Guidelines:\n")
