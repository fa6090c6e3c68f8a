"""Avatar prompt form: validates inputs and assembles the image prompt."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from ..errors import AvatarServiceError, ErrorKind
from ..models.schemas import GenerationRequest
from .avatar_description import AvatarDescriptionService

logger = logging.getLogger(__name__)

ART_STYLES: Dict[str, str] = {
    "pixel-art": "Pixel Art",
    "realistic": "Realistic",
    "cartoonish": "Cartoonish",
    "anime": "Anime",
}

STYLE_GUIDELINES = """Style Guidelines:
- Use a {art_style} art style inspired by {game_name}
- Use colors and design elements appropriate for the art style
- Include subtle shading and highlights
- Keep the design cohesive and recognizable"""

StartCallback = Callable[[str, str], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class PromptSubmission:
    request: GenerationRequest
    art_style_label: str
    style_context: str
    description: str
    image_prompt: str
    display_style: str


def art_style_label(value: str) -> str:
    """Map a catalogue value to its label; unknown values are used verbatim."""

    return ART_STYLES.get(value, value)


def style_context(label: str, game_name: str) -> str:
    return f"{label} style from {game_name}"


def build_image_prompt(avatar_description: str, label: str, game_name: str) -> str:
    guidelines = STYLE_GUIDELINES.format(art_style=label, game_name=game_name)
    return f"{avatar_description}\n\n{guidelines}"


def parse_request(values: Union[GenerationRequest, Mapping[str, Any]]) -> GenerationRequest:
    """Validate raw form values, collecting every field message on failure."""

    if isinstance(values, GenerationRequest):
        return values
    try:
        return GenerationRequest.model_validate(dict(values))
    except ValidationError as exc:
        fields: Dict[str, str] = {}
        for err in exc.errors():
            name = str(err["loc"][0]) if err.get("loc") else "form"
            fields.setdefault(name, err["msg"])
        message = "; ".join(fields.values()) or "Invalid form input"
        raise AvatarServiceError(
            ErrorKind.VALIDATION_ERROR, message, details={"fields": fields}
        ) from exc


class AvatarPromptForm:
    """Collects the three form fields and turns them into an image prompt.

    The form stops at the prompt: image generation itself is started by the
    caller through ``on_start_image_generation``.
    """

    def __init__(
        self,
        description_service: Optional[AvatarDescriptionService] = None,
        *,
        on_start_image_generation: Optional[StartCallback] = None,
    ) -> None:
        self._descriptions = description_service or AvatarDescriptionService()
        self._on_start = on_start_image_generation
        self.is_generating = False
        self.error_message: Optional[str] = None

    async def submit(self, values: Union[GenerationRequest, Mapping[str, Any]]) -> PromptSubmission:
        self.error_message = None
        request = parse_request(values)
        self.is_generating = True
        try:
            label = art_style_label(request.art_style)
            context = style_context(label, request.game_name)

            logger.info("Requesting avatar description (style=%r)", context)
            try:
                avatar_description = await self._descriptions.generate(request.description, context)
            except AvatarServiceError as exc:
                self.error_message = exc.message
                raise

            submission = PromptSubmission(
                request=request,
                art_style_label=label,
                style_context=context,
                description=avatar_description,
                image_prompt=build_image_prompt(avatar_description, label, request.game_name),
                display_style=f"{label} ({request.game_name})",
            )
            if self._on_start is not None:
                outcome = self._on_start(submission.image_prompt, submission.display_style)
                if outcome is not None:
                    await outcome
            logger.info("Creating your %s avatar...", label)
            return submission
        finally:
            self.is_generating = False
