"""Remote-procedure style endpoints wrapping the two generation calls."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..models import schemas
from ..services.avatar_description import AvatarDescriptionService
from ..services.image_generation import ImageGenerationService

router = APIRouter(prefix="/api/avatar", tags=["avatar"])


def get_description_service(request: Request) -> AvatarDescriptionService:
    return request.app.state.description_service


def get_image_service(request: Request) -> ImageGenerationService:
    return request.app.state.image_service


@router.post("/description", response_model=schemas.DescriptionResponse)
async def generate_avatar_description(
    payload: schemas.DescriptionRequest,
    service: AvatarDescriptionService = Depends(get_description_service),
) -> schemas.DescriptionResponse:
    """Turn a self description plus style context into an image prompt."""

    description = await service.generate(payload.description, payload.game_style)
    return schemas.DescriptionResponse(description=description)


@router.post("/image", response_model=schemas.ImageResponse)
async def generate_avatar_image(
    payload: schemas.ImageRequest,
    service: ImageGenerationService = Depends(get_image_service),
) -> schemas.ImageResponse:
    """Generate an avatar image and return its (possibly temporary) URL."""

    image_url = await service.generate(payload.prompt)
    return schemas.ImageResponse(image_url=image_url)
