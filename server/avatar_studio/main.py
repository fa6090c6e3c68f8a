"""FastAPI application entrypoint for the avatar studio."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import settings
from .errors import AvatarServiceError, ErrorKind
from .routers import avatar, sessions
from .services.avatar_description import AvatarDescriptionService
from .services.image_generation import ImageGenerationService
from .services.orchestration import OrchestrationService

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


def create_app(
    *,
    description_service: Optional[AvatarDescriptionService] = None,
    image_service: Optional[ImageGenerationService] = None,
    orchestration: Optional[OrchestrationService] = None,
) -> FastAPI:
    """Instantiate and configure the FastAPI application."""

    descriptions = description_service or AvatarDescriptionService()
    images = image_service or ImageGenerationService()
    orchestrator = orchestration or OrchestrationService(
        description_service=descriptions, image_service=images
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not settings.anthropic_api_key:
            logger.warning("ANTHROPIC_API_KEY missing; description generation will be unavailable")
        if not settings.replicate_api_token:
            logger.warning("REPLICATE_API_TOKEN missing; image generation will be unavailable")
        yield
        orchestrator.close()

    application = FastAPI(
        title="Game Avatar Studio",
        description="Describe yourself, pick a game art style, and receive an AI-generated avatar.",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.state.description_service = descriptions
    application.state.image_service = images
    application.state.orchestration = orchestrator

    @application.exception_handler(AvatarServiceError)
    async def _service_error(request: Request, exc: AvatarServiceError) -> JSONResponse:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.kind.value)
        return JSONResponse(status_code=exc.kind.http_status, content={"error": exc.to_payload()})

    @application.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = [str(err.get("msg", "")) for err in exc.errors()]
        error = AvatarServiceError(
            ErrorKind.VALIDATION_ERROR,
            "; ".join(m for m in messages if m) or "Invalid request",
        )
        return JSONResponse(status_code=error.kind.http_status, content={"error": error.to_payload()})

    application.include_router(avatar.router)
    application.include_router(sessions.router)

    @application.get("/")
    async def root() -> dict[str, str]:
        """Lightweight health endpoint for service discovery."""
        return {"service": "game-avatar-studio", "status": "ok"}

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
