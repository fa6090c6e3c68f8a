"""Avatar image generation through Replicate's hosted flux-schnell model."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

import httpx
import replicate
from replicate.exceptions import ReplicateError

from ..config import settings
from ..errors import AvatarServiceError, ErrorKind, error_for_status
from .image_urls import TEMPORARY_DELIVERY_DOMAIN, parse_url

logger = logging.getLogger(__name__)

NEGATIVE_PROMPT = "ugly, disfigured, low quality, blurry, nsfw"

STATUS_MESSAGES = {
    ErrorKind.UNAUTHORIZED: (
        "Failed to authenticate with image generation service. Please check your API credentials."
    ),
    ErrorKind.PAYMENT_REQUIRED: "Image generation service requires payment. Please check your account status.",
    ErrorKind.RATE_LIMITED: "Image generation rate limit exceeded. Please try again later.",
    ErrorKind.UPSTREAM_UNAVAILABLE: (
        "Image generation service is currently experiencing issues. Please try again later."
    ),
    ErrorKind.INTERNAL: "Image generation service error: {status}",
}


class ReplicateRunner(Protocol):
    def run(self, ref: str, input: dict[str, Any]) -> Any: ...


def build_model_input(prompt: str) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "go_fast": True,
        "num_outputs": 1,
        "aspect_ratio": "1:1",
        "negative_prompt": NEGATIVE_PROMPT,
    }


def _status_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status = getattr(exc, "status", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def extract_image_url(output: Any) -> str:
    """Pull the first image URL out of a model output, validating its shape."""

    if not isinstance(output, (list, tuple)) or not output:
        logger.error("Empty or non-list output from Replicate: %r", output)
        raise AvatarServiceError(
            ErrorKind.UPSTREAM_PROTOCOL_ERROR,
            "Image generation succeeded but no output was returned",
        )

    first = output[0]
    # Newer client releases wrap outputs in FileOutput objects exposing ``url``.
    candidate = first if isinstance(first, str) else getattr(first, "url", None)
    if not candidate or not isinstance(candidate, str):
        logger.error("Invalid image URL format received from Replicate: %r", first)
        raise AvatarServiceError(
            ErrorKind.UPSTREAM_PROTOCOL_ERROR,
            "Received invalid image URL from generation service",
        )

    try:
        parsed = parse_url(candidate)
    except ValueError as exc:
        logger.error("Failed to parse image URL: %s", candidate)
        raise AvatarServiceError(
            ErrorKind.UPSTREAM_PROTOCOL_ERROR,
            "Generated image URL is not properly formatted",
        ) from exc

    if TEMPORARY_DELIVERY_DOMAIN not in (parsed.hostname or ""):
        logger.warning("Image URL is not from expected domain: %s (%s)", parsed.hostname, candidate)
    return candidate


class ImageGenerationService:
    """Interfaces with Replicate to generate avatar imagery."""

    def __init__(
        self,
        *,
        api_token: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[ReplicateRunner] = None,
    ) -> None:
        self._api_token = api_token if api_token is not None else settings.replicate_api_token
        self._model = model or settings.replicate_model
        self._timeout = timeout if timeout is not None else settings.image_timeout
        self._client = client

    def _runner(self) -> ReplicateRunner:
        if self._client is None:
            self._client = replicate.Client(api_token=self._api_token)
        return self._client

    async def generate(self, prompt: str) -> str:
        """Generate an avatar image for ``prompt`` and return its URL."""

        if not prompt or not prompt.strip():
            raise AvatarServiceError(ErrorKind.VALIDATION_ERROR, "Prompt is required")
        if not self._api_token:
            logger.error("Replicate API token is not configured")
            raise AvatarServiceError(
                ErrorKind.MISCONFIGURED, "Image generation service is not properly configured"
            )

        model_input = build_model_input(prompt)
        logger.info("Calling Replicate model %s (prompt=%r)", self._model, prompt[:120])
        runner = self._runner()

        def _run() -> Any:
            return runner.run(self._model, input=model_input)

        try:
            # A timed-out worker thread keeps running; its result is simply discarded.
            output = await asyncio.wait_for(asyncio.to_thread(_run), timeout=self._timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.error("Replicate API call timed out after %.0f seconds", self._timeout)
            raise AvatarServiceError(
                ErrorKind.TIMEOUT, "Image generation timed out. Please try again later."
            ) from exc
        except (httpx.TransportError, ConnectionError) as exc:
            logger.error("Network error connecting to Replicate API: %s", exc)
            raise AvatarServiceError(
                ErrorKind.NETWORK_ERROR,
                "Could not connect to image generation service. "
                "Please check your internet connection and try again.",
            ) from exc
        except (ReplicateError, httpx.HTTPStatusError) as exc:
            status = _status_of(exc)
            logger.error("Replicate API error (%s): %s", status, exc)
            if status is None:
                raise AvatarServiceError(
                    ErrorKind.INTERNAL, f"Error during image generation: {exc}"
                ) from exc
            raise error_for_status(status, STATUS_MESSAGES) from exc
        except Exception as exc:
            logger.exception("Unexpected error generating avatar image")
            raise AvatarServiceError(ErrorKind.INTERNAL, f"Error during image generation: {exc}") from exc

        image_url = extract_image_url(output)
        logger.info("Successfully generated avatar image URL: %s", image_url)
        return image_url
