"""Avatar description generation through the Anthropic Messages API."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..config import settings
from ..errors import AvatarServiceError, ErrorKind, error_for_status

logger = logging.getLogger(__name__)

MAX_TOKENS = 500
TEMPERATURE = 0.7

PROMPT_TEMPLATE = """
Create a prompt for generating an avatar in the style of {game_style} based on this user description: {description}. Just return the final prompt itself with no other text.

Template: "Create a detailed {game_style}-style avatar based on this description: {description}. The character should have [specific features based on the description]. The art style should match {game_style} with [appropriate style-specific guidance]. Include details about clothing, accessories, pose, expression, and background elements that would be appropriate for this game world."

Make sure the prompt is specific, detailed, and tailored to the game style while incorporating elements from the user's personal description. Focus on visual elements that can be represented in an image."""

STATUS_MESSAGES = {
    ErrorKind.UNAUTHORIZED: "Authentication failed with the AI service",
    ErrorKind.PAYMENT_REQUIRED: "AI service requires payment. Please check your account status.",
    ErrorKind.RATE_LIMITED: "Rate limit exceeded for the AI service. Please try again later.",
    ErrorKind.UPSTREAM_UNAVAILABLE: "The AI service is currently experiencing issues. Please try again later.",
    ErrorKind.INTERNAL: "AI service error: {status}",
}


def build_prompt(description: str, game_style: str) -> str:
    return PROMPT_TEMPLATE.format(description=description, game_style=game_style)


def _extract_text(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    blocks = payload.get("content")
    if not isinstance(blocks, list) or not blocks:
        return None
    first = blocks[0]
    if not isinstance(first, dict):
        return None
    text = first.get("text")
    if isinstance(text, str) and text:
        return text
    return None


class AvatarDescriptionService:
    """Turns a free-text self description into a refined image prompt."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.anthropic_api_key
        self._base_url = (base_url or settings.anthropic_base_url).rstrip("/")
        self._model = model or settings.anthropic_model
        self._timeout = timeout if timeout is not None else settings.description_timeout
        self._transport = transport

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self._api_key or "",
            "anthropic-version": settings.anthropic_version,
        }
        # The overall deadline is enforced by wait_for; the client timeout is a backstop.
        async with httpx.AsyncClient(timeout=self._timeout + 5, transport=self._transport) as client:
            return await client.post(f"{self._base_url}/v1/messages", json=payload, headers=headers)

    async def generate(self, description: str, game_style: str) -> str:
        """Return the model-written avatar prompt for ``description`` in ``game_style``."""

        if not description or not description.strip():
            raise AvatarServiceError(ErrorKind.VALIDATION_ERROR, "Description is required")
        if not game_style or not game_style.strip():
            raise AvatarServiceError(ErrorKind.VALIDATION_ERROR, "Game style is required")
        if not self._api_key:
            logger.error("Anthropic API key is not configured")
            raise AvatarServiceError(
                ErrorKind.MISCONFIGURED, "AI description service is not properly configured"
            )

        logger.info("Starting avatar description generation (game_style=%r)", game_style)
        payload = {
            "model": self._model,
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
            "messages": [{"role": "user", "content": build_prompt(description, game_style)}],
        }

        try:
            resp = await asyncio.wait_for(self._post(payload), timeout=self._timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.error("Anthropic API call timed out after %.0f seconds", self._timeout)
            raise AvatarServiceError(
                ErrorKind.TIMEOUT, "AI service request timed out. Please try again later."
            ) from exc
        except httpx.TransportError as exc:
            logger.error("Network error connecting to Anthropic API: %s", exc)
            raise AvatarServiceError(
                ErrorKind.NETWORK_ERROR,
                "Could not connect to AI service. Please check your internet connection and try again.",
            ) from exc

        if not resp.is_success:
            logger.error("Anthropic API error (%s): %s", resp.status_code, resp.text[:500])
            raise error_for_status(resp.status_code, STATUS_MESSAGES)

        try:
            data = resp.json()
        except ValueError as exc:
            raise AvatarServiceError(
                ErrorKind.UPSTREAM_PROTOCOL_ERROR, "Invalid response from AI service"
            ) from exc

        text = _extract_text(data)
        if text is None:
            logger.error("Anthropic response missing content text: %s", str(data)[:500])
            raise AvatarServiceError(ErrorKind.UPSTREAM_PROTOCOL_ERROR, "Invalid response from AI service")

        logger.info("Avatar description generated (%d chars)", len(text))
        return text
