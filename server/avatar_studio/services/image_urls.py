"""Helpers for validating, normalizing, and classifying generated image URLs."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import SplitResult, urlsplit

import httpx

logger = logging.getLogger(__name__)

# Replicate serves generated outputs from this domain; links expire after a while.
TEMPORARY_DELIVERY_DOMAIN = "replicate.delivery"


@dataclass(frozen=True)
class ImageErrorDetails:
    type: str
    message: str


def parse_url(url: str) -> SplitResult:
    """Split ``url`` and reject anything without a scheme and a host."""

    parsed = urlsplit(url.strip())
    # Accessing ``port`` validates it and raises ValueError when malformed.
    _ = parsed.port
    if not parsed.scheme or not parsed.netloc or not parsed.hostname:
        raise ValueError(f"Not an absolute URL: {url!r}")
    return parsed


def is_parsable_url(url: Optional[str]) -> bool:
    if not url:
        return False
    try:
        parse_url(url)
    except ValueError:
        return False
    return True


def validate_image_url(url: Optional[str]) -> bool:
    """Return True when ``url`` is a well-formed HTTPS URL.

    Hosts outside the known delivery domain are still accepted; they only
    produce a warning because the image may legitimately live elsewhere.
    """

    if not url:
        return False
    try:
        parsed = parse_url(url)
    except ValueError as exc:
        logger.error("Invalid image URL format: %s (%s)", url, exc)
        return False

    if parsed.scheme.lower() != "https":
        logger.warning("Image URL does not use HTTPS protocol: %s", url)
        return False

    if TEMPORARY_DELIVERY_DOMAIN not in (parsed.hostname or ""):
        logger.warning("Image URL is not from a known domain: %s", url)
    return True


def normalize_image_url(url: Optional[str]) -> Optional[str]:
    """Force the HTTPS scheme, returning the input untouched if it cannot be parsed."""

    if not url:
        return None
    try:
        parsed = parse_url(url)
    except ValueError as exc:
        logger.error("Failed to normalize image URL: %s (%s)", url, exc)
        return url
    return parsed._replace(scheme="https").geturl()


def is_likely_temporary_url(url: Optional[str]) -> bool:
    if not url:
        return False
    try:
        parsed = parse_url(url)
    except ValueError:
        return False
    return TEMPORARY_DELIVERY_DOMAIN in (parsed.hostname or "")


def image_error_details(src: Optional[str]) -> ImageErrorDetails:
    """Describe why loading ``src`` most likely failed."""

    if not src:
        return ImageErrorDetails("missing_src", "No image source provided")

    try:
        parsed = parse_url(src)
    except ValueError:
        return ImageErrorDetails("invalid_url_format", "Invalid image URL format")

    if TEMPORARY_DELIVERY_DOMAIN in (parsed.hostname or ""):
        return ImageErrorDetails(
            "replicate_delivery_error",
            "Failed to load Replicate image. The image might still be processing "
            "or is no longer available.",
        )
    if parsed.scheme.lower() not in {"http", "https"}:
        return ImageErrorDetails("invalid_protocol", "Invalid image URL protocol")
    return ImageErrorDetails("unknown_error", "Failed to load image. Please try again.")


async def is_image_accessible(
    url: Optional[str],
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
) -> bool:
    """Probe ``url`` with a HEAD request and confirm it serves an image."""

    if not url:
        return False

    headers = {"Accept": "image/*", "Cache-Control": "no-cache"}
    try:
        if client is not None:
            resp = await client.head(url, headers=headers, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=timeout) as owned:
                resp = await owned.head(url, headers=headers, follow_redirects=True)
    except httpx.HTTPError as exc:
        logger.error("Error checking image accessibility: %s (%s)", url, exc)
        return False

    if not resp.is_success:
        logger.warning("Image not accessible (%s): %s", resp.status_code, url)
        return False

    content_type = resp.headers.get("content-type")
    if content_type and not content_type.startswith("image/"):
        logger.warning("URL does not point to an image (%s): %s", content_type, url)
        return False
    return True
