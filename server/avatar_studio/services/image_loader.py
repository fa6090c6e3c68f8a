"""Image preloading with bounded retries and exponential backoff."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ImageLoadError(Exception):
    """Raised once every attempt to load an image has failed."""

    def __init__(self, url: str, attempts: int, last_error: Optional[str] = None) -> None:
        super().__init__(f"Failed to load image after {attempts - 1} retries")
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class LoadedImage:
    url: str
    content: bytes
    content_type: Optional[str]


async def fetch_image(client: httpx.AsyncClient, url: str) -> LoadedImage:
    """Fetch ``url`` once, raising when it does not produce an image."""

    resp = await client.get(url, headers={"Accept": "image/*"}, follow_redirects=True)
    resp.raise_for_status()
    content_type = resp.headers.get("content-type")
    if content_type and not content_type.startswith("image/"):
        raise ValueError(f"URL does not point to an image ({content_type})")
    return LoadedImage(url=url, content=resp.content, content_type=content_type)


async def load_image_with_retry(
    url: str,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    *,
    client: Optional[httpx.AsyncClient] = None,
    sleep: Sleep = asyncio.sleep,
    timeout: float = 15.0,
) -> LoadedImage:
    """Load ``url``, retrying up to ``max_retries`` times with doubling delays.

    ``max_retries + 1`` attempts are made in total; the wait before retry
    ``n`` is ``initial_delay * 2 ** (n - 1)`` seconds.
    """

    if client is None:
        async with httpx.AsyncClient(timeout=timeout) as owned:
            return await load_image_with_retry(
                url, max_retries, initial_delay, client=owned, sleep=sleep
            )

    retries = 0
    delay = initial_delay
    while True:
        try:
            return await fetch_image(client, url)
        except (httpx.HTTPError, ValueError) as exc:
            if retries >= max_retries:
                logger.error("Failed to load image after %d retries: %s (%s)", max_retries, url, exc)
                raise ImageLoadError(url, retries + 1, str(exc)) from exc
            retries += 1
            logger.info(
                "Retry %d/%d loading image: %s (waiting %.1fs)", retries, max_retries, url, delay
            )
            await sleep(delay)
            delay *= 2
