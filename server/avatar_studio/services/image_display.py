"""Per-session image display state machine.

An ``ImageDisplay`` tracks one generated avatar image from the moment its URL
is known until it either renders or is given up on. Load and error outcomes
are fed back through ``handle_load``/``handle_error`` so that both the
server-side probe loop (``run``) and a browser reporting its own ``<img>``
events drive the same state.
"""
from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

import httpx

from ..errors import AvatarServiceError, ErrorKind
from ..models import schemas
from .image_loader import ImageLoadError, fetch_image, load_image_with_retry
from .image_urls import (
    ImageErrorDetails,
    image_error_details,
    is_image_accessible,
    is_likely_temporary_url,
    normalize_image_url,
    validate_image_url,
)

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Image is taking too long to load. It might still be processing."
INVALID_URL_MESSAGE = "Invalid image URL format"

ErrorCallback = Callable[[str, str], None]
Sleep = Callable[[float], Awaitable[None]]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    TIMED_OUT = "timed_out"
    LOADED = "loaded"
    ERRORED = "errored"


class RenderStrategy(str, Enum):
    """How a render-time load is attempted.

    ``OPTIMIZED`` only asks the host whether the image is there (HEAD);
    ``DIRECT`` downloads the resource itself and is used after a failure.
    """

    OPTIMIZED = "optimized"
    DIRECT = "direct"


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class ImageDisplay:
    """Sequence an image through loading, timeout, loaded and errored states."""

    def __init__(
        self,
        *,
        on_error: Optional[ErrorCallback] = None,
        client: Optional[httpx.AsyncClient] = None,
        scheduler: Scheduler = _loop_scheduler,
        sleep: Sleep = asyncio.sleep,
        max_retries: int = 2,
        temporary_timeout: float = 20.0,
        default_timeout: float = 15.0,
        preload_delay: float = 2.0,
        request_timeout: float = 15.0,
    ) -> None:
        self._on_error = on_error
        self._client = client
        self._scheduler = scheduler
        self._sleep = sleep
        self.max_retries = max_retries
        self.temporary_timeout = temporary_timeout
        self.default_timeout = default_timeout
        self.preload_delay = preload_delay
        self.request_timeout = request_timeout

        self.source_url: Optional[str] = None
        self.normalized_url: Optional[str] = None
        self.is_generating = False
        self.timeout_duration: Optional[float] = None
        self._timer: Optional[TimerHandle] = None
        self._reset_state()

    def _reset_state(self) -> None:
        self.is_loaded = False
        self.has_error = False
        self.error_type: Optional[str] = None
        self.error_message: Optional[str] = None
        self.retry_count = 0
        self.loading_timeout = False
        self.strategy = RenderStrategy.OPTIMIZED
        self._error_reported = False

    @property
    def state(self) -> LoadState:
        if self.is_generating:
            return LoadState.LOADING
        if self.has_error:
            return LoadState.ERRORED
        if self.is_loaded:
            return LoadState.LOADED
        if self.normalized_url is None:
            return LoadState.IDLE
        if self.loading_timeout:
            return LoadState.TIMED_OUT
        return LoadState.LOADING

    @property
    def is_temporary(self) -> bool:
        return is_likely_temporary_url(self.normalized_url)

    def _report(self, error_type: str, message: str) -> None:
        # Only the first failure per URL reaches the parent.
        if self._error_reported:
            return
        self._error_reported = True
        if self._on_error is not None:
            logger.info("Reporting image error to parent: %s %s", error_type, message)
            self._on_error(error_type, message)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def set_url(self, url: Optional[str], *, is_generating: bool = False) -> LoadState:
        """Point the display at ``url``; a different URL starts over from scratch."""

        if url != self.source_url:
            self._reset_state()
        self.source_url = url
        self.is_generating = is_generating

        if not url or not url.strip() or is_generating:
            self._cancel_timer()
            self.normalized_url = None
            self.timeout_duration = None
            return self.state

        logger.debug("Original image URL: %s", url)
        if not validate_image_url(url):
            self._cancel_timer()
            self.normalized_url = None
            self.timeout_duration = None
            self.has_error = True
            self.error_type = "invalid_url"
            self.error_message = INVALID_URL_MESSAGE
            self._report("invalid_url", INVALID_URL_MESSAGE)
            return self.state

        normalized = normalize_image_url(url)
        if normalized != self.normalized_url:
            self._reset_state()
            self.normalized_url = normalized

        self._cancel_timer()
        if not (self.is_loaded or self.has_error):
            self.timeout_duration = (
                self.temporary_timeout if is_likely_temporary_url(normalized) else self.default_timeout
            )
            self._timer = self._scheduler(self.timeout_duration, self._on_timeout)
        return self.state

    def _on_timeout(self) -> None:
        self._timer = None
        if self.is_loaded or self.has_error:
            return
        logger.warning(
            "Image loading timeout after %.0fs: %s", self.timeout_duration or 0, self.normalized_url
        )
        self.loading_timeout = True
        self._report("timeout", TIMEOUT_MESSAGE)
        self.strategy = RenderStrategy.DIRECT

    def handle_load(self) -> LoadState:
        logger.info("Image loaded successfully: %s", self.normalized_url)
        self.is_loaded = True
        self.has_error = False
        self.error_type = None
        self.error_message = None
        self.loading_timeout = False
        self._cancel_timer()
        return self.state

    def handle_error(self, details: Optional[ImageErrorDetails] = None) -> LoadState:
        """Record a failed render-time load; give up once the retry cap is hit."""

        if self.is_loaded or self.has_error:
            return self.state
        details = details or image_error_details(self.normalized_url)
        logger.error("Image load error: %s %s %s", details.type, details.message, self.normalized_url)

        self.retry_count = min(self.retry_count + 1, self.max_retries)
        if self.retry_count < self.max_retries:
            logger.info("Retry %d/%d for image: %s", self.retry_count, self.max_retries, self.normalized_url)
            if self.retry_count == 1:
                self.strategy = RenderStrategy.DIRECT
            return self.state

        self.has_error = True
        self.error_type = details.type
        self.error_message = details.message
        self._report(details.type, details.message)
        self._cancel_timer()
        return self.state

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.request_timeout) as client:
            yield client

    async def preload(self) -> bool:
        """Warm the image off the render path; failures only bump the retry count."""

        url = self.normalized_url
        if not url or self.is_loaded or self.has_error or self.retry_count >= self.max_retries:
            return False

        if is_likely_temporary_url(url) and self.retry_count == 0:
            logger.info("Detected temporary URL, waiting before first load attempt: %s", url)
            await self._sleep(self.preload_delay)

        try:
            async with self._http() as client:
                await load_image_with_retry(url, 1, self.preload_delay, client=client, sleep=self._sleep)
        except ImageLoadError as exc:
            if url != self.normalized_url:
                return False
            logger.warning("Image preload failed, will try again on render: %s (%s)", url, exc)
            self.retry_count = min(self.retry_count + 1, self.max_retries)
            return False

        logger.info("Image preloaded successfully: %s", url)
        return url == self.normalized_url

    async def _attempt(self, url: str, strategy: RenderStrategy) -> bool:
        async with self._http() as client:
            if strategy is RenderStrategy.OPTIMIZED:
                return await is_image_accessible(url, client=client)
            try:
                await fetch_image(client, url)
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Direct image load failed: %s (%s)", url, exc)
                return False
            return True

    async def render_attempt(self) -> LoadState:
        """Perform one visible load with the current strategy and record the outcome."""

        url = self.normalized_url
        if not url or self.is_loaded or self.has_error:
            return self.state

        ok = await self._attempt(url, self.strategy)
        if url != self.normalized_url:
            # The URL changed while we were waiting; this outcome is stale.
            return self.state
        if ok:
            return self.handle_load()
        return self.handle_error(image_error_details(url))

    async def run(self) -> LoadState:
        """Drive preload and render attempts until the image loads or errors."""

        url = self.normalized_url
        if not url:
            return self.state
        await self.preload()
        while self.normalized_url == url and not (self.is_loaded or self.has_error):
            await self.render_attempt()
        return self.state

    async def download(self, destination: Path) -> Path:
        """Save the current image to ``destination`` via a temporary file."""

        url = self.normalized_url
        if not url:
            raise AvatarServiceError(ErrorKind.VALIDATION_ERROR, "No image available to download")

        try:
            async with self._http() as client:
                image = await fetch_image(client, url)
        except httpx.HTTPStatusError as exc:
            raise AvatarServiceError(
                ErrorKind.UPSTREAM_UNAVAILABLE,
                f"Failed to fetch image: {exc.response.status_code} {exc.response.reason_phrase}",
            ) from exc
        except httpx.HTTPError as exc:
            raise AvatarServiceError(ErrorKind.NETWORK_ERROR, "Failed to download image") from exc
        except ValueError as exc:
            raise AvatarServiceError(ErrorKind.UPSTREAM_PROTOCOL_ERROR, str(exc)) from exc

        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=destination.parent, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(image.content)
            os.replace(tmp_name, destination)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("Downloaded image %s to %s", url, destination)
        return destination

    def close(self) -> None:
        self._cancel_timer()

    def snapshot(self) -> schemas.ImageDisplayView:
        return schemas.ImageDisplayView(
            state=self.state.value,
            url=self.normalized_url,
            is_temporary=self.is_temporary,
            retry_count=self.retry_count,
            max_retries=self.max_retries,
            strategy=self.strategy.value,
            timeout_seconds=self.timeout_duration,
            error_type=self.error_type,
            error_message=self.error_message,
        )
