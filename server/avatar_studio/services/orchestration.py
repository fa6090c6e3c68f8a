"""High-level orchestration of avatar sessions: form, generation, display."""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

from ..errors import AvatarServiceError, ErrorKind
from ..models.schemas import GenerationRequest, ResultView
from .avatar_description import AvatarDescriptionService
from .image_display import ErrorCallback, ImageDisplay, LoadState
from .image_generation import ImageGenerationService
from .image_urls import ImageErrorDetails, image_error_details
from .prompt_form import AvatarPromptForm, PromptSubmission
from .result_panel import build_result_view

logger = logging.getLogger(__name__)

DisplayFactory = Callable[[ErrorCallback], ImageDisplay]


class UnknownSessionError(LookupError):
    """Raised when a session identifier is not registered."""


def _default_display(on_error: ErrorCallback) -> ImageDisplay:
    return ImageDisplay(on_error=on_error)


def _log_display_outcome(session_id: str, task: "asyncio.Task[LoadState]") -> None:
    if task.cancelled():
        logger.debug("[Session %s] Image load task cancelled", session_id)
        return
    exc = task.exception()
    if exc is not None:
        logger.error("[Session %s] Image load task failed: %s", session_id, exc, exc_info=exc)
    else:
        logger.info("[Session %s] Image load finished: %s", session_id, task.result().value)


@dataclass
class AvatarSession:
    """Everything one visitor's page holds between requests."""

    session_id: str
    display: ImageDisplay
    internal_prompt: Optional[str] = None
    game_style: Optional[str] = None
    image_url: Optional[str] = None
    image_error: Optional[str] = None
    image_error_kind: Optional[ErrorKind] = None
    image_load_error: Optional[tuple[str, str]] = None
    is_generating: bool = False
    is_busy: bool = False
    last_submission: Optional[PromptSubmission] = None
    display_task: Optional["asyncio.Task[LoadState]"] = field(default=None, repr=False)


class OrchestrationService:
    """Facade that runs the form, the image request and the display per session."""

    def __init__(
        self,
        *,
        description_service: Optional[AvatarDescriptionService] = None,
        image_service: Optional[ImageGenerationService] = None,
        display_factory: DisplayFactory = _default_display,
        auto_load: bool = True,
    ) -> None:
        self._descriptions = description_service or AvatarDescriptionService()
        self._images = image_service or ImageGenerationService()
        self._display_factory = display_factory
        self._auto_load = auto_load
        self._sessions: Dict[str, AvatarSession] = {}

    def create_session(self) -> AvatarSession:
        session_id = uuid.uuid4().hex
        holder: Dict[str, AvatarSession] = {}

        def _on_image_error(error_type: str, message: str) -> None:
            logger.error("[Session %s] Image load error: %s %s", session_id, error_type, message)
            holder["session"].image_load_error = (error_type, message)

        session = AvatarSession(session_id=session_id, display=self._display_factory(_on_image_error))
        holder["session"] = session
        self._sessions[session_id] = session
        logger.info("[Session %s] Created", session_id)
        return session

    def get(self, session_id: str) -> AvatarSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise UnknownSessionError(session_id) from None

    def view(self, session_id: str) -> ResultView:
        session = self.get(session_id)
        return build_result_view(
            image_url=session.image_url,
            is_generating=session.is_generating,
            error=session.image_error,
            game_style=session.game_style,
            display=session.display,
            load_error=session.image_load_error,
            session_id=session.session_id,
        )

    async def submit(
        self, session_id: str, values: Union[GenerationRequest, Mapping[str, Any]]
    ) -> ResultView:
        """Run the form; a description failure aborts before any image work."""

        session = self._claim(session_id)

        async def _start(prompt: str, style: str) -> None:
            session.internal_prompt = prompt
            session.game_style = style
            await self._generate(session)

        try:
            form = AvatarPromptForm(self._descriptions, on_start_image_generation=_start)
            session.last_submission = await form.submit(values)
        finally:
            session.is_busy = False
        return self.view(session_id)

    async def start_image_generation(self, session_id: str, prompt: str, style: str) -> ResultView:
        session = self._claim(session_id)
        try:
            session.internal_prompt = prompt
            session.game_style = style
            await self._generate(session)
        finally:
            session.is_busy = False
        return self.view(session_id)

    async def regenerate(self, session_id: str) -> ResultView:
        session = self.get(session_id)
        if session.internal_prompt and not session.is_busy:
            session.is_busy = True
            try:
                await self._generate(session)
            finally:
                session.is_busy = False
        return self.view(session_id)

    def _claim(self, session_id: str) -> AvatarSession:
        """Mark the session busy; only one submission or generation runs at a time."""

        session = self.get(session_id)
        if session.is_busy:
            raise AvatarServiceError(
                ErrorKind.VALIDATION_ERROR, "An avatar is already being generated for this session"
            )
        session.is_busy = True
        return session

    async def _generate(self, session: AvatarSession) -> None:
        self._stop_display(session)
        session.image_error = None
        session.image_error_kind = None
        session.image_load_error = None
        session.is_generating = True
        session.display.set_url(None, is_generating=True)
        try:
            image_url = await self._images.generate(session.internal_prompt or "")
        except AvatarServiceError as exc:
            logger.warning("[Session %s] Image generation failed: %s", session.session_id, exc)
            session.image_url = None
            session.image_error = exc.message
            session.image_error_kind = exc.kind
            session.display.set_url(None)
            return
        finally:
            session.is_generating = False

        session.image_url = image_url
        self._show(session)

    def _show(self, session: AvatarSession) -> None:
        session.display.set_url(session.image_url)
        if self._auto_load and session.display.state is LoadState.LOADING:
            task = asyncio.create_task(session.display.run())
            task.add_done_callback(partial(_log_display_outcome, session.session_id))
            session.display_task = task

    def _stop_display(self, session: AvatarSession) -> None:
        task = session.display_task
        if task is not None and not task.done():
            task.cancel()
        session.display_task = None
        session.display.close()

    def retry_image_load(self, session_id: str) -> ResultView:
        """Load the same URL again from a clean state without regenerating."""

        session = self.get(session_id)
        if session.image_url and not session.is_generating:
            logger.info("[Session %s] Retrying image load", session_id)
            self._stop_display(session)
            session.image_load_error = None
            session.display.set_url(None)
            self._show(session)
        return self.view(session_id)

    def record_image_event(
        self,
        session_id: str,
        event: str,
        *,
        error_type: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> ResultView:
        session = self.get(session_id)
        if event not in ("load", "error"):
            raise AvatarServiceError(ErrorKind.VALIDATION_ERROR, f"Unknown image event: {event}")
        if session.display.normalized_url is None:
            logger.info("[Session %s] Ignoring %s event with no image shown", session_id, event)
        elif event == "load":
            session.display.handle_load()
        else:
            details = image_error_details(session.display.normalized_url)
            if error_type or error_message:
                details = ImageErrorDetails(error_type or details.type, error_message or details.message)
            session.display.handle_error(details)
        return self.view(session_id)

    def reset(self, session_id: str) -> ResultView:
        session = self.get(session_id)
        self._stop_display(session)
        session.internal_prompt = None
        session.game_style = None
        session.image_url = None
        session.image_error = None
        session.image_error_kind = None
        session.image_load_error = None
        session.last_submission = None
        session.display.set_url(None)
        return self.view(session_id)

    async def download(self, session_id: str, destination: Path) -> Path:
        session = self.get(session_id)
        return await session.display.download(destination)

    def discard(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            self._stop_display(session)

    def close(self) -> None:
        for session_id in list(self._sessions):
            self.discard(session_id)
