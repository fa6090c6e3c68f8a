"""Compose session and image display state into the result panel view."""
from __future__ import annotations

from typing import Optional

from ..models.schemas import ImageDisplayView, ResultView
from .image_display import ImageDisplay, LoadState
from .image_urls import validate_image_url

INVALID_GENERATED_URL = "The generated image URL is not properly formatted"
TEMPORARY_NOTICE = (
    "This image is temporary and may expire after some time. "
    "If you want to keep it, please download it."
)
TIMED_OUT_MESSAGE = (
    "Image is taking longer than expected to load... "
    "The image might still be processing. Please wait a moment."
)
DELIVERY_ERROR_NOTICE = "The image is no longer available. Please regenerate it."
LOAD_ERROR_NOTICE = "Failed to load image. Please try again."


def loading_message(game_style: Optional[str]) -> str:
    return f"Creating your {game_style or 'custom'} avatar... This may take up to a minute."


def build_result_view(
    *,
    image_url: Optional[str],
    is_generating: bool,
    error: Optional[str],
    game_style: Optional[str],
    display: Optional[ImageDisplay] = None,
    load_error: Optional[tuple[str, str]] = None,
    session_id: Optional[str] = None,
) -> ResultView:
    """Decide what the panel shows; every failure comes with a way forward."""

    snapshot: Optional[ImageDisplayView] = display.snapshot() if display is not None else None
    base = {"session_id": session_id, "style": game_style, "image_url": image_url, "image": snapshot}

    if is_generating:
        return ResultView(status="generating", message=loading_message(game_style), **base)

    if error and not image_url:
        return ResultView(status="error", message=f"Error: {error}", actions=["try_again", "reset"], **base)

    if not image_url:
        return ResultView(status="empty", **base)

    if not validate_image_url(image_url):
        return ResultView(
            status="error",
            message=f"Error: {INVALID_GENERATED_URL}",
            actions=["regenerate", "reset"],
            **base,
        )

    state = display.state if display is not None else LoadState.LOADING
    is_temporary = display.is_temporary if display is not None else False

    if state is LoadState.LOADED:
        return ResultView(
            status="loaded",
            notice=TEMPORARY_NOTICE if is_temporary else None,
            actions=["download", "regenerate", "reset"],
            **base,
        )

    if load_error is not None or state is LoadState.ERRORED:
        error_type, error_message = load_error or (
            display.error_type or "unknown_error",
            display.error_message or LOAD_ERROR_NOTICE,
        )
        if state is LoadState.TIMED_OUT:
            return ResultView(
                status="timed_out",
                message=TIMED_OUT_MESSAGE,
                notice=error_message,
                actions=["retry_load", "regenerate", "reset"],
                **base,
            )
        notice = DELIVERY_ERROR_NOTICE if error_type == "replicate_delivery_error" else LOAD_ERROR_NOTICE
        return ResultView(
            status="load_error",
            message=f"Image Load Error: {error_message}",
            notice=notice,
            actions=["retry_load", "regenerate", "reset"],
            **base,
        )

    if state is LoadState.TIMED_OUT:
        return ResultView(
            status="timed_out",
            message=TIMED_OUT_MESSAGE,
            actions=["retry_load", "regenerate", "reset"],
            **base,
        )

    return ResultView(
        status="loading",
        notice=TEMPORARY_NOTICE if is_temporary else None,
        actions=["regenerate", "reset"],
        **base,
    )
