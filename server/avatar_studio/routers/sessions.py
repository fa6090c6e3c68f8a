"""Session endpoints backing the avatar page: submit, result panel, download."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from ..models import schemas
from ..services.orchestration import OrchestrationService, UnknownSessionError

router = APIRouter(prefix="/sessions", tags=["sessions"])

DOWNLOAD_FILENAME = "avatar-image.png"


def get_orchestration(request: Request) -> OrchestrationService:
    return request.app.state.orchestration


def _lookup(orchestration: OrchestrationService, session_id: str) -> None:
    try:
        orchestration.get(session_id)
    except UnknownSessionError:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}") from None


@router.post("/", response_model=schemas.SessionResponse)
async def create_session(
    orchestration: OrchestrationService = Depends(get_orchestration),
) -> schemas.SessionResponse:
    """Open a new avatar session with an empty result panel."""

    session = orchestration.create_session()
    view = orchestration.view(session.session_id)
    return schemas.SessionResponse(session_id=session.session_id, status=view.status)


@router.get("/{session_id}", response_model=schemas.ResultView)
async def get_session_view(
    session_id: str, orchestration: OrchestrationService = Depends(get_orchestration)
) -> schemas.ResultView:
    """Return what the result panel currently shows for the session."""

    _lookup(orchestration, session_id)
    return orchestration.view(session_id)


@router.post("/{session_id}/submit", response_model=schemas.ResultView)
async def submit_form(
    session_id: str,
    values: Dict[str, Any] = Body(...),
    orchestration: OrchestrationService = Depends(get_orchestration),
) -> schemas.ResultView:
    """Validate the form, write the prompt, then generate the image."""

    _lookup(orchestration, session_id)
    return await orchestration.submit(session_id, values)


@router.post("/{session_id}/regenerate", response_model=schemas.ResultView)
async def regenerate_image(
    session_id: str, orchestration: OrchestrationService = Depends(get_orchestration)
) -> schemas.ResultView:
    _lookup(orchestration, session_id)
    return await orchestration.regenerate(session_id)


@router.post("/{session_id}/retry-load", response_model=schemas.ResultView)
async def retry_image_load(
    session_id: str, orchestration: OrchestrationService = Depends(get_orchestration)
) -> schemas.ResultView:
    _lookup(orchestration, session_id)
    return orchestration.retry_image_load(session_id)


@router.post("/{session_id}/image-events", response_model=schemas.ResultView)
async def report_image_event(
    session_id: str,
    payload: schemas.ImageEventRequest,
    orchestration: OrchestrationService = Depends(get_orchestration),
) -> schemas.ResultView:
    """Accept load/error events from a browser rendering the image itself."""

    _lookup(orchestration, session_id)
    return orchestration.record_image_event(
        session_id,
        payload.event,
        error_type=payload.error_type,
        error_message=payload.error_message,
    )


@router.post("/{session_id}/reset", response_model=schemas.ResultView)
async def reset_session(
    session_id: str, orchestration: OrchestrationService = Depends(get_orchestration)
) -> schemas.ResultView:
    _lookup(orchestration, session_id)
    return orchestration.reset(session_id)


@router.get("/{session_id}/download")
async def download_image(
    session_id: str, orchestration: OrchestrationService = Depends(get_orchestration)
) -> FileResponse:
    """Send the current image as an attachment; the local copy is removed afterwards."""

    _lookup(orchestration, session_id)
    workdir = Path(tempfile.mkdtemp(prefix="avatar-download-"))
    target = workdir / DOWNLOAD_FILENAME
    try:
        await orchestration.download(session_id, target)
    except Exception:
        _cleanup(workdir)
        raise
    return FileResponse(
        target,
        media_type="image/png",
        filename=DOWNLOAD_FILENAME,
        background=BackgroundTask(_cleanup, workdir),
    )


def _cleanup(workdir: Path) -> None:
    for entry in workdir.iterdir():
        entry.unlink(missing_ok=True)
    os.rmdir(workdir)
