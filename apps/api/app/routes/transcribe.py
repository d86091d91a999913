"""Admission route."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings, get_settings
from app.core.logging_safety import safe_log_identifier
from app.routes.dependencies import get_admission_service, get_requester
from app.schemas.error import ClientAbortedResponse, DurationError, ErrorResponse, QuotaError
from app.schemas.transcribe import TranscribeAccepted, TranscribeRequest
from app.services.admission import AdmissionService, Requester
from app.services.cancellation import AbortSignal

router = APIRouter(tags=["Transcribe"])
logger = logging.getLogger(__name__)

CLIENT_CLOSED_REQUEST = 499


async def _watch_disconnect(request: Request, signal: AbortSignal, poll_seconds: float) -> None:
    while not signal.aborted:
        if await request.is_disconnected():
            signal.abort("client_disconnected")
            return
        await asyncio.sleep(poll_seconds)


async def _stop_watcher(watcher: asyncio.Task) -> None:
    watcher.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await watcher


@router.post(
    "/transcribe",
    response_model=TranscribeAccepted,
    status_code=status.HTTP_200_OK,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        413: {"model": DurationError},
        429: {"model": QuotaError},
        499: {"model": ClientAbortedResponse},
        503: {"model": ErrorResponse},
    },
)
async def transcribe(
    request: Request,
    payload: TranscribeRequest,
    requester: Annotated[Requester, Depends(get_requester)],
    service: Annotated[AdmissionService, Depends(get_admission_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TranscribeAccepted | JSONResponse:
    signal = AbortSignal()
    watcher = asyncio.create_task(_watch_disconnect(request, signal, settings.disconnect_poll_seconds))
    try:
        outcome = await run_in_threadpool(service.admit, payload, requester=requester, signal=signal)
    finally:
        await _stop_watcher(watcher)

    if outcome.aborted:
        logger.info(
            "transcribe.client_aborted job_id=%s stage=%s",
            safe_log_identifier(outcome.job_id, prefix="jid"),
            outcome.aborted_stage,
        )
        if outcome.aborted_stage == "job_cancelled":
            message = "Job was cancelled before it reached a supplier"
        else:
            message = "Request was cancelled by the client"
        body = ClientAbortedResponse(
            code="client_aborted",
            message=message,
            job_id=outcome.job_id,
        )
        return JSONResponse(status_code=CLIENT_CLOSED_REQUEST, content=body.model_dump(mode="json"))

    if outcome.clip_policy is not None and outcome.clip_policy.should_clip:
        message = f"Transcription started for the first {outcome.clip_policy.limit_seconds} seconds"
    else:
        message = "Transcription started"
    return TranscribeAccepted(job_id=outcome.job_id, message=message)
