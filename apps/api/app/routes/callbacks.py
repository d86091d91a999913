"""Provider webhook routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request

from app.routes.dependencies import get_callback_service
from app.schemas.error import ErrorResponse, NoLeakNotFoundError
from app.schemas.internal import CallbackAck
from app.services.internal_callbacks import ProviderCallbackService

router = APIRouter(prefix="/callbacks", tags=["Callbacks"])

_STANDARD_SIGNATURE_HEADERS = ("x-dg-signature", "x-deepgram-signature", "dg-signature", "x-signature")
_PREMIUM_SIGNATURE_HEADERS = ("x-replicate-signature", "x-signature")


def _first_header(request: Request, names: tuple[str, ...]) -> str | None:
    for name in names:
        value = request.headers.get(name)
        if value:
            return value
    return None


@router.post(
    "/standard",
    response_model=CallbackAck,
    responses={401: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def standard_callback(
    request: Request,
    job_id: Annotated[str, Query(min_length=1)],
    service: Annotated[ProviderCallbackService, Depends(get_callback_service)],
    cb_sig: str | None = None,
) -> CallbackAck:
    raw_body = await request.body()
    return service.handle_standard(
        job_id=job_id,
        raw_body=raw_body,
        body_signature=_first_header(request, _STANDARD_SIGNATURE_HEADERS),
        url_signature=cb_sig,
    )


@router.post(
    "/premium",
    response_model=CallbackAck,
    responses={401: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def premium_callback(
    request: Request,
    job_id: Annotated[str, Query(min_length=1)],
    service: Annotated[ProviderCallbackService, Depends(get_callback_service)],
    dg_missing: str | None = None,
) -> CallbackAck:
    raw_body = await request.body()
    return service.handle_premium(
        job_id=job_id,
        raw_body=raw_body,
        body_signature=_first_header(request, _PREMIUM_SIGNATURE_HEADERS),
        fallback=dg_missing == "1",
    )
