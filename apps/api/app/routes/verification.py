"""Human-verification session route."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.routes.dependencies import get_requester, get_verification_session_service
from app.schemas.error import ErrorResponse
from app.schemas.verification import VerificationRequest, VerificationSession
from app.services.admission import Requester
from app.services.verification_sessions import VerificationSessionService

router = APIRouter(tags=["Verification"])


@router.post(
    "/verification",
    response_model=VerificationSession,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def verify(
    payload: VerificationRequest,
    requester: Annotated[Requester, Depends(get_requester)],
    service: Annotated[VerificationSessionService, Depends(get_verification_session_service)],
) -> VerificationSession:
    """``verify`` trades a challenge token for a session token; ``verify_session`` checks one."""
    client_ip = requester.client_ip or "unknown"
    if payload.action == "verify_session":
        return service.verify_session(session_token=payload.token, client_ip=client_ip)
    return service.exchange_challenge(
        challenge_token=payload.token,
        client_ip=client_ip,
        client_key=requester.identity_key,
    )
