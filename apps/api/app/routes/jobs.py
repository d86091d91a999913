"""Job routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from app.routes.dependencies import get_authenticated_principal, get_job_manager, get_optional_principal
from app.schemas.auth import AuthPrincipal
from app.schemas.error import ErrorResponse, FsmTransitionError, NoLeakNotFoundError
from app.schemas.job import CancelJobResponse, Job
from app.services.jobs import JobRecordManager

router = APIRouter(tags=["Jobs"])


@router.get(
    "/jobs/{jobId}",
    response_model=Job,
    responses={401: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def get_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal | None, Depends(get_optional_principal)],
    jobs: Annotated[JobRecordManager, Depends(get_job_manager)],
) -> Job:
    return jobs.get_job(owner_id=principal.user_id if principal is not None else None, job_id=job_id)


@router.post(
    "/jobs/{jobId}/cancel",
    response_model=CancelJobResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": FsmTransitionError},
    },
)
async def cancel_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    jobs: Annotated[JobRecordManager, Depends(get_job_manager)],
) -> CancelJobResponse:
    return jobs.cancel_job(owner_id=principal.user_id, job_id=job_id)
