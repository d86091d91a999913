"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel

from app.schemas.job import JobStatus


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    code: str
    message: str
    details: dict[str, Any] | None = None


class NoLeakNotFoundError(BaseModel):
    success: Literal[False] = False
    code: Literal["resource_not_found"]
    message: str


class TransitionErrorDetails(BaseModel):
    current_status: JobStatus
    attempted_status: JobStatus
    allowed_next_statuses: list[JobStatus] | None = None


class FsmTransitionError(BaseModel):
    success: Literal[False] = False
    code: Literal["fsm_transition_invalid", "fsm_terminal_immutable"]
    message: str
    details: TransitionErrorDetails


class QuotaErrorDetails(BaseModel):
    reason: str
    remaining: float | None = None
    usage: float | None = None


class QuotaError(BaseModel):
    success: Literal[False] = False
    code: Literal["quota_exceeded", "preview_limit_reached", "youtube_limit_reached"]
    message: str
    details: QuotaErrorDetails


class DurationErrorDetails(BaseModel):
    duration_seconds: float
    allowed_seconds: float


class DurationError(BaseModel):
    success: Literal[False] = False
    code: Literal["duration_limit_exceeded"]
    message: str
    details: DurationErrorDetails


class ClientAbortedResponse(BaseModel):
    success: Literal[False] = False
    code: Literal["client_aborted"]
    message: str
    job_id: str | None = None
