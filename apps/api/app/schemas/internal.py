"""Provider callback schemas."""

from typing import Literal

from pydantic import BaseModel

from app.schemas.job import JobStatus


class ProviderResult(BaseModel):
    """Normalized outcome extracted from a provider webhook body."""

    status: Literal["completed", "failed"]
    text: str | None = None
    language: str | None = None
    external_id: str | None = None
    error: str | None = None


class CallbackAck(BaseModel):
    ok: Literal[True] = True
    job_id: str
    status: JobStatus
    replayed: bool = False
    ignored: bool = False
