"""Job API schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from app.schemas.usage import UserTier


class JobStatus(str, Enum):
    QUEUED = "queued"
    TRANSCRIBING = "transcribing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SourceType(str, Enum):
    YOUTUBE_URL = "youtube_url"
    AUDIO_URL = "audio_url"
    FILE_UPLOAD = "file_upload"


class Job(BaseModel):
    id: str
    source_type: SourceType
    source_url: str | None = None
    status: JobStatus
    tier: UserTier
    title: str | None = None
    language: str | None = None
    duration_sec: int = 0
    original_duration_sec: int | None = None
    cost_minutes: float = 0
    supplier: str | None = None
    created_at: datetime
    completed_at: datetime | None = None
    deleted: bool = False


class CancelJobResponse(BaseModel):
    success: bool = True
    job_id: str
    status: JobStatus
    replayed: bool = False
