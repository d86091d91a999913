"""Admission endpoint schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TranscribeOptions(BaseModel):
    """Client options; unknown keys are kept so they can be forwarded untouched."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    formats: list[str] | None = None
    language: str | None = None
    title: str | None = None
    high_accuracy_mode: bool | None = Field(default=None, alias="highAccuracyMode")
    high_accuracy: bool | None = None
    high_accuracy_camel: bool | None = Field(default=None, alias="highAccuracy")
    enable_diarization_after_whisper: bool = Field(default=False, alias="enableDiarizationAfterWhisper")
    original_file_name: str | None = Field(default=None, alias="originalFileName")
    r2_key: str | None = Field(default=None, alias="r2Key")
    original_duration_sec: float | None = Field(default=None, alias="originalDurationSec")
    estimated_duration_sec: float | None = Field(default=None, alias="estimatedDurationSec")
    probed_duration_sec: float | None = Field(default=None, alias="probedDurationSec")
    duration_sec: float | None = Field(default=None, alias="durationSec")
    duration_seconds: float | None = None
    metadata: dict[str, Any] | None = None

    def wants_high_accuracy(self) -> bool:
        if self.high_accuracy_mode is not None:
            return self.high_accuracy_mode
        alias = self.high_accuracy if self.high_accuracy is not None else self.high_accuracy_camel
        return bool(alias)


class TranscribeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str | None = None
    content: str | None = None
    options: TranscribeOptions = Field(default_factory=TranscribeOptions)
    action: Literal["preview", "transcribe"] = "transcribe"
    turnstile_token: str | None = Field(default=None, alias="turnstileToken")
    session_token: str | None = Field(default=None, alias="sessionToken")


class TranscribeAccepted(BaseModel):
    success: Literal[True] = True
    job_id: str
    status: Literal["processing"] = "processing"
    message: str
