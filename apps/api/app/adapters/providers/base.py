"""Transcription provider interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlencode

ProviderTier = Literal["standard", "premium", "local"]


@dataclass(slots=True, frozen=True)
class ProviderRequest:
    job_id: str
    media_url: str
    callback_base_url: str
    language: str | None = None
    enable_diarization: bool = False
    high_accuracy: bool = False
    fallback: bool = False


@dataclass(slots=True, frozen=True)
class ProviderSubmission:
    accepted: bool
    callback_url: str | None = None
    status_code: int | None = None
    external_id: str | None = None
    error: str | None = None


class TranscriptionProvider(ABC):
    """Asynchronous, webhook-driven speech-to-text supplier."""

    name: str
    tier: ProviderTier

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether credentials/configuration allow this provider to be used."""

    @abstractmethod
    def submit(self, request: ProviderRequest, *, timeout: float) -> ProviderSubmission:
        """Send the job to the provider; must not raise for network or HTTP failures."""


def callback_url(base_url: str, path: str, params: dict[str, str]) -> str:
    return f"{base_url.rstrip('/')}{path}?{urlencode(params)}"


__all__ = ["ProviderRequest", "ProviderSubmission", "ProviderTier", "TranscriptionProvider", "callback_url"]
