"""Local fallback route: queue the job for the in-process worker."""

from __future__ import annotations

from app.adapters.providers.base import ProviderRequest, ProviderSubmission, TranscriptionProvider
from app.repositories.memory import InMemoryStore


class LocalQueueProvider(TranscriptionProvider):
    name = "local"
    tier = "local"

    def __init__(self, store: InMemoryStore, *, enabled: bool) -> None:
        self._store = store
        self._enabled = enabled

    @property
    def available(self) -> bool:
        return self._enabled

    def submit(self, request: ProviderRequest, *, timeout: float) -> ProviderSubmission:
        item = self._store.enqueue_local(
            job_id=request.job_id,
            payload={
                "media_url": request.media_url,
                "language": request.language,
                "enable_diarization": request.enable_diarization,
            },
        )
        return ProviderSubmission(accepted=True, external_id=item.job_id)
