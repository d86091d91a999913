"""Premium-tier provider: Whisper large-v3 predictions on Replicate."""

from __future__ import annotations

import logging

import requests

from app.adapters.providers.base import ProviderRequest, ProviderSubmission, TranscriptionProvider, callback_url
from app.core.logging_safety import safe_log_identifier

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/v1/callbacks/premium"


class ReplicateProvider(TranscriptionProvider):
    name = "replicate"
    tier = "premium"

    def __init__(
        self,
        *,
        api_token: str | None,
        model_version: str,
        api_base: str = "https://api.replicate.com/v1",
        session: requests.Session | None = None,
    ) -> None:
        self._api_token = api_token
        self._model_version = model_version
        self._api_base = api_base.rstrip("/")
        self._session = session or requests.Session()

    @property
    def available(self) -> bool:
        return bool(self._api_token)

    def build_callback_url(self, request: ProviderRequest) -> str:
        params = {"job_id": request.job_id}
        if request.enable_diarization:
            params["dw"] = "1"
        if request.high_accuracy:
            params["ha"] = "1"
        elif request.fallback:
            # Result handler stores this output as standard-tier.
            params["dg_missing"] = "1"
        return callback_url(request.callback_base_url, CALLBACK_PATH, params)

    def submit(self, request: ProviderRequest, *, timeout: float) -> ProviderSubmission:
        cb = self.build_callback_url(request)
        payload = {
            "version": self._model_version,
            "input": {
                "audio": request.media_url,
                "audio_file": request.media_url,
                "model": "large-v3",
                "diarize": False,
                "translate": False,
            },
            "webhook": cb,
            "webhook_events_filter": ["completed"],
        }
        if request.language:
            payload["input"]["language"] = request.language

        safe_job_id = safe_log_identifier(request.job_id, prefix="jid")
        try:
            response = self._session.post(
                f"{self._api_base}/predictions",
                json=payload,
                headers={"Authorization": f"Token {self._api_token}"},
                timeout=timeout,
            )
        except requests.RequestException as exc:
            logger.error("supplier.enqueue_error supplier=%s job_id=%s reason=%s", self.name, safe_job_id, type(exc).__name__)
            return ProviderSubmission(accepted=False, callback_url=cb, error=type(exc).__name__)

        if not response.ok:
            logger.error(
                "supplier.enqueue_failed supplier=%s job_id=%s status_code=%s",
                self.name,
                safe_job_id,
                response.status_code,
            )
            return ProviderSubmission(
                accepted=False,
                callback_url=cb,
                status_code=response.status_code,
                error=f"http_{response.status_code}",
            )

        prediction_id = None
        try:
            prediction_id = response.json().get("id")
        except ValueError:
            pass
        logger.info("supplier.enqueued supplier=%s job_id=%s fallback=%s", self.name, safe_job_id, request.fallback)
        return ProviderSubmission(
            accepted=True,
            callback_url=cb,
            status_code=response.status_code,
            external_id=prediction_id,
        )
