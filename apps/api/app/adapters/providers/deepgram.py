"""Standard-tier provider: Deepgram pre-recorded API with callback delivery."""

from __future__ import annotations

import logging

import requests

from app.adapters.providers.base import ProviderRequest, ProviderSubmission, TranscriptionProvider, callback_url
from app.core.logging_safety import safe_log_identifier
from app.core.signing import sign_job_id

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/v1/callbacks/standard"


class DeepgramProvider(TranscriptionProvider):
    name = "deepgram"
    tier = "standard"

    def __init__(
        self,
        *,
        api_key: str | None,
        webhook_secret: str | None = None,
        api_base: str = "https://api.deepgram.com/v1",
        model: str = "nova-2",
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._api_base = api_base.rstrip("/")
        self._model = model
        self._session = session or requests.Session()

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    def build_callback_url(self, request: ProviderRequest) -> str:
        params = {"job_id": request.job_id}
        if self._webhook_secret:
            params["cb_sig"] = sign_job_id(self._webhook_secret, request.job_id)
        return callback_url(request.callback_base_url, CALLBACK_PATH, params)

    def submit(self, request: ProviderRequest, *, timeout: float) -> ProviderSubmission:
        cb = self.build_callback_url(request)
        params = {
            "callback": cb,
            "paragraphs": "true",
            "punctuate": "true",
            "model": self._model,
            "detect_language": "true",
        }
        if request.enable_diarization:
            params["utterances"] = "true"
            params["diarize"] = "true"

        safe_job_id = safe_log_identifier(request.job_id, prefix="jid")
        try:
            response = self._session.post(
                f"{self._api_base}/listen",
                params=params,
                json={"url": request.media_url},
                headers={"Authorization": f"Token {self._api_key}"},
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

        request_id = None
        try:
            request_id = response.json().get("request_id")
        except ValueError:
            pass
        logger.info("supplier.enqueued supplier=%s job_id=%s", self.name, safe_job_id)
        return ProviderSubmission(
            accepted=True,
            callback_url=cb,
            status_code=response.status_code,
            external_id=request_id,
        )
