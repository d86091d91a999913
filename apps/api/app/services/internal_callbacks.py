"""Provider webhook handling: signature verification and idempotent terminal writes."""

from __future__ import annotations

import json
import logging
from typing import Any

from app.core.logging_safety import safe_log_identifier
from app.core.signing import verify_body_signature, verify_job_signature
from app.domain.job_fsm import is_terminal
from app.errors import ApiError, not_found
from app.repositories.memory import InMemoryStore
from app.schemas.internal import CallbackAck, ProviderResult
from app.schemas.job import JobStatus

logger = logging.getLogger(__name__)


def _signature_error() -> ApiError:
    return ApiError(status_code=401, code="callback_signature_invalid", message="Callback signature is invalid")


def _load_body(raw_body: bytes) -> dict[str, Any]:
    if not raw_body:
        return {}
    try:
        body = json.loads(raw_body)
    except ValueError as exc:
        raise ApiError(status_code=400, code="validation_error", message="Invalid callback payload") from exc
    if not isinstance(body, dict):
        raise ApiError(status_code=400, code="validation_error", message="Invalid callback payload")
    return body


def parse_standard_result(body: dict[str, Any]) -> ProviderResult:
    """Deepgram pre-recorded response: ``results.channels[0].alternatives[0].transcript``."""
    metadata = body.get("metadata") or {}
    request_id = metadata.get("request_id") if isinstance(metadata, dict) else None
    if body.get("err_code") or body.get("error"):
        return ProviderResult(
            status="failed",
            external_id=request_id,
            error=str(body.get("err_code") or body.get("error")),
        )

    channels = ((body.get("results") or {}).get("channels")) or []
    channel = channels[0] if channels and isinstance(channels[0], dict) else {}
    alternatives = channel.get("alternatives") or []
    text = alternatives[0].get("transcript") if alternatives and isinstance(alternatives[0], dict) else None
    if text is None and isinstance(body.get("transcript"), str):
        text = body["transcript"]
    if text is None:
        return ProviderResult(status="failed", external_id=request_id, error="missing_transcript")
    return ProviderResult(
        status="completed",
        text=text,
        language=channel.get("detected_language"),
        external_id=request_id,
    )


def parse_premium_result(body: dict[str, Any]) -> ProviderResult:
    """Replicate prediction webhook: ``status`` plus ``output.transcription`` or ``output.segments``."""
    status = str(body.get("status") or "").lower()
    prediction_id = body.get("id")
    if status in ("failed", "canceled"):
        return ProviderResult(status="failed", external_id=prediction_id, error=str(body.get("error") or status))

    output = body.get("output") or {}
    if isinstance(output, dict) and isinstance(output.get("output"), dict):
        output = output["output"]
    if not isinstance(output, dict):
        output = {}

    text = output.get("transcription")
    if not isinstance(text, str):
        segments = output.get("segments") or []
        text = "\n".join(str(segment.get("text", "")).strip() for segment in segments if isinstance(segment, dict))
    if not text:
        return ProviderResult(status="failed", external_id=prediction_id, error="missing_transcript")
    return ProviderResult(
        status="completed",
        text=text,
        language=output.get("detected_language"),
        external_id=prediction_id,
    )


class ProviderCallbackService:
    def __init__(
        self,
        store: InMemoryStore,
        *,
        standard_secret: str | None,
        premium_secret: str | None,
    ) -> None:
        self._store = store
        self._standard_secret = standard_secret
        self._premium_secret = premium_secret

    def handle_standard(
        self,
        *,
        job_id: str,
        raw_body: bytes,
        body_signature: str | None,
        url_signature: str | None,
    ) -> CallbackAck:
        if self._standard_secret and not (
            verify_body_signature(self._standard_secret, raw_body, body_signature)
            or verify_job_signature(self._standard_secret, job_id, url_signature)
        ):
            logger.warning(
                "callback.rejected supplier=standard job_id=%s code=callback_signature_invalid",
                safe_log_identifier(job_id, prefix="jid"),
            )
            raise _signature_error()
        result = parse_standard_result(_load_body(raw_body))
        return self._apply(job_id=job_id, supplier="standard", result=result, standard_tier_output=False)

    def handle_premium(
        self,
        *,
        job_id: str,
        raw_body: bytes,
        body_signature: str | None,
        fallback: bool,
    ) -> CallbackAck:
        if self._premium_secret and not verify_body_signature(self._premium_secret, raw_body, body_signature):
            logger.warning(
                "callback.rejected supplier=premium job_id=%s code=callback_signature_invalid",
                safe_log_identifier(job_id, prefix="jid"),
            )
            raise _signature_error()
        result = parse_premium_result(_load_body(raw_body))
        return self._apply(job_id=job_id, supplier="premium", result=result, standard_tier_output=fallback)

    def _apply(
        self,
        *,
        job_id: str,
        supplier: str,
        result: ProviderResult,
        standard_tier_output: bool,
    ) -> CallbackAck:
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        job = self._store.get_job(job_id)
        if job is None:
            logger.warning("callback.rejected supplier=%s job_id=%s code=resource_not_found", supplier, safe_job_id)
            raise not_found()

        if job.status is JobStatus.CANCELLED:
            logger.info("callback.ignored supplier=%s job_id=%s reason=cancelled", supplier, safe_job_id)
            return CallbackAck(job_id=job_id, status=job.status, ignored=True)

        if is_terminal(job.status):
            logger.info("callback.replayed supplier=%s job_id=%s current_status=%s", supplier, safe_job_id, job.status)
            return CallbackAck(job_id=job_id, status=job.status, replayed=True)

        previous_status = job.status
        new_status = JobStatus.COMPLETED if result.status == "completed" else JobStatus.FAILED
        if new_status is JobStatus.COMPLETED:
            self._store.update_job_fields(
                job=job,
                result_text=result.text,
                language=result.language or job.language,
                standard_tier_output=standard_tier_output,
            )
        else:
            self._store.update_job_fields(job=job, failure_reason=result.error)
        if previous_status is JobStatus.QUEUED and new_status is JobStatus.COMPLETED:
            # Dispatch bookkeeping was lost; the provider clearly received the job.
            self._store.transition_job_status(job=job, new_status=JobStatus.TRANSCRIBING, actor_type="callback")
        self._store.transition_job_status(job=job, new_status=new_status, actor_type="callback")
        for item in self._store.local_queue:
            if item.job_id == job_id:
                item.done = True

        logger.info(
            "callback.applied supplier=%s job_id=%s prev_status=%s new_status=%s standard_tier_output=%s",
            supplier,
            safe_job_id,
            previous_status,
            new_status,
            standard_tier_output,
        )
        return CallbackAck(job_id=job_id, status=job.status)


__all__ = ["ProviderCallbackService", "parse_premium_result", "parse_standard_result"]
