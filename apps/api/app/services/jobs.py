"""Job record lifecycle service."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
import hashlib
import logging
from uuid import uuid4

from app.core.logging_safety import safe_log_identifier
from app.core.side_effects import SideEffectResult, run_best_effort
from app.domain.job_fsm import allowed_next_statuses, is_terminal
from app.errors import ApiError, not_found
from app.repositories.memory import InMemoryStore, JobRecord
from app.schemas.job import CancelJobResponse, Job, JobStatus, SourceType
from app.schemas.usage import UserTier

logger = logging.getLogger(__name__)

_USER_CANCELLABLE_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.QUEUED, JobStatus.TRANSCRIBING})


def new_job_id() -> str:
    return f"job_{uuid4().hex}"


def source_fingerprint(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


class JobRecordManager:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    @staticmethod
    def build_placeholder(
        *,
        job_id: str,
        source_type: SourceType,
        content: str,
        source_url: str | None,
        owner_id: str,
        tier: UserTier,
        title: str | None,
        language: str | None,
        duration_sec: int,
        original_duration_sec: int | None,
        cost_minutes: float,
    ) -> JobRecord:
        return JobRecord(
            id=job_id,
            source_type=source_type,
            source_hash=source_fingerprint(content),
            source_url=source_url,
            owner_id=owner_id,
            tier=tier,
            status=JobStatus.QUEUED,
            created_at=datetime.now(UTC),
            title=title or "Processing...",
            language=language or "auto",
            duration_sec=duration_sec,
            original_duration_sec=original_duration_sec,
            cost_minutes=Decimal(str(cost_minutes)),
        )

    def create_placeholder(self, job: JobRecord) -> SideEffectResult[JobRecord]:
        """Insert the queued record; a failed insert does not stop admission."""
        result = run_best_effort("placeholder", lambda: self._store.create_job(job))
        logger.info(
            "job.placeholder job_id=%s created=%s status=%s",
            safe_log_identifier(job.id, prefix="jid"),
            result.ok,
            job.status,
        )
        return result

    def mark_transcribing(self, job_id: str) -> bool:
        """Record that a dispatch attempt was made; never overrides ``cancelled``."""
        applied = self._store.transition_unless_cancelled(
            job_id=job_id,
            new_status=JobStatus.TRANSCRIBING,
            actor_type="supplier",
        )
        logger.info("job.transcribing job_id=%s applied=%s", safe_log_identifier(job_id, prefix="jid"), applied)
        return applied

    def record_supplier(self, job_id: str, *, supplier: str, processed_url: str | None) -> None:
        job = self._store.get_job(job_id)
        if job is None:
            return
        self._store.update_job_fields(job=job, supplier=supplier, processed_url=processed_url)

    def is_cancelled(self, job_id: str) -> bool:
        """Re-read the stored status; an owner may cancel while admission is still running."""
        job = self._store.get_job(job_id)
        return job is not None and job.status is JobStatus.CANCELLED

    def mark_failed(self, job_id: str, *, reason: str) -> bool:
        job = self._store.get_job(job_id)
        if job is None or is_terminal(job.status):
            return False
        self._store.transition_job_status(job=job, new_status=JobStatus.FAILED, actor_type="admission")
        job.failure_reason = reason
        logger.warning("job.failed job_id=%s reason=%s", safe_log_identifier(job_id, prefix="jid"), reason)
        return True

    def mark_cancelled(self, job_id: str) -> bool:
        job = self._store.get_job(job_id)
        if job is None or is_terminal(job.status):
            return False
        self._store.transition_job_status(job=job, new_status=JobStatus.CANCELLED, actor_type="system")
        logger.info("job.cancelled job_id=%s deleted=%s", safe_log_identifier(job_id, prefix="jid"), job.deleted)
        return True

    def get_job(self, *, owner_id: str | None, job_id: str) -> Job:
        """Owned jobs are visible to their owner only; ownerless preview jobs to whoever holds the id."""
        record = self._store.get_job(job_id)
        if record is None or record.deleted:
            raise not_found()
        if record.owner_id and record.owner_id != owner_id:
            raise not_found()
        return self.to_job(record)

    def cancel_job(self, *, owner_id: str, job_id: str) -> CancelJobResponse:
        record = self._store.get_job_for_owner(owner_id=owner_id, job_id=job_id)
        if record is None:
            raise not_found()

        safe_job_id = safe_log_identifier(record.id, prefix="jid")
        if record.status is JobStatus.CANCELLED:
            logger.info("cancel.replayed job_id=%s", safe_job_id)
            return CancelJobResponse(job_id=record.id, status=record.status, replayed=True)

        if record.status not in _USER_CANCELLABLE_STATUSES:
            logger.warning("cancel.rejected job_id=%s current_status=%s", safe_job_id, record.status)
            raise ApiError(
                status_code=409,
                code="fsm_terminal_immutable",
                message="Terminal state cannot be mutated",
                details={
                    "current_status": record.status,
                    "attempted_status": JobStatus.CANCELLED,
                    "allowed_next_statuses": allowed_next_statuses(record.status),
                },
            )

        previous_status = record.status
        self._store.transition_job_status(job=record, new_status=JobStatus.CANCELLED, actor_type="editor")
        for item in self._store.local_queue:
            if item.job_id == record.id:
                item.done = True
        logger.info("cancel.applied job_id=%s prev_status=%s new_status=%s", safe_job_id, previous_status, record.status)
        return CancelJobResponse(job_id=record.id, status=record.status, replayed=False)

    @staticmethod
    def to_job(record: JobRecord) -> Job:
        return Job(
            id=record.id,
            source_type=record.source_type,
            source_url=record.source_url,
            status=record.status,
            tier=record.tier,
            title=record.title,
            language=record.language,
            duration_sec=record.duration_sec,
            original_duration_sec=record.original_duration_sec,
            cost_minutes=float(record.cost_minutes),
            supplier=record.supplier,
            created_at=record.created_at,
            completed_at=record.completed_at,
            deleted=record.deleted,
        )
