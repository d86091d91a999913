"""In-memory repositories used by the API and tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from typing import Literal
from uuid import uuid4

from app.domain.job_fsm import ensure_transition
from app.schemas.job import JobStatus, SourceType
from app.schemas.usage import UsageCategory, UserTier

ActorType = Literal["admission", "supplier", "callback", "editor", "system"]


@dataclass(slots=True)
class JobRecord:
    id: str
    source_type: SourceType
    source_hash: str
    source_url: str | None
    owner_id: str
    tier: UserTier
    status: JobStatus
    created_at: datetime
    title: str | None = None
    language: str | None = None
    duration_sec: int = 0
    original_duration_sec: int | None = None
    cost_minutes: Decimal = Decimal("0")
    processed_url: str | None = None
    supplier: str | None = None
    standard_tier_output: bool = False
    result_text: str | None = None
    failure_reason: str | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    deleted: bool = False


@dataclass(slots=True, frozen=True)
class UsageRecord:
    identity_key: str
    category: UsageCategory
    minutes: Decimal
    window_date: date
    created_at: datetime
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass(slots=True)
class TransitionAuditRecord:
    job_id: str
    actor_type: ActorType
    prev_status: JobStatus
    new_status: JobStatus
    recorded_at: datetime


@dataclass(slots=True)
class LocalQueueItem:
    job_id: str
    payload: dict[str, Any]
    created_at: datetime
    done: bool = False


@dataclass(slots=True)
class InMemoryStore:
    """Simple, deterministic persistence layer for local runs and tests."""

    jobs: dict[str, JobRecord] = field(default_factory=dict)
    usage_records: list[UsageRecord] = field(default_factory=list)
    transition_audit_events: list[TransitionAuditRecord] = field(default_factory=list)
    local_queue: list[LocalQueueItem] = field(default_factory=list)
    challenge_attempts: dict[str, tuple[int, int]] = field(default_factory=dict)
    used_challenge_tokens: dict[str, int] = field(default_factory=dict)
    job_write_count: int = 0
    usage_write_count: int = 0
    job_insert_failure_message: str | None = None
    job_update_failure_message: str | None = None
    usage_write_failure_message: str | None = None
    usage_read_failure_message: str | None = None

    def create_job(self, job: JobRecord) -> JobRecord:
        if self.job_insert_failure_message is not None:
            message = self.job_insert_failure_message
            self.job_insert_failure_message = None
            raise RuntimeError(message)

        job.updated_at = job.created_at
        self.jobs[job.id] = job
        self.job_write_count += 1
        return job

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.jobs.get(job_id)

    def get_job_for_owner(self, owner_id: str, job_id: str) -> JobRecord | None:
        job = self.jobs.get(job_id)
        if job is None or not job.owner_id or job.owner_id != owner_id:
            return None
        return job

    def transition_job_status(
        self,
        *,
        job: JobRecord,
        new_status: JobStatus,
        actor_type: ActorType,
    ) -> None:
        """Apply an FSM-validated status mutation with consistent write bookkeeping."""
        if self.job_update_failure_message is not None:
            message = self.job_update_failure_message
            self.job_update_failure_message = None
            raise RuntimeError(message)

        ensure_transition(job.status, new_status)
        previous_status = job.status
        now = datetime.now(UTC)
        job.status = new_status
        job.updated_at = now
        if new_status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED):
            job.completed_at = now
        if new_status is JobStatus.CANCELLED:
            job.deleted = True
        self.job_write_count += 1
        self.transition_audit_events.append(
            TransitionAuditRecord(
                job_id=job.id,
                actor_type=actor_type,
                prev_status=previous_status,
                new_status=new_status,
                recorded_at=now,
            )
        )

    def transition_unless_cancelled(
        self,
        *,
        job_id: str,
        new_status: JobStatus,
        actor_type: ActorType,
    ) -> bool:
        """Conditional write: ``UPDATE ... WHERE status != 'cancelled'``. Returns whether a row changed."""
        job = self.jobs.get(job_id)
        if job is None or job.status is JobStatus.CANCELLED:
            return False
        self.transition_job_status(job=job, new_status=new_status, actor_type=actor_type)
        return True

    def update_job_fields(self, *, job: JobRecord, **fields: Any) -> None:
        if self.job_update_failure_message is not None:
            message = self.job_update_failure_message
            self.job_update_failure_message = None
            raise RuntimeError(message)

        for name, value in fields.items():
            setattr(job, name, value)
        job.updated_at = datetime.now(UTC)
        self.job_write_count += 1

    def append_usage(self, record: UsageRecord) -> UsageRecord:
        if self.usage_write_failure_message is not None:
            message = self.usage_write_failure_message
            self.usage_write_failure_message = None
            raise RuntimeError(message)

        self.usage_records.append(record)
        self.usage_write_count += 1
        return record

    def query_usage(
        self,
        *,
        identity_key: str,
        category: UsageCategory,
        window_start: date,
        window_end: date,
    ) -> list[UsageRecord]:
        if self.usage_read_failure_message is not None:
            message = self.usage_read_failure_message
            self.usage_read_failure_message = None
            raise RuntimeError(message)

        return [
            record
            for record in self.usage_records
            if record.identity_key == identity_key
            and record.category is category
            and window_start <= record.window_date <= window_end
        ]

    def enqueue_local(self, *, job_id: str, payload: dict[str, Any]) -> LocalQueueItem:
        item = LocalQueueItem(job_id=job_id, payload=dict(payload), created_at=datetime.now(UTC))
        self.local_queue.append(item)
        return item

    def count_challenge_attempt(self, *, client_key: str, now_ms: int, window_ms: int) -> tuple[int, int]:
        """Count an attempt in the fixed one-window bucket; returns (attempts, window reset ms)."""
        count, reset_ms = self.challenge_attempts.get(client_key, (0, 0))
        if now_ms >= reset_ms:
            count, reset_ms = 0, now_ms + window_ms
        count += 1
        self.challenge_attempts[client_key] = (count, reset_ms)
        return count, reset_ms

    def challenge_token_used(self, token: str) -> bool:
        return token in self.used_challenge_tokens

    def mark_challenge_token_used(self, token: str, *, now_ms: int, retention_ms: int) -> None:
        cutoff = now_ms - retention_ms
        for stale in [key for key, used_at in self.used_challenge_tokens.items() if used_at < cutoff]:
            del self.used_challenge_tokens[stale]
        self.used_challenge_tokens[token] = now_ms
