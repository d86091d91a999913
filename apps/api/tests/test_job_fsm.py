"""Job lifecycle transition and job record tests."""

from __future__ import annotations

from datetime import UTC, datetime
import unittest

from app.domain.job_fsm import ensure_transition
from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.schemas.job import JobStatus, SourceType
from app.schemas.usage import UserTier
from app.services.jobs import JobRecordManager, new_job_id, source_fingerprint


def _placeholder(store: InMemoryStore, *, owner_id: str = "user-a") -> str:
    job_id = new_job_id()
    store.create_job(
        JobRecordManager.build_placeholder(
            job_id=job_id,
            source_type=SourceType.AUDIO_URL,
            content="https://media.test/a.mp3",
            source_url="https://media.test/a.mp3",
            owner_id=owner_id,
            tier=UserTier.FREE,
            title=None,
            language=None,
            duration_sec=120,
            original_duration_sec=120,
            cost_minutes=2,
        )
    )
    return job_id


class JobFsmUnitTests(unittest.TestCase):
    def test_allowed_transition_examples_across_lifecycle(self) -> None:
        allowed_pairs = [
            (JobStatus.QUEUED, JobStatus.TRANSCRIBING),
            (JobStatus.QUEUED, JobStatus.FAILED),
            (JobStatus.QUEUED, JobStatus.CANCELLED),
            (JobStatus.TRANSCRIBING, JobStatus.TRANSCRIBING),
            (JobStatus.TRANSCRIBING, JobStatus.COMPLETED),
            (JobStatus.TRANSCRIBING, JobStatus.FAILED),
            (JobStatus.TRANSCRIBING, JobStatus.CANCELLED),
        ]
        for old_status, new_status in allowed_pairs:
            with self.subTest(old_status=old_status, new_status=new_status):
                ensure_transition(old_status, new_status)

    def test_forbidden_transitions_report_allowed_statuses(self) -> None:
        with self.assertRaises(ApiError) as context:
            ensure_transition(JobStatus.QUEUED, JobStatus.COMPLETED)
        self.assertEqual(context.exception.status_code, 409)
        self.assertEqual(context.exception.payload.code, "fsm_transition_invalid")
        details = context.exception.payload.details
        self.assertEqual(details["current_status"], JobStatus.QUEUED)
        self.assertEqual(details["attempted_status"], JobStatus.COMPLETED)
        self.assertEqual(
            details["allowed_next_statuses"],
            [JobStatus.CANCELLED, JobStatus.FAILED, JobStatus.TRANSCRIBING],
        )

    def test_terminal_states_are_immutable(self) -> None:
        for terminal_status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED):
            with self.subTest(terminal_status=terminal_status):
                with self.assertRaises(ApiError) as context:
                    ensure_transition(terminal_status, JobStatus.TRANSCRIBING)
                self.assertEqual(context.exception.payload.code, "fsm_terminal_immutable")
                self.assertEqual(context.exception.payload.details["allowed_next_statuses"], [])

    def test_cancel_sets_deleted_and_completed_at(self) -> None:
        store = InMemoryStore()
        job = store.get_job(_placeholder(store))

        store.transition_job_status(job=job, new_status=JobStatus.CANCELLED, actor_type="system")

        self.assertTrue(job.deleted)
        self.assertIsNotNone(job.completed_at)
        self.assertEqual(store.transition_audit_events[-1].prev_status, JobStatus.QUEUED)

    def test_invalid_transition_leaves_record_untouched(self) -> None:
        store = InMemoryStore()
        job = store.get_job(_placeholder(store))
        before_writes = store.job_write_count

        with self.assertRaises(ApiError):
            store.transition_job_status(job=job, new_status=JobStatus.COMPLETED, actor_type="callback")

        self.assertEqual(job.status, JobStatus.QUEUED)
        self.assertEqual(store.job_write_count, before_writes)
        self.assertEqual(store.transition_audit_events, [])


class JobRecordManagerTests(unittest.TestCase):
    def test_placeholder_defaults_and_fingerprint(self) -> None:
        record = JobRecordManager.build_placeholder(
            job_id="job_x",
            source_type=SourceType.YOUTUBE_URL,
            content="https://youtu.be/abc",
            source_url="https://youtu.be/abc",
            owner_id="",
            tier=UserTier.ANONYMOUS,
            title=None,
            language=None,
            duration_sec=0,
            original_duration_sec=0,
            cost_minutes=10,
        )
        self.assertEqual(record.status, JobStatus.QUEUED)
        self.assertEqual(record.title, "Processing...")
        self.assertEqual(record.language, "auto")
        self.assertEqual(record.source_hash, source_fingerprint("https://youtu.be/abc"))
        self.assertEqual(len(record.source_hash), 16)
        self.assertTrue(new_job_id().startswith("job_"))

    def test_placeholder_insert_failure_is_reported_not_raised(self) -> None:
        store = InMemoryStore()
        store.job_insert_failure_message = "db down"
        manager = JobRecordManager(store)
        record = JobRecordManager.build_placeholder(
            job_id="job_y",
            source_type=SourceType.AUDIO_URL,
            content="https://media.test/a.mp3",
            source_url=None,
            owner_id="user-a",
            tier=UserTier.FREE,
            title="Talk",
            language="en",
            duration_sec=60,
            original_duration_sec=60,
            cost_minutes=1,
        )

        result = manager.create_placeholder(record)

        self.assertFalse(result.ok)
        self.assertEqual(result.error, "RuntimeError")
        self.assertEqual(store.jobs, {})

    def test_mark_transcribing_never_overrides_cancelled(self) -> None:
        store = InMemoryStore()
        manager = JobRecordManager(store)
        job_id = _placeholder(store)

        self.assertTrue(manager.mark_cancelled(job_id))
        self.assertFalse(manager.mark_transcribing(job_id))

        job = store.get_job(job_id)
        self.assertEqual(job.status, JobStatus.CANCELLED)
        self.assertTrue(job.deleted)

    def test_user_cancel_replays_and_rejects_terminal_states(self) -> None:
        store = InMemoryStore()
        manager = JobRecordManager(store)
        job_id = _placeholder(store)
        store.enqueue_local(job_id=job_id, payload={})

        first = manager.cancel_job(owner_id="user-a", job_id=job_id)
        second = manager.cancel_job(owner_id="user-a", job_id=job_id)

        self.assertFalse(first.replayed)
        self.assertTrue(second.replayed)
        self.assertEqual(second.status, JobStatus.CANCELLED)
        self.assertTrue(store.local_queue[0].done)

        completed_id = _placeholder(store)
        completed = store.get_job(completed_id)
        store.transition_job_status(job=completed, new_status=JobStatus.TRANSCRIBING, actor_type="supplier")
        store.transition_job_status(job=completed, new_status=JobStatus.COMPLETED, actor_type="callback")
        with self.assertRaises(ApiError) as context:
            manager.cancel_job(owner_id="user-a", job_id=completed_id)
        self.assertEqual(context.exception.status_code, 409)
        self.assertEqual(context.exception.payload.code, "fsm_terminal_immutable")

    def test_get_job_is_owner_scoped_and_hides_deleted(self) -> None:
        store = InMemoryStore()
        manager = JobRecordManager(store)
        job_id = _placeholder(store)

        self.assertEqual(manager.get_job(owner_id="user-a", job_id=job_id).id, job_id)
        for owner in ("user-b", "", None):
            with self.subTest(owner=owner):
                with self.assertRaises(ApiError) as context:
                    manager.get_job(owner_id=owner, job_id=job_id)
                self.assertEqual(context.exception.status_code, 404)

        manager.mark_cancelled(job_id)
        with self.assertRaises(ApiError):
            manager.get_job(owner_id="user-a", job_id=job_id)

    def test_ownerless_job_is_readable_without_identity(self) -> None:
        store = InMemoryStore()
        manager = JobRecordManager(store)
        job_id = _placeholder(store, owner_id="")

        self.assertEqual(manager.get_job(owner_id=None, job_id=job_id).id, job_id)
        self.assertEqual(manager.get_job(owner_id="user-b", job_id=job_id).id, job_id)
        with self.assertRaises(ApiError):
            manager.cancel_job(owner_id="", job_id=job_id)

    def test_mark_failed_skips_terminal_jobs(self) -> None:
        store = InMemoryStore()
        manager = JobRecordManager(store)
        job_id = _placeholder(store)

        self.assertTrue(manager.mark_failed(job_id, reason="supplier_unavailable"))
        self.assertFalse(manager.mark_failed(job_id, reason="again"))
        job = store.get_job(job_id)
        self.assertEqual(job.failure_reason, "supplier_unavailable")
        self.assertLessEqual(job.completed_at, datetime.now(UTC))


if __name__ == "__main__":
    unittest.main()
