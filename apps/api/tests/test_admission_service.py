"""Admission orchestrator tests."""

from __future__ import annotations

import unittest

from app.adapters.media import AudioClipper
from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.schemas.job import JobStatus
from app.schemas.transcribe import TranscribeRequest
from app.schemas.usage import UsageCategory, UserTier
from app.services.admission import Requester
from app.services.cancellation import AbortSignal
from app.services.jobs import JobRecordManager
from support import FakeProvider, FixedDurationProbe, build_admission_service

ANON = Requester(identity_key="anon-abc", client_ip="203.0.113.7")


def _user(user_id: str) -> Requester:
    return Requester(identity_key=user_id, user_id=user_id, client_ip="203.0.113.8")


def _request(**body) -> TranscribeRequest:
    payload = {"type": "audio_url", "content": "https://media.test/talk.mp3"}
    payload.update(body)
    return TranscribeRequest.model_validate(payload)


class _AbortingClipper(AudioClipper):
    """Simulates the client hanging up while the clip is being produced."""

    def __init__(self, signal: AbortSignal) -> None:
        self._signal = signal
        self.calls = 0

    def clip(self, *, job_id: str, source_url: str, seconds: int, timeout: float) -> str | None:
        self.calls += 1
        self._signal.abort()
        return f"https://clips.test/{job_id}.mp3"


class _ClipAt(AudioClipper):
    def clip(self, *, job_id: str, source_url: str, seconds: int, timeout: float) -> str | None:
        return f"https://clips.test/{job_id}-{seconds}.mp3"


class _OwnerCancellingClipper(AudioClipper):
    """The owner cancels through the jobs API while the clip is being produced."""

    def __init__(self, store: InMemoryStore, owner_id: str) -> None:
        self._jobs = JobRecordManager(store)
        self._owner_id = owner_id

    def clip(self, *, job_id: str, source_url: str, seconds: int, timeout: float) -> str | None:
        self._jobs.cancel_job(owner_id=self._owner_id, job_id=job_id)
        return f"https://clips.test/{job_id}.mp3"


class AdmissionServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.standard = FakeProvider("deepgram", "standard")
        self.premium = FakeProvider("replicate", "premium")

    def _service(self, **kwargs):
        kwargs.setdefault("standard", self.standard)
        kwargs.setdefault("premium", self.premium)
        return build_admission_service(self.store, **kwargs)

    def test_abort_after_placeholder_cancels_job_without_provider_call(self) -> None:
        signal = AbortSignal()
        clipper = _AbortingClipper(signal)
        service = self._service(clipper=clipper)

        outcome = service.admit(_request(action="preview", sessionToken="tok"), requester=ANON, signal=signal)

        self.assertTrue(outcome.aborted)
        self.assertEqual(outcome.aborted_stage, "dispatch")
        self.assertEqual(clipper.calls, 1)
        job = self.store.get_job(outcome.job_id)
        self.assertEqual(job.status, JobStatus.CANCELLED)
        self.assertTrue(job.deleted)
        self.assertEqual(self.standard.requests, [])
        self.assertEqual(self.premium.requests, [])

    def test_job_cancelled_by_owner_mid_admission_is_not_dispatched(self) -> None:
        service = self._service(clipper=_OwnerCancellingClipper(self.store, "user-free"))

        outcome = service.admit(_request(), requester=_user("user-free"), signal=AbortSignal())

        self.assertTrue(outcome.aborted)
        self.assertEqual(outcome.aborted_stage, "job_cancelled")
        self.assertIsNone(outcome.dispatch)
        self.assertEqual(self.store.get_job(outcome.job_id).status, JobStatus.CANCELLED)
        self.assertEqual(self.standard.requests, [])
        self.assertEqual(self.premium.requests, [])

    def test_abort_before_any_side_effect(self) -> None:
        signal = AbortSignal()
        signal.abort()

        outcome = self._service().admit(_request(), requester=_user("user-a"), signal=signal)

        self.assertTrue(outcome.aborted)
        self.assertEqual(outcome.aborted_stage, "validation")
        self.assertIsNone(outcome.job_id)
        self.assertEqual(self.store.jobs, {})
        self.assertEqual(self.store.usage_records, [])

    def test_original_duration_matches_probe_when_not_clipped(self) -> None:
        service = self._service(probe=FixedDurationProbe(1234.0), tiers_by_user={"user-pro": UserTier.PRO})

        outcome = service.admit(_request(), requester=_user("user-pro"), signal=AbortSignal())

        self.assertIsNone(outcome.clip_policy)
        job = self.store.get_job(outcome.job_id)
        self.assertEqual(job.original_duration_sec, 1234)
        self.assertEqual(job.duration_sec, 1234)
        self.assertEqual(job.tier, UserTier.PRO)
        self.assertEqual(job.status, JobStatus.TRANSCRIBING)
        self.assertEqual(outcome.estimated_minutes, 21)

    def test_clip_changes_processed_duration_only(self) -> None:
        service = self._service(probe=FixedDurationProbe(1234.0), clipper=_ClipAt())

        outcome = service.admit(_request(), requester=_user("user-free"), signal=AbortSignal())

        job = self.store.get_job(outcome.job_id)
        self.assertEqual(job.original_duration_sec, 1234)
        self.assertEqual(job.duration_sec, 300)
        self.assertEqual(outcome.estimated_minutes, 5)
        self.assertEqual(self.standard.requests[0].media_url, f"https://clips.test/{outcome.job_id}-300.mp3")

    def test_unknown_original_duration_is_not_invented(self) -> None:
        outcome = self._service(clipper=_ClipAt()).admit(
            _request(action="preview", sessionToken="tok"), requester=ANON, signal=AbortSignal()
        )

        job = self.store.get_job(outcome.job_id)
        self.assertEqual(job.duration_sec, 300)
        self.assertIsNone(job.original_duration_sec)

    def test_clipper_unavailable_falls_back_to_original_url(self) -> None:
        outcome = self._service().admit(_request(action="preview", sessionToken="tok"), requester=ANON, signal=AbortSignal())

        self.assertIn("clip", outcome.degraded_steps)
        self.assertEqual(self.standard.requests[0].media_url, "https://media.test/talk.mp3")

    def test_anonymous_preview_records_preview_and_minutes(self) -> None:
        self._service().admit(_request(action="preview", sessionToken="tok"), requester=ANON, signal=AbortSignal())

        categories = sorted(record.category.value for record in self.store.usage_records)
        self.assertEqual(categories, [UsageCategory.ANON_PREVIEW.value, UsageCategory.ANON_USAGE.value])
        minutes = {record.category: record.minutes for record in self.store.usage_records}
        self.assertEqual(minutes[UsageCategory.ANON_USAGE], 5)

    def test_placeholder_failure_still_returns_job_id(self) -> None:
        self.store.job_insert_failure_message = "insert failed"

        outcome = self._service().admit(_request(), requester=_user("user-a"), signal=AbortSignal())

        self.assertIsNotNone(outcome.job_id)
        self.assertIn("placeholder", outcome.degraded_steps)
        self.assertEqual(self.standard.requests[0].job_id, outcome.job_id)

    def test_ledger_write_failure_is_fail_open(self) -> None:
        self.store.usage_write_failure_message = "write failed"

        outcome = self._service().admit(_request(), requester=_user("user-a"), signal=AbortSignal())

        self.assertFalse(outcome.aborted)
        self.assertIn("usage_standard", outcome.degraded_steps)
        self.assertEqual(self.store.usage_records, [])

    def test_ledger_read_failure_is_fail_closed(self) -> None:
        self.store.usage_read_failure_message = "read failed"

        with self.assertRaises(ApiError) as context:
            self._service().admit(_request(), requester=_user("user-a"), signal=AbortSignal())

        self.assertEqual(context.exception.status_code, 500)
        self.assertEqual(context.exception.payload.code, "admission_check_failed")
        self.assertEqual(context.exception.payload.details, {"step": "quota"})
        self.assertEqual(self.store.jobs, {})

    def test_duration_limit_reports_actual_and_allowed(self) -> None:
        service = self._service(probe=FixedDurationProbe(4000.0), tiers_by_user={"user-b": UserTier.BASIC})

        with self.assertRaises(ApiError) as context:
            service.admit(_request(), requester=_user("user-b"), signal=AbortSignal())

        self.assertEqual(context.exception.status_code, 413)
        self.assertEqual(context.exception.payload.code, "duration_limit_exceeded")
        self.assertEqual(context.exception.payload.details, {"duration_seconds": 4000.0, "allowed_seconds": 3600})
        self.assertEqual(self.store.jobs, {})

    def test_high_accuracy_requires_access(self) -> None:
        service = self._service(tiers_by_user={"user-pro": UserTier.PRO})

        free = service.admit(_request(options={"highAccuracyMode": True}), requester=_user("user-free"), signal=AbortSignal())
        pro = service.admit(_request(options={"high_accuracy": True}), requester=_user("user-pro"), signal=AbortSignal())

        self.assertEqual(free.dispatch.supplier, "deepgram")
        self.assertEqual(pro.dispatch.supplier, "replicate")
        pro_categories = [record.category for record in self.store.usage_records if record.identity_key == "user-pro"]
        self.assertEqual(pro_categories, [UsageCategory.HIGH_ACCURACY])

    def test_diarization_only_for_paid_tiers(self) -> None:
        service = self._service(tiers_by_user={"user-b": UserTier.BASIC})
        options = {"enableDiarizationAfterWhisper": True}

        service.admit(_request(options=options), requester=_user("user-free"), signal=AbortSignal())
        service.admit(_request(options=options), requester=_user("user-b"), signal=AbortSignal())

        self.assertEqual([request.enable_diarization for request in self.standard.requests], [False, True])

    def test_tier_claim_overrides_tier_lookup(self) -> None:
        requester = Requester(identity_key="user-c", user_id="user-c", tier_claim=UserTier.PREMIUM)

        outcome = self._service(probe=FixedDurationProbe(20_000.0)).admit(_request(), requester=requester, signal=AbortSignal())

        self.assertEqual(outcome.tier, UserTier.PREMIUM)
        self.assertIsNone(outcome.clip_policy)

    def test_no_supplier_fails_job(self) -> None:
        service = build_admission_service(self.store)

        with self.assertRaises(ApiError) as context:
            service.admit(_request(), requester=_user("user-a"), signal=AbortSignal())

        self.assertEqual(context.exception.status_code, 503)
        (job,) = self.store.jobs.values()
        self.assertEqual(job.status, JobStatus.FAILED)

    def test_storage_key_and_double_protocol_are_canonicalised(self) -> None:
        outcome = self._service().admit(
            _request(type="file_upload", content="https://https://uploads.test/x.mp3", options={"r2Key": "uploads/x.mp3"}),
            requester=_user("user-a"),
            signal=AbortSignal(),
        )

        job = self.store.get_job(outcome.job_id)
        self.assertEqual(job.source_url, "https://uploads.test/x.mp3")
        self.assertEqual(self.standard.requests[0].media_url, "https://cdn.test/uploads/x.mp3")


if __name__ == "__main__":
    unittest.main()
