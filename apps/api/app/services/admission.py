"""Admission orchestrator: gates, placeholder, usage bookkeeping, media preparation, dispatch."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
import logging
import time

from app.adapters.media import AudioClipper, DurationProbe, MediaPreparer, StorageUrlRewriter, repair_double_protocol
from app.adapters.tiers import TierPolicyService
from app.adapters.verification import BotVerifier, VerificationStatus
from app.core.config import AdmissionPolicy
from app.core.logging_safety import safe_log_identifier
from app.core.side_effects import SideEffectResult, run_best_effort, run_critical
from app.domain.clip_policy import check_upload_duration_limit, resolve_clip_policy
from app.domain.quota import estimate_minutes
from app.errors import ApiError
from app.schemas.job import SourceType
from app.schemas.transcribe import TranscribeRequest
from app.schemas.usage import ClipPolicy, ModelCategory, QuotaDecision, UsageCategory, UserTier
from app.services.cancellation import AbortSignal, AdmissionDeadline, CancellationMonitor, ClientAbortedError
from app.services.duration_policy import resolve_duration
from app.services.jobs import JobRecordManager, new_job_id
from app.services.quota import QuotaEvaluator
from app.services.suppliers import DispatchFlags, DispatchOutcome, SupplierDispatcher
from app.services.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)

_DIARIZATION_TIERS: frozenset[UserTier] = frozenset({UserTier.BASIC, UserTier.PRO, UserTier.PREMIUM})


@dataclass(slots=True, frozen=True)
class Requester:
    """Who is asking: a user id when signed in, otherwise a derived anonymous key."""

    identity_key: str
    user_id: str | None = None
    client_ip: str | None = None
    tier_claim: UserTier | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


@dataclass(slots=True)
class AdmissionOutcome:
    job_id: str | None
    aborted: bool = False
    aborted_stage: str | None = None
    tier: UserTier = UserTier.ANONYMOUS
    clip_policy: ClipPolicy | None = None
    estimated_minutes: int = 0
    dispatch: DispatchOutcome | None = None
    degraded_steps: list[str] = field(default_factory=list)


@dataclass(slots=True)
class _Admission:
    """Mutable per-request state threaded through the gates."""

    payload: TranscribeRequest
    requester: Requester
    source_type: SourceType
    content: str
    is_preview: bool
    tier: UserTier = UserTier.ANONYMOUS
    source_url: str | None = None
    storage_url: str | None = None
    original_seconds: float | None = None
    clip_policy: ClipPolicy | None = None
    high_accuracy_active: bool = False
    youtube_gate_applied: bool = False
    estimated_minutes: int = 0
    job_id: str | None = None
    degraded_steps: list[str] = field(default_factory=list)

    def note(self, result: SideEffectResult) -> SideEffectResult:
        if not result.ok:
            self.degraded_steps.append(result.step)
        return result


def _quota_error(status_code: int, code: str, decision: QuotaDecision) -> ApiError:
    return ApiError(
        status_code=status_code,
        code=code,
        message=decision.reason,
        details={"reason": decision.reason, "remaining": decision.remaining, "usage": decision.usage},
    )


class AdmissionService:
    """Single admission path for every source type and action.

    Abort checkpoints sit after validation, after the quota gates, after the
    placeholder insert and immediately before the provider call.
    """

    def __init__(
        self,
        *,
        policy: AdmissionPolicy,
        ledger: UsageLedger,
        quota: QuotaEvaluator,
        tier_policy: TierPolicyService,
        jobs: JobRecordManager,
        dispatcher: SupplierDispatcher,
        verifier: BotVerifier,
        probe: DurationProbe,
        clipper: AudioClipper,
        preparer: MediaPreparer,
        url_rewriter: StorageUrlRewriter,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._policy = policy
        self._ledger = ledger
        self._quota = quota
        self._tier_policy = tier_policy
        self._jobs = jobs
        self._dispatcher = dispatcher
        self._verifier = verifier
        self._probe = probe
        self._clipper = clipper
        self._preparer = preparer
        self._url_rewriter = url_rewriter
        self._monotonic = monotonic

    def admit(self, payload: TranscribeRequest, *, requester: Requester, signal: AbortSignal) -> AdmissionOutcome:
        monitor = CancellationMonitor(signal=signal, jobs=self._jobs)
        deadline = AdmissionDeadline(self._policy.admission_deadline_seconds, clock=self._monotonic)

        state = self._validate(payload, requester)
        try:
            monitor.checkpoint("validation")
            self._authorize(state)
            self._resolve_media_policy(state, deadline)
            self._evaluate_quotas(state)
            monitor.checkpoint("quota")

            self._record_usage(state)
            self._create_placeholder(state)
            monitor.checkpoint("placeholder")

            media_url = self._prepare_media(state, deadline)
            monitor.checkpoint("dispatch")
            dispatch = self._dispatcher.dispatch(
                job_id=state.job_id,
                media_url=media_url,
                flags=DispatchFlags(
                    high_accuracy_active=state.high_accuracy_active,
                    enable_diarization=self._diarization_enabled(state),
                    language=state.payload.options.language,
                ),
                monitor=monitor,
                deadline=deadline,
            )
            if dispatch.aborted:
                raise ClientAbortedError("job_cancelled" if dispatch.cancelled else "dispatch")
        except ClientAbortedError as exc:
            reconciled = monitor.reconcile(state.job_id)
            if reconciled is not None:
                state.note(reconciled)
            return AdmissionOutcome(
                job_id=state.job_id,
                aborted=True,
                aborted_stage=exc.stage,
                tier=state.tier,
                clip_policy=state.clip_policy,
                estimated_minutes=state.estimated_minutes,
                degraded_steps=state.degraded_steps,
            )

        logger.info(
            "admission.accepted job_id=%s identity=%s route=%s supplier=%s degraded=%s",
            safe_log_identifier(state.job_id, prefix="jid"),
            safe_log_identifier(requester.identity_key, prefix="idk"),
            dispatch.route.value,
            dispatch.supplier,
            ",".join(state.degraded_steps) or "-",
        )
        return AdmissionOutcome(
            job_id=state.job_id,
            tier=state.tier,
            clip_policy=state.clip_policy,
            estimated_minutes=state.estimated_minutes,
            dispatch=dispatch,
            degraded_steps=state.degraded_steps,
        )

    def _validate(self, payload: TranscribeRequest, requester: Requester) -> _Admission:
        content = payload.content.strip() if isinstance(payload.content, str) else ""
        if not payload.type or not content:
            raise ApiError(status_code=400, code="validation_error", message="Missing type or content")
        try:
            source_type = SourceType(payload.type)
        except ValueError as exc:
            raise ApiError(
                status_code=400,
                code="validation_error",
                message="Unsupported source type",
                details={"type": payload.type},
            ) from exc
        return _Admission(
            payload=payload,
            requester=requester,
            source_type=source_type,
            content=content,
            is_preview=payload.action == "preview",
        )

    def _authorize(self, state: _Admission) -> None:
        requester = state.requester
        if requester.is_authenticated:
            if requester.tier_claim is not None:
                state.tier = requester.tier_claim
            else:
                state.tier = run_critical("tier_lookup", lambda: self._tier_policy.get_tier(requester.user_id))
            return

        if not state.is_preview:
            raise ApiError(status_code=401, code="auth_required", message="Please sign in to continue")

        verification = run_critical(
            "verification",
            lambda: self._verifier.verify(
                session_token=state.payload.session_token,
                challenge_token=state.payload.turnstile_token,
                client_ip=requester.client_ip,
            ),
        )
        if verification.status is VerificationStatus.MISSING:
            raise ApiError(status_code=403, code="verification_required", message="Human verification required")
        if verification.status is VerificationStatus.INVALID:
            raise ApiError(status_code=403, code="turnstile_invalid", message="Human verification failed")

    def _resolve_media_policy(self, state: _Admission, deadline: AdmissionDeadline) -> None:
        options = state.payload.options
        canonical = state.note(
            run_best_effort("repair_url", lambda: repair_double_protocol(state.content), default=state.content)
        )
        state.source_url = canonical.value

        probe_url = state.source_url
        if state.source_type is SourceType.FILE_UPLOAD and options.r2_key:
            state.storage_url = self._storage_url(state, options.r2_key)
            probe_url = state.storage_url or probe_url

        state.original_seconds = resolve_duration(
            options,
            source_type=state.source_type,
            media_url=probe_url,
            probe=self._probe,
            timeout=deadline.bounded(self._policy.probe_timeout_seconds, floor=0.0),
        )
        state.clip_policy = resolve_clip_policy(
            is_preview=state.is_preview,
            tier=state.tier,
            is_authenticated=state.requester.is_authenticated,
            original_duration_seconds=state.original_seconds,
            preview_seconds=self._policy.preview_seconds,
            tolerance_seconds=self._policy.clip_tolerance_seconds,
        )

        duration_check = run_critical(
            "duration_limit",
            lambda: check_upload_duration_limit(
                original_duration_seconds=state.original_seconds,
                tier=state.tier,
                is_authenticated=state.requester.is_authenticated,
                clip_policy_active=state.clip_policy is not None,
                limits=self._policy.upload_limits,
            ),
        )
        if not duration_check.allowed:
            raise ApiError(
                status_code=413,
                code="duration_limit_exceeded",
                message="Media duration exceeds the limit for this plan",
                details={
                    "duration_seconds": duration_check.duration_seconds,
                    "allowed_seconds": duration_check.allowed_seconds,
                },
            )

    def _evaluate_quotas(self, state: _Admission) -> None:
        requester = state.requester
        if state.source_type is SourceType.YOUTUBE_URL:
            youtube = run_critical(
                "youtube_limit",
                lambda: self._quota.check_youtube_limit(
                    requester.identity_key,
                    tier=state.tier,
                    is_authenticated=requester.is_authenticated,
                ),
            )
            if youtube is not None:
                state.youtube_gate_applied = True
                if not youtube.allowed:
                    raise _quota_error(429, "youtube_limit_reached", youtube)

        if state.is_preview and not requester.is_authenticated:
            preview = run_critical("preview_limit", lambda: self._quota.check_preview_limit(requester.identity_key))
            if not preview.allowed:
                raise _quota_error(429, "preview_limit_reached", preview)

        if requester.is_authenticated and state.payload.options.wants_high_accuracy():
            has_access = run_critical(
                "high_accuracy_access",
                lambda: self._tier_policy.has_high_accuracy_access(requester.user_id, state.tier),
            )
            state.high_accuracy_active = bool(has_access) and not state.is_preview
            if not has_access:
                logger.info(
                    "admission.high_accuracy_denied identity=%s tier=%s",
                    safe_log_identifier(requester.identity_key, prefix="idk"),
                    state.tier.value,
                )

        state.estimated_minutes = estimate_minutes(
            duration_seconds=state.original_seconds,
            clip_policy=state.clip_policy,
            default_seconds=self._policy.default_estimate_seconds,
        )

        # Signed-in previews are bounded by the clip and do not draw down the monthly allowance.
        if requester.is_authenticated and state.is_preview:
            return

        model_category = ModelCategory.HIGH_ACCURACY if state.high_accuracy_active else ModelCategory.STANDARD
        decision = run_critical(
            "quota",
            lambda: self._quota.check_quota(
                requester.identity_key,
                state.tier,
                state.estimated_minutes,
                model_category,
                is_authenticated=requester.is_authenticated,
            ),
        )
        if not decision.allowed:
            raise _quota_error(429, "quota_exceeded", decision)

    def _record_usage(self, state: _Admission) -> None:
        requester = state.requester
        entries: list[tuple[UsageCategory, float]] = []
        if not requester.is_authenticated:
            if state.is_preview:
                entries.append((UsageCategory.ANON_PREVIEW, 0))
            entries.append((UsageCategory.ANON_USAGE, state.estimated_minutes))
            if state.youtube_gate_applied:
                entries.append((UsageCategory.ANON_YOUTUBE, 0))
        else:
            if state.youtube_gate_applied:
                entries.append((UsageCategory.YOUTUBE, 0))
            if not state.is_preview:
                category = UsageCategory.HIGH_ACCURACY if state.high_accuracy_active else UsageCategory.STANDARD
                entries.append((category, state.estimated_minutes))

        for category, minutes in entries:
            state.note(
                run_best_effort(
                    f"usage_{category.value}",
                    lambda category=category, minutes=minutes: self._ledger.record_usage(
                        requester.identity_key, category, minutes
                    ),
                )
            )

    def _create_placeholder(self, state: _Admission) -> None:
        original = int(round(state.original_seconds)) if state.original_seconds else 0
        processed = original
        if state.clip_policy is not None and state.clip_policy.should_clip:
            processed = min(original, state.clip_policy.limit_seconds) if original else state.clip_policy.limit_seconds
        # Unknown originals stay unknown; the clip limit is only the processed length.
        original_duration = max(original, processed) if original else None

        state.job_id = new_job_id()
        record = JobRecordManager.build_placeholder(
            job_id=state.job_id,
            source_type=state.source_type,
            content=state.content,
            source_url=state.source_url,
            owner_id=state.requester.user_id or "",
            tier=state.tier,
            title=state.payload.options.title or state.payload.options.original_file_name,
            language=state.payload.options.language,
            duration_sec=processed,
            original_duration_sec=original_duration,
            cost_minutes=state.estimated_minutes,
        )
        state.note(self._jobs.create_placeholder(record))

    def _prepare_media(self, state: _Admission, deadline: AdmissionDeadline) -> str:
        """Resolve the URL handed to the provider; every step falls back to the previous URL."""
        options = state.payload.options
        media_url = state.source_url

        if state.source_type is SourceType.YOUTUBE_URL:
            prepared = state.note(
                run_best_effort(
                    "prepare_media",
                    lambda: self._preparer.prepare(
                        job_id=state.job_id,
                        source_url=media_url,
                        language=options.language,
                        timeout=deadline.bounded(self._policy.clip_timeout_seconds),
                    ),
                )
            )
            if prepared.ok and prepared.value is not None:
                media_url = prepared.value.url
        elif state.storage_url:
            media_url = state.storage_url

        rewritten = state.note(
            run_best_effort("rewrite_url", lambda: self._url_rewriter.rewrite(media_url), default=media_url)
        )
        media_url = rewritten.value

        if state.clip_policy is not None and state.clip_policy.should_clip:
            media_url = self._clip(state, media_url, deadline)
        return media_url

    def _clip(self, state: _Admission, media_url: str, deadline: AdmissionDeadline) -> str:
        limit = state.clip_policy.limit_seconds
        clipped = state.note(
            run_best_effort(
                "clip",
                lambda: self._clipper.clip(
                    job_id=state.job_id,
                    source_url=media_url,
                    seconds=limit,
                    timeout=deadline.bounded(self._policy.clip_timeout_seconds),
                ),
            )
        )
        if clipped.ok and clipped.value:
            return clipped.value

        if clipped.ok:
            state.degraded_steps.append("clip")
        logger.warning(
            "admission.clip_unavailable job_id=%s limit_seconds=%s fallback=original_url",
            safe_log_identifier(state.job_id, prefix="jid"),
            limit,
        )
        return media_url

    def _storage_url(self, state: _Admission, key: str) -> str | None:
        resolved = state.note(run_best_effort("storage_url", lambda: self._url_rewriter.url_for_key(key)))
        return resolved.value

    def _diarization_enabled(self, state: _Admission) -> bool:
        return bool(state.payload.options.enable_diarization_after_whisper) and state.tier in _DIARIZATION_TIERS


__all__ = ["AdmissionOutcome", "AdmissionService", "Requester"]
