"""Supplier dispatch: route selection, provider submission, dispatch bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from app.adapters.providers import ProviderRequest, TranscriptionProvider
from app.core.logging_safety import redact_url, safe_log_identifier
from app.core.side_effects import run_best_effort
from app.domain.supplier_selection import SupplierRoute, select_supplier_route
from app.errors import ApiError
from app.services.cancellation import AdmissionDeadline, CancellationMonitor
from app.services.jobs import JobRecordManager

logger = logging.getLogger(__name__)


def parse_supplier_allowlist(raw: str) -> frozenset[str] | None:
    """``""`` and ``"both"`` allow every configured provider; otherwise a comma list of names."""
    value = (raw or "").strip().lower()
    if value in ("", "both", "all"):
        return None
    return frozenset(part.strip() for part in value.split(",") if part.strip())


@dataclass(slots=True)
class ProviderRegistry:
    standard: TranscriptionProvider | None = None
    premium: TranscriptionProvider | None = None
    local: TranscriptionProvider | None = None
    allowlist: frozenset[str] | None = None

    def _usable(self, provider: TranscriptionProvider | None) -> bool:
        if provider is None or not provider.available:
            return False
        if self.allowlist is None:
            return True
        return provider.name in self.allowlist or provider.tier in self.allowlist

    @property
    def standard_available(self) -> bool:
        return self._usable(self.standard)

    @property
    def premium_available(self) -> bool:
        return self._usable(self.premium)

    @property
    def local_available(self) -> bool:
        return self.local is not None and self.local.available


@dataclass(slots=True, frozen=True)
class DispatchFlags:
    high_accuracy_active: bool = False
    enable_diarization: bool = False
    language: str | None = None


@dataclass(slots=True, frozen=True)
class DispatchOutcome:
    route: SupplierRoute
    supplier: str | None = None
    accepted: bool = False
    standard_tier_output: bool = False
    aborted: bool = False
    cancelled: bool = False
    callback_url: str | None = None


class SupplierDispatcher:
    def __init__(
        self,
        *,
        providers: ProviderRegistry,
        jobs: JobRecordManager,
        callback_base_url: str,
        local_fallback_enabled: bool,
        dispatch_timeout_seconds: float,
    ) -> None:
        self._providers = providers
        self._jobs = jobs
        self._callback_base_url = callback_base_url
        self._local_fallback_enabled = local_fallback_enabled
        self._dispatch_timeout_seconds = dispatch_timeout_seconds

    def choose_route(self, *, high_accuracy_active: bool) -> SupplierRoute:
        return select_supplier_route(
            high_accuracy_active=high_accuracy_active,
            premium_available=self._providers.premium_available,
            standard_available=self._providers.standard_available,
            local_fallback_enabled=self._local_fallback_enabled and self._providers.local_available,
        )

    def _provider_for(self, route: SupplierRoute) -> TranscriptionProvider | None:
        if route in (SupplierRoute.PREMIUM, SupplierRoute.FALLBACK_PREMIUM):
            return self._providers.premium
        if route is SupplierRoute.STANDARD:
            return self._providers.standard
        if route is SupplierRoute.LOCAL_FALLBACK:
            return self._providers.local
        return None

    def dispatch(
        self,
        *,
        job_id: str,
        media_url: str,
        flags: DispatchFlags,
        monitor: CancellationMonitor,
        deadline: AdmissionDeadline,
    ) -> DispatchOutcome:
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        route = self.choose_route(high_accuracy_active=flags.high_accuracy_active)
        logger.info(
            "supplier.route_selected job_id=%s route=%s high_accuracy=%s media=%s",
            safe_job_id,
            route.value,
            flags.high_accuracy_active,
            redact_url(media_url),
        )

        if monitor.aborted:
            logger.info("supplier.dispatch_skipped job_id=%s reason=client_aborted", safe_job_id)
            return DispatchOutcome(route=route, aborted=True)

        if self._jobs.is_cancelled(job_id):
            logger.info("supplier.dispatch_skipped job_id=%s reason=job_cancelled", safe_job_id)
            return DispatchOutcome(route=route, aborted=True, cancelled=True)

        if route is SupplierRoute.UNAVAILABLE:
            run_best_effort("mark_failed", lambda: self._jobs.mark_failed(job_id, reason="supplier_unavailable"))
            raise ApiError(
                status_code=503,
                code="supplier_unavailable",
                message="No transcription supplier is configured",
                details={"job_id": job_id},
            )

        provider = self._provider_for(route)
        fallback = route is SupplierRoute.FALLBACK_PREMIUM
        request = ProviderRequest(
            job_id=job_id,
            media_url=media_url,
            callback_base_url=self._callback_base_url,
            language=flags.language,
            enable_diarization=flags.enable_diarization,
            high_accuracy=route is SupplierRoute.PREMIUM,
            fallback=fallback,
        )
        submission = provider.submit(request, timeout=deadline.bounded(self._dispatch_timeout_seconds))

        # A dispatch attempt was made; provider-side failure arrives via callback or timeout.
        run_best_effort("mark_transcribing", lambda: self._jobs.mark_transcribing(job_id), default=False)
        run_best_effort(
            "record_supplier",
            lambda: self._jobs.record_supplier(job_id, supplier=provider.name, processed_url=media_url),
        )
        if not submission.accepted:
            logger.warning(
                "supplier.dispatch_unaccepted job_id=%s supplier=%s error=%s",
                safe_job_id,
                provider.name,
                submission.error,
            )

        return DispatchOutcome(
            route=route,
            supplier=provider.name,
            accepted=submission.accepted,
            standard_tier_output=fallback,
            callback_url=submission.callback_url,
        )


__all__ = [
    "DispatchFlags",
    "DispatchOutcome",
    "ProviderRegistry",
    "SupplierDispatcher",
    "parse_supplier_allowlist",
]
