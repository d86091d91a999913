"""Shared fakes for admission tests."""

from __future__ import annotations

import os
import unittest

from app.adapters.media import (
    AudioClipper,
    DisabledAudioClipper,
    DurationProbe,
    NullDurationProbe,
    PassthroughMediaPreparer,
    PublicDomainUrlRewriter,
)
from app.adapters.providers import LocalQueueProvider, ProviderRequest, ProviderSubmission, TranscriptionProvider
from app.adapters.tiers import LedgerTierPolicyService
from app.adapters.verification import BotVerifier, VerificationResult, VerificationStatus
from app.core.config import AdmissionPolicy, get_settings
from app.repositories.memory import InMemoryStore
from app.schemas.usage import UserTier
from app.services.admission import AdmissionService
from app.services.jobs import JobRecordManager
from app.services.quota import QuotaEvaluator
from app.services.suppliers import ProviderRegistry, SupplierDispatcher
from app.services.usage_ledger import UsageLedger


class FakeProvider(TranscriptionProvider):
    def __init__(self, name: str, tier: str, *, available: bool = True, accept: bool = True) -> None:
        self.name = name
        self.tier = tier
        self._available = available
        self._accept = accept
        self.requests: list[ProviderRequest] = []

    @property
    def available(self) -> bool:
        return self._available

    def submit(self, request: ProviderRequest, *, timeout: float) -> ProviderSubmission:
        self.requests.append(request)
        if not self._accept:
            return ProviderSubmission(accepted=False, status_code=502, error="http_502")
        return ProviderSubmission(accepted=True, callback_url=f"https://cb.test/{request.job_id}", status_code=201)


class FixedDurationProbe(DurationProbe):
    def __init__(self, seconds: float | None) -> None:
        self.seconds = seconds
        self.calls: list[str] = []

    def probe_seconds(self, url: str, *, timeout: float) -> float | None:
        self.calls.append(url)
        return self.seconds


class StaticVerifier(BotVerifier):
    def __init__(self, status: VerificationStatus = VerificationStatus.VERIFIED) -> None:
        self.status = status

    def verify(self, *, session_token, challenge_token, client_ip) -> VerificationResult:
        if not session_token and not challenge_token:
            return VerificationResult(status=VerificationStatus.MISSING)
        return VerificationResult(status=self.status)


def build_admission_service(
    store: InMemoryStore,
    *,
    policy: AdmissionPolicy | None = None,
    standard: TranscriptionProvider | None = None,
    premium: TranscriptionProvider | None = None,
    tiers_by_user: dict[str, UserTier] | None = None,
    probe: DurationProbe | None = None,
    clipper: AudioClipper | None = None,
    verifier: BotVerifier | None = None,
    local_fallback_enabled: bool = False,
) -> AdmissionService:
    policy = policy or AdmissionPolicy(local_fallback_enabled=local_fallback_enabled)
    ledger = UsageLedger(store)
    tier_policy = LedgerTierPolicyService(ledger, tiers_by_user=tiers_by_user)
    jobs = JobRecordManager(store)
    dispatcher = SupplierDispatcher(
        providers=ProviderRegistry(
            standard=standard,
            premium=premium,
            local=LocalQueueProvider(store, enabled=policy.local_fallback_enabled),
        ),
        jobs=jobs,
        callback_base_url="https://api.test",
        local_fallback_enabled=policy.local_fallback_enabled,
        dispatch_timeout_seconds=policy.dispatch_timeout_seconds,
    )
    return AdmissionService(
        policy=policy,
        ledger=ledger,
        quota=QuotaEvaluator(ledger, tier_policy, policy),
        tier_policy=tier_policy,
        jobs=jobs,
        dispatcher=dispatcher,
        verifier=verifier or StaticVerifier(),
        probe=probe or NullDurationProbe(),
        clipper=clipper or DisabledAudioClipper(),
        preparer=PassthroughMediaPreparer(),
        url_rewriter=PublicDomainUrlRewriter("cdn.test"),
    )


class SettingsEnvCase(unittest.TestCase):
    env: dict[str, str] = {}
    _base_env = {
        "SCRIBEGATE_AUTH_PROVIDER": "mock",
        "SCRIBEGATE_SESSION_TOKEN_SECRET": "test-session-secret",
        "SCRIBEGATE_STANDARD_WEBHOOK_SECRET": "test-standard-secret",
        "SCRIBEGATE_PREMIUM_WEBHOOK_SECRET": "test-premium-secret",
        "SCRIBEGATE_CALLBACK_BASE_URL": "https://api.test",
    }

    def setUp(self) -> None:
        merged = {**self._base_env, **self.env}
        self._old_env = {key: os.environ.get(key) for key in merged}
        os.environ.update(merged)
        get_settings.cache_clear()

    def tearDown(self) -> None:
        for key, value in self._old_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        get_settings.cache_clear()
