"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import requests

from app.adapters.auth import (
    AuthVerificationError,
    FirebaseTokenVerifier,
    MockTokenVerifier,
    TokenVerifier,
)
from app.adapters.media import (
    AudioClipper,
    DisabledAudioClipper,
    DurationProbe,
    MediaPreparer,
    NullDurationProbe,
    PassthroughMediaPreparer,
    PublicDomainUrlRewriter,
    StorageUrlRewriter,
)
from app.adapters.providers import DeepgramProvider, LocalQueueProvider, ReplicateProvider
from app.adapters.tiers import LedgerTierPolicyService, TierPolicyService
from app.adapters.verification import BotVerifier, SessionOrChallengeVerifier
from app.core.config import AdmissionPolicy, Settings, get_settings
from app.core.identity import anonymous_identity_key, client_ip
from app.core.logging_safety import safe_log_identifier
from app.errors import ApiError
from app.repositories.memory import InMemoryStore
from app.schemas.auth import AuthPrincipal
from app.schemas.usage import UserTier
from app.services.admission import AdmissionService, Requester
from app.services.internal_callbacks import ProviderCallbackService
from app.services.jobs import JobRecordManager
from app.services.quota import QuotaEvaluator
from app.services.suppliers import ProviderRegistry, SupplierDispatcher, parse_supplier_allowlist
from app.services.usage_ledger import UsageLedger
from app.services.verification_sessions import VerificationSessionService

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
logger = logging.getLogger(__name__)


def _auth_error(message: str) -> ApiError:
    return ApiError(status_code=401, code="auth_required", message=message)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id") or f"req-{uuid4()}"
    request.state.correlation_id = correlation_id
    return correlation_id


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_http_session(request: Request) -> requests.Session:
    return request.app.state.http_session


def get_admission_policy(settings: Annotated[Settings, Depends(get_settings)]) -> AdmissionPolicy:
    return AdmissionPolicy.from_settings(settings)


def get_token_verifier(settings: Annotated[Settings, Depends(get_settings)]) -> TokenVerifier:
    if settings.auth_provider == "firebase":
        return FirebaseTokenVerifier(
            project_id=settings.firebase_project_id,
            audience=settings.firebase_audience,
        )
    return MockTokenVerifier()


async def get_optional_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AuthPrincipal | None:
    """No bearer token means anonymous; a bad one is rejected rather than downgraded."""
    if credentials is None or not credentials.credentials:
        return None

    safe_correlation_id = safe_log_identifier(_request_correlation_id(request), prefix="cid")
    if credentials.scheme.lower() != "bearer":
        raise _auth_error("Invalid bearer token")
    try:
        principal = verifier.verify_token(credentials.credentials)
    except AuthVerificationError as exc:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=token_verification_failed",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise _auth_error(str(exc) or "Invalid bearer token") from exc

    logger.info(
        "auth.accepted correlation_id=%s method=%s path=%s principal_id=%s",
        safe_correlation_id,
        request.method,
        request.url.path,
        safe_log_identifier(principal.user_id, prefix="pid"),
    )
    request.state.auth_principal = principal
    return principal


async def get_authenticated_principal(
    principal: Annotated[AuthPrincipal | None, Depends(get_optional_principal)],
) -> AuthPrincipal:
    if principal is None:
        raise _auth_error("Invalid or missing bearer token")
    return principal


def get_requester(
    request: Request,
    principal: Annotated[AuthPrincipal | None, Depends(get_optional_principal)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Requester:
    ip = client_ip(request)
    if principal is not None:
        return Requester(
            identity_key=principal.user_id,
            user_id=principal.user_id,
            client_ip=ip,
            tier_claim=principal.tier,
        )
    return Requester(
        identity_key=anonymous_identity_key(
            salt=settings.anonymous_identity_salt,
            ip=ip,
        ),
        client_ip=ip,
    )


def get_usage_ledger(store: Annotated[InMemoryStore, Depends(get_store)]) -> UsageLedger:
    return UsageLedger(store)


def get_tier_policy(
    ledger: Annotated[UsageLedger, Depends(get_usage_ledger)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TierPolicyService:
    return LedgerTierPolicyService(
        ledger,
        tiers_by_user=settings.user_tiers,
        monthly_minutes={
            UserTier.FREE: settings.monthly_minutes_free,
            UserTier.BASIC: settings.monthly_minutes_basic,
            UserTier.PRO: settings.monthly_minutes_pro,
            UserTier.PREMIUM: settings.monthly_minutes_premium,
        },
        monthly_high_accuracy_minutes={
            UserTier.PRO: settings.monthly_high_accuracy_minutes_pro,
            UserTier.PREMIUM: settings.monthly_high_accuracy_minutes_premium,
        },
    )


def get_quota_evaluator(
    ledger: Annotated[UsageLedger, Depends(get_usage_ledger)],
    tier_policy: Annotated[TierPolicyService, Depends(get_tier_policy)],
    policy: Annotated[AdmissionPolicy, Depends(get_admission_policy)],
) -> QuotaEvaluator:
    return QuotaEvaluator(ledger, tier_policy, policy)


def get_job_manager(store: Annotated[InMemoryStore, Depends(get_store)]) -> JobRecordManager:
    return JobRecordManager(store)


def get_provider_registry(
    store: Annotated[InMemoryStore, Depends(get_store)],
    session: Annotated[requests.Session, Depends(get_http_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ProviderRegistry:
    return ProviderRegistry(
        standard=DeepgramProvider(
            api_key=settings.standard_api_key,
            webhook_secret=settings.standard_webhook_secret,
            api_base=settings.standard_api_base,
            model=settings.standard_model,
            session=session,
        ),
        premium=ReplicateProvider(
            api_token=settings.premium_api_token,
            model_version=settings.premium_model_version,
            api_base=settings.premium_api_base,
            session=session,
        ),
        local=LocalQueueProvider(store, enabled=settings.local_fallback_enabled),
        allowlist=parse_supplier_allowlist(settings.supplier_async),
    )


def get_supplier_dispatcher(
    providers: Annotated[ProviderRegistry, Depends(get_provider_registry)],
    jobs: Annotated[JobRecordManager, Depends(get_job_manager)],
    policy: Annotated[AdmissionPolicy, Depends(get_admission_policy)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SupplierDispatcher:
    return SupplierDispatcher(
        providers=providers,
        jobs=jobs,
        callback_base_url=settings.callback_base_url,
        local_fallback_enabled=policy.local_fallback_enabled,
        dispatch_timeout_seconds=policy.dispatch_timeout_seconds,
    )


def get_bot_verifier(
    session: Annotated[requests.Session, Depends(get_http_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> BotVerifier:
    return SessionOrChallengeVerifier(
        session_secret=settings.session_token_secret,
        challenge_secret=settings.challenge_secret_key,
        challenge_verify_url=settings.challenge_verify_url,
        timeout_seconds=settings.probe_timeout_seconds,
        session=session,
    )


def get_verification_session_service(
    store: Annotated[InMemoryStore, Depends(get_store)],
    verifier: Annotated[BotVerifier, Depends(get_bot_verifier)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> VerificationSessionService:
    return VerificationSessionService(
        store=store,
        verifier=verifier,
        session_secret=settings.session_token_secret,
        challenge_configured=bool(settings.challenge_secret_key),
        attempts_per_minute=settings.challenge_attempts_per_minute,
    )


def get_duration_probe() -> DurationProbe:
    return NullDurationProbe()


def get_audio_clipper() -> AudioClipper:
    return DisabledAudioClipper()


def get_media_preparer() -> MediaPreparer:
    return PassthroughMediaPreparer()


def get_url_rewriter(settings: Annotated[Settings, Depends(get_settings)]) -> StorageUrlRewriter:
    return PublicDomainUrlRewriter(settings.storage_public_domain)


def get_admission_service(
    policy: Annotated[AdmissionPolicy, Depends(get_admission_policy)],
    ledger: Annotated[UsageLedger, Depends(get_usage_ledger)],
    quota: Annotated[QuotaEvaluator, Depends(get_quota_evaluator)],
    tier_policy: Annotated[TierPolicyService, Depends(get_tier_policy)],
    jobs: Annotated[JobRecordManager, Depends(get_job_manager)],
    dispatcher: Annotated[SupplierDispatcher, Depends(get_supplier_dispatcher)],
    verifier: Annotated[BotVerifier, Depends(get_bot_verifier)],
    probe: Annotated[DurationProbe, Depends(get_duration_probe)],
    clipper: Annotated[AudioClipper, Depends(get_audio_clipper)],
    preparer: Annotated[MediaPreparer, Depends(get_media_preparer)],
    url_rewriter: Annotated[StorageUrlRewriter, Depends(get_url_rewriter)],
) -> AdmissionService:
    return AdmissionService(
        policy=policy,
        ledger=ledger,
        quota=quota,
        tier_policy=tier_policy,
        jobs=jobs,
        dispatcher=dispatcher,
        verifier=verifier,
        probe=probe,
        clipper=clipper,
        preparer=preparer,
        url_rewriter=url_rewriter,
    )


def get_callback_service(
    store: Annotated[InMemoryStore, Depends(get_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ProviderCallbackService:
    return ProviderCallbackService(
        store,
        standard_secret=settings.standard_webhook_secret,
        premium_secret=settings.premium_webhook_secret,
    )
