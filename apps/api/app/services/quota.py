"""Quota evaluation over the usage ledger and the tier-policy collaborator."""

from __future__ import annotations

import logging

from app.adapters.tiers import TierPolicyService
from app.core.config import AdmissionPolicy
from app.core.logging_safety import safe_log_identifier
from app.domain.quota import evaluate_count_limit, evaluate_minutes_ceiling
from app.schemas.usage import ModelCategory, QuotaDecision, UsageCategory, UserTier
from app.services.usage_ledger import UsageLedger, day_window, month_window

logger = logging.getLogger(__name__)


class QuotaEvaluator:
    """Independent quota gates.

    Reads are not serialized with the later ledger write, so two concurrent
    requests from one identity can both pass a gate that would have denied
    the second when run sequentially.
    """

    def __init__(self, ledger: UsageLedger, tier_policy: TierPolicyService, policy: AdmissionPolicy) -> None:
        self._ledger = ledger
        self._tier_policy = tier_policy
        self._policy = policy

    def check_quota(
        self,
        identity_key: str,
        tier: UserTier,
        estimated_minutes: float,
        model_category: ModelCategory,
        *,
        is_authenticated: bool,
    ) -> QuotaDecision:
        if is_authenticated:
            allowance = self._tier_policy.get_allowance(identity_key, tier, model_category)
            if allowance.remaining is None:
                decision = QuotaDecision(allowed=True, reason="unlimited", remaining=None, usage=allowance.used)
            elif estimated_minutes > allowance.remaining:
                reason = (
                    "High-accuracy minutes quota exceeded"
                    if model_category is ModelCategory.HIGH_ACCURACY
                    else "Monthly minutes quota exceeded"
                )
                decision = QuotaDecision(
                    allowed=False,
                    reason=reason,
                    remaining=allowance.remaining,
                    usage=allowance.used,
                )
            else:
                decision = QuotaDecision(
                    allowed=True,
                    reason="ok",
                    remaining=allowance.remaining - estimated_minutes,
                    usage=allowance.used,
                )
        else:
            decision = self._check_anonymous(identity_key, estimated_minutes)

        self._log_decision("quota", identity_key, decision)
        return decision

    def check_youtube_limit(self, identity_key: str, *, tier: UserTier, is_authenticated: bool) -> QuotaDecision | None:
        """Monthly YouTube request count for anonymous and Free-tier users; ``None`` when not applicable."""
        if is_authenticated and tier is not UserTier.FREE:
            return None
        category = UsageCategory.YOUTUBE if is_authenticated else UsageCategory.ANON_YOUTUBE
        start, end = month_window(self._ledger.now())
        used = self._ledger.count_usage(identity_key, category, start, end)
        decision = evaluate_count_limit(
            used=used,
            limit=self._policy.youtube_monthly_count_limit,
            reason="Monthly YouTube request limit reached",
        )
        self._log_decision("youtube", identity_key, decision)
        return decision

    def check_preview_limit(self, identity_key: str) -> QuotaDecision:
        start, end = day_window(self._ledger.now())
        used = self._ledger.count_usage(identity_key, UsageCategory.ANON_PREVIEW, start, end)
        decision = evaluate_count_limit(
            used=used,
            limit=self._policy.anonymous_preview_daily_limit,
            reason="Daily preview limit reached",
        )
        self._log_decision("preview", identity_key, decision)
        return decision

    def _check_anonymous(self, identity_key: str, estimated_minutes: float) -> QuotaDecision:
        now = self._ledger.now()
        day_start, day_end = day_window(now)
        daily_count = self._ledger.count_usage(identity_key, UsageCategory.ANON_USAGE, day_start, day_end)
        daily = evaluate_count_limit(
            used=daily_count,
            limit=self._policy.anonymous_daily_count_limit,
            reason="Daily request limit reached",
        )
        if not daily.allowed:
            return daily

        month_start, month_end = month_window(now)
        monthly_minutes = float(
            self._ledger.sum_usage(identity_key, UsageCategory.ANON_USAGE, month_start, month_end)
        )
        return evaluate_minutes_ceiling(
            used=monthly_minutes,
            requested=estimated_minutes,
            limit=self._policy.anonymous_monthly_minutes_limit,
            reason="Monthly minutes quota exceeded",
        )

    @staticmethod
    def _log_decision(gate: str, identity_key: str, decision: QuotaDecision) -> None:
        logger.info(
            "quota.evaluated gate=%s identity=%s allowed=%s reason=%s remaining=%s usage=%s",
            gate,
            safe_log_identifier(identity_key, prefix="idk"),
            decision.allowed,
            decision.reason,
            decision.remaining,
            decision.usage,
        )
