"""Tier-policy collaborator: tier lookup, remaining allowance, high-accuracy access."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from app.schemas.usage import ModelCategory, UsageCategory, UserTier
from app.services.usage_ledger import UsageLedger, month_window


@dataclass(slots=True, frozen=True)
class Allowance:
    """Remaining budget for a period; ``remaining`` is ``None`` when unlimited."""

    remaining: float | None
    used: float


class TierPolicyService(ABC):
    @abstractmethod
    def get_tier(self, user_id: str) -> UserTier:
        """Return the user's current pricing tier."""

    @abstractmethod
    def get_allowance(self, user_id: str, tier: UserTier, model_category: ModelCategory) -> Allowance:
        """Return the remaining period allowance for the model category."""

    @abstractmethod
    def has_high_accuracy_access(self, user_id: str, tier: UserTier) -> bool:
        """Whether the user may use the high-accuracy path."""


class LedgerTierPolicyService(TierPolicyService):
    """Monthly allowances per tier, consumed minutes read back from the usage ledger."""

    def __init__(
        self,
        ledger: UsageLedger,
        *,
        tiers_by_user: dict[str, UserTier] | None = None,
        monthly_minutes: dict[UserTier, float | None] | None = None,
        monthly_high_accuracy_minutes: dict[UserTier, float | None] | None = None,
    ) -> None:
        self._ledger = ledger
        self._tiers_by_user = dict(tiers_by_user or {})
        self._monthly_minutes = monthly_minutes or {
            UserTier.FREE: 30,
            UserTier.BASIC: 500,
            UserTier.PRO: 2000,
            UserTier.PREMIUM: None,
        }
        self._monthly_high_accuracy_minutes = monthly_high_accuracy_minutes or {
            UserTier.PRO: 200,
            UserTier.PREMIUM: None,
        }

    def get_tier(self, user_id: str) -> UserTier:
        return self._tiers_by_user.get(user_id, UserTier.FREE)

    def get_allowance(self, user_id: str, tier: UserTier, model_category: ModelCategory) -> Allowance:
        if model_category is ModelCategory.HIGH_ACCURACY:
            limit = self._monthly_high_accuracy_minutes.get(tier, 0)
            category = UsageCategory.HIGH_ACCURACY
        else:
            limit = self._monthly_minutes.get(tier, self._monthly_minutes.get(UserTier.FREE, 0))
            category = UsageCategory.STANDARD

        start, end = month_window(self._ledger.now())
        used = float(self._ledger.sum_usage(user_id, category, start, end))
        if limit is None:
            return Allowance(remaining=None, used=used)
        return Allowance(remaining=max(0.0, limit - used), used=used)

    def has_high_accuracy_access(self, user_id: str, tier: UserTier) -> bool:
        return tier in (UserTier.PRO, UserTier.PREMIUM)


__all__ = ["Allowance", "LedgerTierPolicyService", "TierPolicyService"]
