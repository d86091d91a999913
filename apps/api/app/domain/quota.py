"""Pure quota arithmetic shared by the quota gates."""

from __future__ import annotations

import math

from app.schemas.usage import ClipPolicy, QuotaDecision


def evaluate_count_limit(*, used: int, limit: int, reason: str) -> QuotaDecision:
    """Admitting one more request must not push ``used`` past ``limit``."""
    if used + 1 > limit:
        return QuotaDecision(allowed=False, reason=reason, remaining=0, usage=used)
    return QuotaDecision(allowed=True, reason="ok", remaining=limit - used - 1, usage=used)


def evaluate_minutes_ceiling(
    *,
    used: float,
    requested: float,
    limit: float | None,
    reason: str,
) -> QuotaDecision:
    if limit is None:
        return QuotaDecision(allowed=True, reason="unlimited", remaining=None, usage=used)
    if used + requested > limit:
        return QuotaDecision(allowed=False, reason=reason, remaining=max(0.0, limit - used), usage=used)
    return QuotaDecision(allowed=True, reason="ok", remaining=max(0.0, limit - used - requested), usage=used)


def estimate_minutes(
    *,
    duration_seconds: float | None,
    clip_policy: ClipPolicy | None,
    default_seconds: int,
) -> int:
    """Billable estimate: whole minutes, at least one, bounded by an active clip."""
    seconds = duration_seconds
    if clip_policy is not None:
        seconds = clip_policy.limit_seconds if seconds is None else min(seconds, clip_policy.limit_seconds)
    if seconds is None:
        seconds = default_seconds
    return max(1, math.ceil(seconds / 60))
