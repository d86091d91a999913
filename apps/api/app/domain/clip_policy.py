"""Preview clipping and upload-duration ceilings."""

from __future__ import annotations

from dataclasses import dataclass

from app.schemas.usage import ClipPolicy, UserTier


@dataclass(slots=True, frozen=True)
class DurationCheck:
    allowed: bool
    duration_seconds: float | None
    allowed_seconds: int | None


def resolve_clip_policy(
    *,
    is_preview: bool,
    tier: UserTier,
    is_authenticated: bool,
    original_duration_seconds: float | None,
    preview_seconds: int = 300,
    tolerance_seconds: float = 1.0,
) -> ClipPolicy | None:
    """Return the preview clip policy, or ``None`` when full media may be processed.

    Unknown durations always clip.
    """
    if is_authenticated and not is_preview and tier is not UserTier.FREE:
        return None

    if original_duration_seconds is None or original_duration_seconds <= 0:
        return ClipPolicy(limit_seconds=preview_seconds, should_clip=True)

    should_clip = original_duration_seconds > preview_seconds + tolerance_seconds
    return ClipPolicy(limit_seconds=preview_seconds, should_clip=should_clip)


def upload_limit_for(tier: UserTier, *, is_authenticated: bool, limits: dict[UserTier, int | None]) -> int | None:
    if not is_authenticated:
        return limits.get(UserTier.ANONYMOUS)
    if tier in limits:
        return limits[tier]
    return limits.get(UserTier.FREE)


def check_upload_duration_limit(
    *,
    original_duration_seconds: float | None,
    tier: UserTier,
    is_authenticated: bool,
    clip_policy_active: bool,
    limits: dict[UserTier, int | None],
) -> DurationCheck:
    """Hard per-tier ceiling, applied only to the unclipped path."""
    allowed_seconds = upload_limit_for(tier, is_authenticated=is_authenticated, limits=limits)
    if clip_policy_active or original_duration_seconds is None or allowed_seconds is None:
        return DurationCheck(allowed=True, duration_seconds=original_duration_seconds, allowed_seconds=allowed_seconds)
    return DurationCheck(
        allowed=original_duration_seconds <= allowed_seconds,
        duration_seconds=original_duration_seconds,
        allowed_seconds=allowed_seconds,
    )
