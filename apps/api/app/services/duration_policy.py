"""Duration resolution for admission."""

from __future__ import annotations

import logging
import math
from typing import Any

from app.adapters.media import DurationProbe
from app.core.logging_safety import redact_url
from app.schemas.job import SourceType
from app.schemas.transcribe import TranscribeOptions

logger = logging.getLogger(__name__)


def _positive_seconds(value: Any) -> float | None:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric) or numeric <= 0:
        return None
    return numeric


def duration_hint(options: TranscribeOptions) -> float | None:
    """Caller-supplied duration, checked original -> estimated/probed -> nested metadata."""
    metadata = options.metadata or {}
    tiers: tuple[tuple[Any, ...], ...] = (
        (options.original_duration_sec,),
        (
            options.estimated_duration_sec,
            options.probed_duration_sec,
            options.duration_sec,
            options.duration_seconds,
        ),
        (metadata.get("duration"), metadata.get("duration_seconds")),
    )
    for candidates in tiers:
        for candidate in candidates:
            seconds = _positive_seconds(candidate)
            if seconds is not None:
                return seconds
    return None


def resolve_duration(
    options: TranscribeOptions,
    *,
    source_type: SourceType,
    media_url: str | None,
    probe: DurationProbe,
    timeout: float,
) -> float | None:
    hinted = duration_hint(options)
    if hinted is not None:
        return hinted

    # YouTube durations are filled in by the media preparation step.
    if source_type is SourceType.YOUTUBE_URL or not media_url or timeout <= 0:
        return None

    try:
        probed = probe.probe_seconds(media_url, timeout=timeout)
    except Exception as exc:
        logger.warning("duration.probe_failed url=%s reason=%s", redact_url(media_url), type(exc).__name__)
        return None
    return _positive_seconds(probed)
