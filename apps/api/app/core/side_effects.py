"""Explicit fail-open / fail-closed policy for secondary admission steps.

Critical steps (quota evaluation, duration limits, the dispatch decision) must
never silently allow a request, so their failures surface as
``admission_check_failed``. Best-effort steps (ledger writes, placeholder
inserts, URL rewriting) are logged and recorded, and the request continues.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Generic, TypeVar

from app.errors import ApiError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SideEffectKind(str, Enum):
    CRITICAL = "critical"
    BEST_EFFORT = "best_effort"


@dataclass(slots=True, frozen=True)
class SideEffectResult(Generic[T]):
    step: str
    kind: SideEffectKind
    ok: bool
    value: T | None = None
    error: str | None = None


def run_critical(step: str, operation: Callable[[], T]) -> T:
    """Run a step whose failure must reject the request instead of allowing it."""
    try:
        return operation()
    except ApiError:
        raise
    except Exception as exc:
        logger.error("admission.critical_failed step=%s reason=%s", step, type(exc).__name__)
        raise ApiError(
            status_code=500,
            code="admission_check_failed",
            message="Unable to evaluate request admission",
            details={"step": step},
        ) from exc


def run_best_effort(step: str, operation: Callable[[], T], *, default: T | None = None) -> SideEffectResult[T]:
    """Run a bookkeeping step; failures are logged and reported, never raised."""
    try:
        value = operation()
    except Exception as exc:
        logger.warning("admission.best_effort_failed step=%s reason=%s", step, type(exc).__name__)
        return SideEffectResult(
            step=step,
            kind=SideEffectKind.BEST_EFFORT,
            ok=False,
            value=default,
            error=type(exc).__name__,
        )
    return SideEffectResult(step=step, kind=SideEffectKind.BEST_EFFORT, ok=True, value=value)


__all__ = ["SideEffectKind", "SideEffectResult", "run_best_effort", "run_critical"]
