"""Client-abort observation and deadline bookkeeping for one admission request."""

from __future__ import annotations

from collections.abc import Callable
import logging
import threading
import time

from app.core.logging_safety import safe_log_identifier
from app.core.side_effects import SideEffectResult, run_best_effort
from app.services.jobs import JobRecordManager

logger = logging.getLogger(__name__)


class AbortSignal:
    """Thread-safe flag tripped when the inbound request's client goes away."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def abort(self, reason: str = "client_disconnected") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()


class AdmissionDeadline:
    def __init__(self, total_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = clock() + total_seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def bounded(self, timeout: float, *, floor: float = 0.5) -> float:
        """Clamp a step timeout to what is left of the request budget, keeping a small floor."""
        return max(floor, min(timeout, self.remaining()))


class ClientAbortedError(Exception):
    def __init__(self, stage: str) -> None:
        self.stage = stage
        super().__init__(f"client aborted before {stage}")


class CancellationMonitor:
    def __init__(self, *, signal: AbortSignal, jobs: JobRecordManager) -> None:
        self._signal = signal
        self._jobs = jobs

    @property
    def aborted(self) -> bool:
        return self._signal.aborted

    def checkpoint(self, stage: str) -> None:
        if self._signal.aborted:
            logger.info("admission.aborted stage=%s reason=%s", stage, self._signal.reason)
            raise ClientAbortedError(stage)

    def reconcile(self, job_id: str | None) -> SideEffectResult[bool] | None:
        """Move the job to ``cancelled``+``deleted``; persistence failures are tolerated."""
        if job_id is None:
            return None
        result = run_best_effort("cancel_reconcile", lambda: self._jobs.mark_cancelled(job_id), default=False)
        logger.info(
            "admission.cancel_reconciled job_id=%s ok=%s applied=%s",
            safe_log_identifier(job_id, prefix="jid"),
            result.ok,
            result.value,
        )
        return result
