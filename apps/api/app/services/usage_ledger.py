"""Append-only usage ledger."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
import logging

from app.core.logging_safety import safe_log_identifier
from app.repositories.memory import InMemoryStore, UsageRecord
from app.schemas.usage import UsageCategory

logger = logging.getLogger(__name__)

_MINUTES_QUANTUM = Decimal("0.01")


def utc_now() -> datetime:
    return datetime.now(UTC)


def day_window(moment: datetime) -> tuple[date, date]:
    """UTC calendar day containing ``moment``."""
    day = moment.astimezone(UTC).date()
    return day, day


def month_window(moment: datetime) -> tuple[date, date]:
    """UTC calendar month containing ``moment``."""
    day = moment.astimezone(UTC).date()
    start = day.replace(day=1)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month - timedelta(days=1)


class UsageLedger:
    """Totals are always re-aggregated from rows; there is no cached counter."""

    def __init__(self, store: InMemoryStore, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def record_usage(
        self,
        identity_key: str,
        category: UsageCategory,
        minutes: float | Decimal = 0,
        when: datetime | None = None,
    ) -> UsageRecord:
        moment = (when or self._clock()).astimezone(UTC)
        record = UsageRecord(
            identity_key=identity_key,
            category=category,
            minutes=Decimal(str(minutes)).quantize(_MINUTES_QUANTUM, rounding=ROUND_HALF_UP),
            window_date=moment.date(),
            created_at=moment,
        )
        self._store.append_usage(record)
        logger.info(
            "ledger.recorded identity=%s category=%s minutes=%s window_date=%s",
            safe_log_identifier(identity_key, prefix="idk"),
            category.value,
            record.minutes,
            record.window_date.isoformat(),
        )
        return record

    def sum_usage(
        self,
        identity_key: str,
        category: UsageCategory,
        window_start: date,
        window_end: date,
    ) -> Decimal:
        records = self._store.query_usage(
            identity_key=identity_key,
            category=category,
            window_start=window_start,
            window_end=window_end,
        )
        return sum((record.minutes for record in records), Decimal("0"))

    def count_usage(
        self,
        identity_key: str,
        category: UsageCategory,
        window_start: date,
        window_end: date,
    ) -> int:
        return len(
            self._store.query_usage(
                identity_key=identity_key,
                category=category,
                window_start=window_start,
                window_end=window_end,
            )
        )
