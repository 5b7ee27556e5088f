"""Per-date quality trends for validation reports."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from typing import Any

from .constants import MEASUREMENT_LIMIT, TREND_RETENTION_DAYS
from .models import TrendPoint, ValidationReport

logger = logging.getLogger(__name__)

_TIME_RANGE_RE = re.compile(r"^\s*(\d+)\s*d?\s*$", re.IGNORECASE)


@dataclass
class TrendBucket:
    count: int = 0
    total_score: float = 0.0
    statuses: dict[str, int] = field(default_factory=dict)


def _report_date(timestamp: str) -> date:
    try:
        dt = datetime.fromisoformat(timestamp)
    except ValueError:
        logger.debug("Unparseable report timestamp %r; bucketing under today", timestamp)
        return datetime.now(UTC).date()
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC)
    return dt.date()


def parse_time_range(time_range: str | int) -> int:
    """``"7d"`` / ``"7"`` / ``7`` -> 7 days."""
    if isinstance(time_range, int):
        days = time_range
    else:
        m = _TIME_RANGE_RE.match(time_range)
        if m is None:
            raise ValueError(f"time_range must look like '7d', got {time_range!r}")
        days = int(m.group(1))
    if days < 0:
        raise ValueError(f"time_range must be >= 0 days, got {days}")
    return days


class MetricsTracker:
    """Date-bucketed score/status aggregates plus a capped list of raw measurements.

    Buckets older than ``retention_days`` before the newest recorded date are
    dropped on every ``record``.
    """

    def __init__(self, retention_days: int = TREND_RETENTION_DAYS, measurement_limit: int = MEASUREMENT_LIMIT):
        self.retention_days = retention_days
        self.measurement_limit = measurement_limit
        self.measurements: list[dict[str, Any]] = []
        self._buckets: dict[date, TrendBucket] = {}

    @property
    def buckets(self) -> dict[str, TrendBucket]:
        return {d.isoformat(): b for d, b in sorted(self._buckets.items())}

    def record(self, report: ValidationReport) -> None:
        self.measurements.append(
            {
                "timestamp": report.timestamp,
                "file_path": report.file_path,
                "quality_score": report.quality_score,
                "status": report.status,
                "summary": report.summary.model_dump(),
            }
        )
        if len(self.measurements) > self.measurement_limit:
            self.measurements = self.measurements[-self.measurement_limit :]

        day = _report_date(report.timestamp)
        bucket = self._buckets.setdefault(day, TrendBucket())
        bucket.count += 1
        bucket.total_score += report.quality_score
        bucket.statuses[report.status] = bucket.statuses.get(report.status, 0) + 1
        self._evict(max(self._buckets))

    def _evict(self, newest: date) -> None:
        cutoff = newest - timedelta(days=self.retention_days)
        stale = [d for d in self._buckets if d < cutoff]
        for d in stale:
            del self._buckets[d]
        if stale:
            logger.debug("Evicted %d trend bucket(s) older than %s", len(stale), cutoff)

    def get_trends(self, time_range: str | int = "7d", today: date | None = None) -> list[TrendPoint]:
        days = parse_time_range(time_range)
        cutoff = (today or datetime.now(UTC).date()) - timedelta(days=days)
        return [
            TrendPoint(
                date=d.isoformat(),
                average_score=round(b.total_score / b.count, 2),
                total_validations=b.count,
                status_distribution=dict(b.statuses),
            )
            for d, b in sorted(self._buckets.items())
            if d >= cutoff
        ]
