"""
history.py — numbers behind the history view.

impact_metrics()  totals, average score, sustainable choices, improvement rate
daily_activity()  one bucket per day for the contribution-style heat map

Both take records newest-first, exactly as LocalScanStore.list() returns them.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from models import ScanRecord

SUSTAINABLE_THRESHOLD = 70
IMPROVEMENT_WINDOW = 5


@dataclass
class ImpactMetrics:
    total_scans: int
    average_score: float
    sustainable_choices: int
    improvement_rate: int       # percent, newest window vs the one before it


@dataclass
class DayActivity:
    date: str                   # YYYY-MM-DD (UTC)
    count: int
    average_score: float


def _mean(values: list[int]) -> float:
    return sum(values) / len(values) if values else 0.0


def impact_metrics(records: list[ScanRecord]) -> ImpactMetrics:
    if not records:
        return ImpactMetrics(0, 0.0, 0, 0)

    scores = [r.score.score for r in records]
    recent = scores[:IMPROVEMENT_WINDOW]
    previous = scores[IMPROVEMENT_WINDOW:IMPROVEMENT_WINDOW * 2]

    recent_avg = _mean(recent)
    previous_avg = _mean(previous) if previous else recent_avg
    improvement = 0 if previous_avg == 0 else round((recent_avg - previous_avg) / previous_avg * 100)

    return ImpactMetrics(
        total_scans=len(records),
        average_score=_mean(scores),
        sustainable_choices=sum(1 for s in scores if s >= SUSTAINABLE_THRESHOLD),
        improvement_rate=improvement,
    )


def _day_of(record: ScanRecord) -> date:
    return datetime.fromtimestamp(record.timestamp / 1000, tz=timezone.utc).date()


def daily_activity(
    records: Iterable[ScanRecord],
    weeks: int = 12,
    today: Optional[date] = None,
) -> list[DayActivity]:
    """Every day in the last `weeks` weeks (oldest first), empty days included."""
    today = today or datetime.now(timezone.utc).date()
    start = today - timedelta(days=weeks * 7 - 1)

    by_day: dict[date, list[int]] = {}
    for r in records:
        day = _day_of(r)
        if start <= day <= today:
            by_day.setdefault(day, []).append(r.score.score)

    days = []
    for offset in range(weeks * 7):
        day = start + timedelta(days=offset)
        scores = by_day.get(day, [])
        days.append(DayActivity(date=day.isoformat(), count=len(scores), average_score=_mean(scores)))
    return days
