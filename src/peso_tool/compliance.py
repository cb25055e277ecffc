"""Adherencia semanal: tasa de cumplimiento y rachas."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta

from peso_tool.clock import get_zone, week_start, weeks_between
from peso_tool.config import MeasurementPolicy
from peso_tool.model import ComplianceStatistics

_ONE_WEEK = timedelta(days=7)


def weekly_compliance_rate(
    weeks: Iterable[date], current_week: date, window_weeks: int
) -> float:
    """Share of the last ``window_weeks`` weeks (current included) with data."""
    if window_weeks <= 0:
        return 0.0
    present = [
        week
        for week in set(weeks)
        if 0 <= weeks_between(current_week, week) < window_weeks
    ]
    return len(present) / window_weeks


def current_streak(weeks: Iterable[date], current_week: date) -> int:
    """Consecutive weeks with data, counting back from the current week."""
    present = set(weeks)
    streak = 0
    check = current_week
    while check in present:
        streak += 1
        check -= _ONE_WEEK
    return streak


def longest_streak(weeks: Iterable[date]) -> int:
    """Longest run of consecutive weeks with data."""
    ordered = sorted(set(weeks))
    if not ordered:
        return 0
    best = run = 1
    for prev, curr in zip(ordered, ordered[1:]):
        if curr - prev == _ONE_WEEK:
            run += 1
            best = max(best, run)
        else:
            run = 1
    return best


def compliance_statistics(
    weeks: Iterable[date],
    now: datetime,
    total_entries: int,
    last_measured_at: datetime | None,
    policy: MeasurementPolicy,
) -> ComplianceStatistics:
    """Build adherence figures from the weeks that have measurements.

    Args:
        weeks: Local Monday dates with at least one measurement.
        now: Request time; fixes the current local week.
        total_entries: Count from storage, passed through.
        last_measured_at: Latest instant from storage, passed through.
        policy: Window sizes.
    """
    present = set(weeks)
    current = week_start(now, get_zone(policy.timezone))
    return ComplianceStatistics(
        total_entries=total_entries,
        weekly_compliance_rate=weekly_compliance_rate(
            present, current, policy.compliance_window_weeks
        ),
        current_streak=current_streak(present, current),
        longest_streak=longest_streak(present),
        last_measured_at=last_measured_at,
        weekly_obligation_met=current in present,
    )
