"""Serie para el gráfico de peso: media móvil y resumen de tendencia."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timedelta, tzinfo

import pandas as pd

from peso_tool.clock import get_zone, local_day, to_local
from peso_tool.config import MeasurementPolicy
from peso_tool.model import (
    ChartPoint,
    ChartSeries,
    Measurement,
    MeasurementSource,
    SeriesStatistics,
    Trend,
)
from peso_tool.rounding import round_half_up

FRAME_COLUMNS = [
    "date",
    "datetime",
    "weight_kg",
    "source",
    "is_outlier",
    "note",
]

VIEWS = ("today", "week", "range")


def measurements_to_frame(
    measurements: Sequence[Measurement], zone: tzinfo
) -> pd.DataFrame:
    """Convert measurements to a DataFrame in local time, oldest first."""
    rows = [
        {
            "date": local_day(m.measured_at, zone),
            "datetime": to_local(m.measured_at, zone),
            "weight_kg": m.weight_kg,
            "source": m.source.value,
            "is_outlier": m.is_outlier,
            "note": m.note,
        }
        for m in measurements
    ]
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    if df.empty:
        return df
    return df.sort_values("datetime").reset_index(drop=True)


def moving_averages(weights: Sequence[float], window: int = 7) -> list[float]:
    """Trailing mean per entry over up to ``window`` entries, rounded to 0.1.

    The window counts entries, not days; the first ``window - 1`` points use
    whatever entries exist so far. Halves round up.
    """
    if not weights:
        return []
    series = pd.Series(list(weights), dtype="float64")
    rolled = series.rolling(window=window, min_periods=1).mean()
    return [round_half_up(float(value)) for value in rolled]


def classify_trend(change: float, dead_band_kg: float) -> Trend:
    """Map a weight change to a coarse trend; ``|change| <= dead_band`` is stable."""
    if change > dead_band_kg:
        return Trend.INCREASING
    if change < -dead_band_kg:
        return Trend.DECREASING
    return Trend.STABLE


def series_statistics(
    measurements: Sequence[Measurement], policy: MeasurementPolicy
) -> SeriesStatistics:
    """Summarize a series ordered by measurement time.

    Empty input yields no weights, zero change and a stable trend.
    """
    if not measurements:
        return SeriesStatistics(
            start_weight=None,
            end_weight=None,
            change=0.0,
            trend=Trend.STABLE,
        )

    first, last = measurements[0], measurements[-1]
    change = round_half_up(last.weight_kg - first.weight_kg)
    change_percent = (
        round_half_up(change / first.weight_kg * 100) if first.weight_kg > 0 else 0.0
    )
    days_between = (last.measured_at - first.measured_at).days
    avg_weekly_change = (
        round_half_up(change / days_between * 7) if days_between > 0 else 0.0
    )
    return SeriesStatistics(
        start_weight=first.weight_kg,
        end_weight=last.weight_kg,
        change=change,
        trend=classify_trend(change, policy.trend_dead_band_kg),
        change_percent=change_percent,
        avg_weekly_change=avg_weekly_change,
    )


def build_chart_series(
    measurements: Sequence[Measurement], policy: MeasurementPolicy
) -> ChartSeries:
    """Chart points with trailing averages plus series statistics."""
    df = measurements_to_frame(measurements, get_zone(policy.timezone))
    df["moving_average"] = moving_averages(
        df["weight_kg"].tolist(), policy.moving_average_window
    )
    points = [
        ChartPoint(
            day=row.date,
            weight_kg=float(row.weight_kg),
            source=MeasurementSource(row.source),
            is_outlier=bool(row.is_outlier),
            moving_average=row.moving_average,
        )
        for row in df.itertuples(index=False)
    ]
    ordered = sorted(measurements, key=lambda m: m.measured_at)
    return ChartSeries(points=points, statistics=series_statistics(ordered, policy))


def period_range(period_days: int, now: datetime, zone: tzinfo) -> tuple[date, date]:
    """Inclusive local-day range covering the last ``period_days`` days.

    Raises:
        ValueError: If ``period_days`` is not positive.
    """
    if period_days <= 0:
        raise ValueError(f"period_days must be positive, got {period_days}")
    today = local_day(now, zone)
    return today - timedelta(days=period_days - 1), today


def view_range(
    view: str,
    now: datetime,
    zone: tzinfo,
    start_date: date | None = None,
    end_date: date | None = None,
) -> tuple[date, date]:
    """Resolve a ``today`` / ``week`` / ``range`` view to local days.

    ``week`` is the rolling last seven days, not the calendar week.

    Raises:
        ValueError: Unknown view, or ``range`` without both dates.
    """
    if view == "today":
        return period_range(1, now, zone)
    if view == "week":
        return period_range(7, now, zone)
    if view == "range":
        if start_date is None or end_date is None:
            raise ValueError("start_date and end_date are required for view=range")
        if start_date > end_date:
            raise ValueError("start_date must not be after end_date")
        return start_date, end_date
    raise ValueError(f"Invalid view: {view}")
