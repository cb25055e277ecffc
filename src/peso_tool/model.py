"""Modelos tipados para pesajes y estadísticas derivadas."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class MeasurementSource(str, Enum):
    """Who recorded a measurement."""

    PATIENT = "patient"
    PROFESSIONAL = "professional"


class OutlierConfirmation(str, Enum):
    """Human judgment on a flagged measurement."""

    UNSET = "unset"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"

    @classmethod
    def from_bool(cls, confirmed: bool) -> OutlierConfirmation:
        return cls.CONFIRMED if confirmed else cls.REJECTED


class Trend(str, Enum):
    """Coarse direction of a weight series."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass(frozen=True)
class Measurement:
    """One body-weight reading (one per owner and local day)."""

    id: str
    owner_id: str
    weight_kg: float
    measured_at: datetime
    source: MeasurementSource
    is_backfill: bool
    is_outlier: bool
    created_by: str
    created_at: datetime
    outlier_confirmed: OutlierConfirmation = OutlierConfirmation.UNSET
    note: str | None = None
    updated_by: str | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class AnomalyWarning:
    """Warning attached to a measurement flagged as outlier."""

    change: float
    previous_weight: float
    previous_measured_at: datetime
    hours_apart: int
    message: str
    type: str = "anomaly_detected"


@dataclass(frozen=True)
class ValidationResult:
    """Flags computed by the validator for a new measurement."""

    is_backfill: bool
    is_outlier: bool
    warnings: list[AnomalyWarning] = field(default_factory=list)


@dataclass(frozen=True)
class CreateResult:
    """Stored measurement plus the warnings produced on creation."""

    measurement: Measurement
    warnings: list[AnomalyWarning] = field(default_factory=list)


@dataclass(frozen=True)
class MeasurementPatch:
    """Fields a patient may change on an existing measurement."""

    weight_kg: float | None = None
    note: str | None = None

    def is_empty(self) -> bool:
        return self.weight_kg is None and self.note is None


@dataclass(frozen=True)
class ComplianceStatistics:
    """Adherence figures for one owner."""

    total_entries: int
    weekly_compliance_rate: float
    current_streak: int
    longest_streak: int
    last_measured_at: datetime | None
    weekly_obligation_met: bool = False


@dataclass(frozen=True)
class ChartPoint:
    """One measurement as plotted, with its trailing average."""

    day: date
    weight_kg: float
    source: MeasurementSource
    is_outlier: bool
    moving_average: float


@dataclass(frozen=True)
class SeriesStatistics:
    """Summary of a chart range."""

    start_weight: float | None
    end_weight: float | None
    change: float
    trend: Trend
    change_percent: float = 0.0
    avg_weekly_change: float = 0.0


@dataclass(frozen=True)
class ChartSeries:
    """Chart points and their summary."""

    points: list[ChartPoint]
    statistics: SeriesStatistics


@dataclass(frozen=True)
class MeasurementPage:
    """One page of history, newest first."""

    entries: list[Measurement]
    has_more: bool
    next_cursor: datetime | None
