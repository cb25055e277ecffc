"""Reglas de aceptación para nuevos pesajes.

Orden de las reglas:
1. Límite temporal (sin fechas futuras, máximo ``backfill_limit_days`` atrás).
2. Un pesaje por día local y paciente.
3. Marca de carga retroactiva (backfill).
4. Detección de anomalías contra el pesaje inmediatamente anterior.
"""

from __future__ import annotations

from datetime import datetime, tzinfo

from peso_tool.clock import days_back, get_zone, local_day
from peso_tool.config import MeasurementPolicy
from peso_tool.errors import (
    BackfillLimitError,
    DuplicateEntryError,
    FutureDateError,
    InvalidNoteError,
    InvalidWeightError,
)
from peso_tool.model import AnomalyWarning, MeasurementSource, ValidationResult
from peso_tool.rounding import round_half_up
from peso_tool.storage import MeasurementStore


def check_weight(weight_kg: float, policy: MeasurementPolicy) -> float:
    """Validate range and precision, returning the weight rounded to 0.1 kg.

    Raises:
        InvalidWeightError: If the weight is out of range or has more than
            one decimal digit.
    """
    value = float(weight_kg)
    rounded = round_half_up(value)
    if abs(value - rounded) > 1e-9:
        raise InvalidWeightError(
            f"Weight may have at most one decimal digit, got {weight_kg}."
        )
    if not policy.min_weight_kg <= rounded <= policy.max_weight_kg:
        raise InvalidWeightError(
            f"Weight must be between {policy.min_weight_kg} and "
            f"{policy.max_weight_kg} kg, got {weight_kg}."
        )
    return rounded


def normalize_note(note: str | None, policy: MeasurementPolicy) -> str | None:
    """Trim a note; blank notes become None.

    Raises:
        InvalidNoteError: If the trimmed note is too long.
    """
    if note is None:
        return None
    text = note.strip()
    if not text:
        return None
    if len(text) > policy.note_max_length:
        raise InvalidNoteError(
            f"Note may have at most {policy.note_max_length} characters."
        )
    return text


def check_temporal_bound(
    measured_at: datetime, now: datetime, zone: tzinfo, policy: MeasurementPolicy
) -> int:
    """Return how many local days back the measurement is.

    Raises:
        FutureDateError: If the measurement's local day is after today.
        BackfillLimitError: If it is more than ``backfill_limit_days`` back.
    """
    back = days_back(now, measured_at, zone)
    if back < 0:
        raise FutureDateError("A measurement cannot be dated in the future.")
    if back > policy.backfill_limit_days:
        raise BackfillLimitError(
            f"Measurements may be added at most {policy.backfill_limit_days} "
            f"days back; this one is {back} days back."
        )
    return back


def detect_anomaly(
    store: MeasurementStore,
    owner_id: str,
    weight_kg: float,
    measured_at: datetime,
    policy: MeasurementPolicy,
) -> AnomalyWarning | None:
    """Compare against the latest measurement strictly before ``measured_at``.

    A change above ``anomaly_threshold_kg`` within ``anomaly_window_hours``
    whole hours is an anomaly. The previous measurement is chosen by
    measurement time, so backfilled entries compare against their true
    predecessor.
    """
    previous = store.find_most_recent_before(owner_id, measured_at)
    if previous is None:
        return None

    change = round_half_up(weight_kg - previous.weight_kg)
    hours = int(abs((measured_at - previous.measured_at).total_seconds()) // 3600)
    if abs(change) > policy.anomaly_threshold_kg and (
        hours <= policy.anomaly_window_hours
    ):
        return AnomalyWarning(
            change=change,
            previous_weight=previous.weight_kg,
            previous_measured_at=previous.measured_at,
            hours_apart=hours,
            message=(
                f"Unusual weight change: {abs(change):.1f} kg in {hours} hours. "
                "Confirm the measurement if it is correct."
            ),
        )
    return None


def validate_and_prepare(
    store: MeasurementStore,
    owner_id: str,
    weight_kg: float,
    measured_at: datetime,
    source: MeasurementSource,
    now: datetime,
    policy: MeasurementPolicy,
) -> ValidationResult:
    """Apply every creation rule and compute the measurement's flags.

    Patients and professionals share the same window and anomaly
    thresholds; ``source`` is accepted for symmetry with creation.

    Raises:
        FutureDateError: Measurement day after today.
        BackfillLimitError: Measurement day too far back.
        DuplicateEntryError: Owner already has a measurement that day.
    """
    zone = get_zone(policy.timezone)
    back = check_temporal_bound(measured_at, now, zone, policy)

    day = local_day(measured_at, zone)
    if store.find_by_owner_and_local_day(owner_id, day) is not None:
        raise DuplicateEntryError(
            f"A measurement already exists for {owner_id} on "
            f"{day.isoformat()}; edit the existing one instead."
        )

    warning = detect_anomaly(store, owner_id, weight_kg, measured_at, policy)
    return ValidationResult(
        is_backfill=back > 0,
        is_outlier=warning is not None,
        warnings=[warning] if warning is not None else [],
    )
