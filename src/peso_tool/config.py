"""Umbrales y parámetros configurables del motor de pesajes."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any

DEFAULT_TIMEZONE = "Europe/Warsaw"

# Smallest accepted value per numeric field.
_MINIMUMS: dict[str, float] = {
    "backfill_limit_days": 0,
    "anomaly_threshold_kg": 0.0,
    "anomaly_window_hours": 0,
    "compliance_window_weeks": 1,
    "streak_lookback_weeks": 1,
    "moving_average_window": 1,
    "trend_dead_band_kg": 0.0,
    "min_weight_kg": 0.1,
    "max_weight_kg": 0.1,
    "note_max_length": 1,
    "page_size_default": 1,
    "page_size_max": 1,
}

_PAIRED_FIELDS = (
    "min_weight_kg",
    "max_weight_kg",
    "page_size_default",
    "page_size_max",
)


@dataclass(frozen=True)
class MeasurementPolicy:
    """All thresholds used by validation and analytics."""

    timezone: str = DEFAULT_TIMEZONE
    backfill_limit_days: int = 7
    anomaly_threshold_kg: float = 3.0
    anomaly_window_hours: int = 48
    compliance_window_weeks: int = 12
    streak_lookback_weeks: int = 52
    moving_average_window: int = 7
    trend_dead_band_kg: float = 0.1
    min_weight_kg: float = 30.0
    max_weight_kg: float = 250.0
    note_max_length: int = 200
    page_size_default: int = 30
    page_size_max: int = 100


def validate_policy(policy: MeasurementPolicy) -> MeasurementPolicy:
    """Check field bounds and return the policy unchanged.

    Raises:
        ValueError: If a field is below its minimum, the weight range is
            empty or the default page size exceeds the maximum.
    """
    for name, minimum in _MINIMUMS.items():
        value = getattr(policy, name)
        if value < minimum:
            raise ValueError(f"{name} must be at least {minimum}, got {value}")
    if policy.min_weight_kg >= policy.max_weight_kg:
        raise ValueError("min_weight_kg must be below max_weight_kg")
    if policy.page_size_default > policy.page_size_max:
        raise ValueError("page_size_default must not exceed page_size_max")
    return policy


def policy_to_mapping(policy: MeasurementPolicy) -> dict[str, str]:
    """Serialize a policy into string key/value pairs."""
    return {key: str(value) for key, value in asdict(policy).items()}


def policy_from_mapping(values: dict[str, str]) -> MeasurementPolicy:
    """Build a policy from stored key/value pairs.

    Unknown keys are ignored, and values that cannot be parsed or fall out
    of bounds keep the default, so a damaged row never blocks startup.
    """
    default = MeasurementPolicy()
    overrides: dict[str, Any] = {}
    for field in fields(MeasurementPolicy):
        raw = values.get(field.name)
        if raw is None:
            continue
        parsed = _coerce(raw, type(getattr(default, field.name)))
        if parsed is None:
            continue
        minimum = _MINIMUMS.get(field.name)
        if minimum is not None and parsed < minimum:
            continue
        overrides[field.name] = parsed
    try:
        return validate_policy(replace(default, **overrides))
    except ValueError:
        # Inconsistent pairs fall back to their defaults together.
        for name in _PAIRED_FIELDS:
            overrides.pop(name, None)
        return replace(default, **overrides)


def _coerce(raw: str, kind: type) -> Any:
    try:
        if kind is int:
            return int(raw)
        if kind is float:
            return float(raw)
    except ValueError:
        return None
    text = raw.strip()
    return text or None
