from __future__ import annotations

import pytest

from peso_tool.config import (
    MeasurementPolicy,
    policy_from_mapping,
    policy_to_mapping,
    validate_policy,
)


def test_policy_mapping_roundtrip() -> None:
    policy = MeasurementPolicy(timezone="UTC", anomaly_threshold_kg=2.5)
    mapping = policy_to_mapping(policy)
    assert mapping["timezone"] == "UTC"
    assert mapping["anomaly_threshold_kg"] == "2.5"
    assert mapping["backfill_limit_days"] == "7"
    assert policy_from_mapping(mapping) == policy


def test_policy_from_empty_mapping_is_default() -> None:
    assert policy_from_mapping({}) == MeasurementPolicy()


def test_policy_from_mapping_ignores_unknown_and_bad_values() -> None:
    policy = policy_from_mapping(
        {
            "acc_root": "/data/acc",
            "backfill_limit_days": "muchos",
            "anomaly_window_hours": "24",
            "timezone": "  ",
        }
    )
    assert policy.backfill_limit_days == 7
    assert policy.anomaly_window_hours == 24
    assert policy.timezone == "Europe/Warsaw"


def test_validate_policy_accepts_defaults() -> None:
    policy = MeasurementPolicy()
    assert validate_policy(policy) is policy


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"moving_average_window": 0}, "moving_average_window must be at least 1"),
        ({"backfill_limit_days": -1}, "backfill_limit_days must be at least 0"),
        ({"page_size_max": 0}, "page_size_max must be at least 1"),
        ({"min_weight_kg": 250.0}, "min_weight_kg must be below max_weight_kg"),
        ({"page_size_default": 101}, "page_size_default must not exceed"),
    ],
)
def test_validate_policy_rejects_out_of_bounds(
    overrides: dict[str, object], message: str
) -> None:
    with pytest.raises(ValueError, match=message):
        validate_policy(MeasurementPolicy(**overrides))  # type: ignore[arg-type]


def test_policy_from_mapping_keeps_default_below_minimum() -> None:
    policy = policy_from_mapping(
        {"moving_average_window": "0", "note_max_length": "50"}
    )
    assert policy.moving_average_window == 7
    assert policy.note_max_length == 50


def test_policy_from_mapping_resets_inconsistent_pairs() -> None:
    policy = policy_from_mapping(
        {"min_weight_kg": "300", "max_weight_kg": "280", "streak_lookback_weeks": "8"}
    )
    assert policy.min_weight_kg == 30.0
    assert policy.max_weight_kg == 250.0
    assert policy.streak_lookback_weeks == 8
