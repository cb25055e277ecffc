from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timezone
from pathlib import Path

import pytest
from dateutil import tz

from peso_tool.config import MeasurementPolicy
from peso_tool.errors import UniqueConstraintError
from peso_tool.model import Measurement, MeasurementSource, OutlierConfirmation
from peso_tool.storage import SQLiteStore

WARSAW = tz.gettz("Europe/Warsaw")


def _measurement(
    measured_at: datetime, weight: float = 70.0, owner: str = "U1", **kw: object
) -> Measurement:
    base = Measurement(
        id=f"{owner}-{measured_at.isoformat()}",
        owner_id=owner,
        weight_kg=weight,
        measured_at=measured_at,
        source=MeasurementSource.PATIENT,
        is_backfill=False,
        is_outlier=False,
        created_by=owner,
        created_at=measured_at,
    )
    return replace(base, **kw)


def test_store_policy_roundtrip(tmp_path: Path) -> None:
    db = tmp_path / "app.sqlite3"
    store = SQLiteStore(db)
    assert store.load_policy() == MeasurementPolicy()

    policy = MeasurementPolicy(
        timezone="UTC", backfill_limit_days=3, anomaly_threshold_kg=2.5
    )
    store.save_policy(policy)
    assert store.load_policy() == policy
    assert SQLiteStore(db).load_policy() == policy


def test_store_rejects_unknown_timezone(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    with pytest.raises(ValueError):
        store.save_policy(MeasurementPolicy(timezone="Nowhere/City"))
    assert store.load_policy().timezone == "Europe/Warsaw"


def test_insert_and_fetch_roundtrip(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    at = datetime(2025, 11, 12, 7, 45, 30, 123456, tzinfo=WARSAW)
    original = _measurement(
        at,
        71.3,
        source=MeasurementSource.PROFESSIONAL,
        is_backfill=True,
        is_outlier=True,
        outlier_confirmed=OutlierConfirmation.REJECTED,
        note="en consulta",
        created_by="D1",
    )
    store.insert_measurement(original)

    fetched = store.get_measurement(original.id)
    assert fetched == original
    assert fetched is not None
    assert fetched.measured_at.utcoffset() == timezone.utc.utcoffset(None)
    assert store.get_measurement("missing") is None


def test_local_day_lookup_uses_configured_zone(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    late = datetime(2025, 11, 12, 23, 30, tzinfo=timezone.utc)
    store.insert_measurement(_measurement(late))
    assert store.find_by_owner_and_local_day("U1", date(2025, 11, 13)) is not None
    assert store.find_by_owner_and_local_day("U1", date(2025, 11, 12)) is None
    assert store.find_by_owner_and_local_day("U2", date(2025, 11, 13)) is None


def test_local_day_follows_saved_timezone(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    store.save_policy(MeasurementPolicy(timezone="UTC"))
    late = datetime(2025, 11, 12, 23, 30, tzinfo=timezone.utc)
    store.insert_measurement(_measurement(late))
    assert store.find_by_owner_and_local_day("U1", date(2025, 11, 12)) is not None


def test_unique_owner_day(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    store.insert_measurement(_measurement(datetime(2025, 11, 12, 7, 0, tzinfo=WARSAW)))
    with pytest.raises(UniqueConstraintError):
        store.insert_measurement(
            _measurement(datetime(2025, 11, 12, 21, 0, tzinfo=WARSAW), 70.5)
        )
    store.insert_measurement(
        _measurement(datetime(2025, 11, 12, 21, 0, tzinfo=WARSAW), owner="U2")
    )
    assert store.count_by_owner("U1") == 1
    assert store.count_by_owner("U2") == 1


def test_most_recent_before_is_by_measurement_time(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    older = _measurement(datetime(2025, 11, 8, 8, 0, tzinfo=WARSAW), 70.0)
    newer = _measurement(datetime(2025, 11, 11, 8, 0, tzinfo=WARSAW), 72.0)
    store.insert_measurement(newer)
    store.insert_measurement(older)

    cutoff = datetime(2025, 11, 10, 8, 0, tzinfo=WARSAW)
    found = store.find_most_recent_before("U1", cutoff)
    assert found is not None
    assert found.id == older.id
    assert store.find_most_recent_before("U1", older.measured_at) is None
    assert store.find_most_recent_before("U2", cutoff) is None


def test_weeks_with_presence(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    for day in (3, 4, 10, 17):
        store.insert_measurement(
            _measurement(datetime(2025, 11, day, 9, 0, tzinfo=WARSAW))
        )
    weeks = store.list_weeks_with_presence("U1", 52, date(2025, 11, 17))
    assert weeks == {date(2025, 11, 3), date(2025, 11, 10), date(2025, 11, 17)}
    recent = store.list_weeks_with_presence("U1", 2, date(2025, 11, 17))
    assert recent == {date(2025, 11, 10), date(2025, 11, 17)}


def test_list_in_range_inclusive_oldest_first(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    for day in (12, 10, 11, 13):
        store.insert_measurement(
            _measurement(datetime(2025, 11, day, 9, 0, tzinfo=WARSAW), 70.0 + day)
        )
    rows = store.list_in_range("U1", date(2025, 11, 11), date(2025, 11, 12))
    assert [r.weight_kg for r in rows] == [81.0, 82.0]
    assert len(store.list_in_range("U1", None, None)) == 4
    assert len(store.list_in_range("U1", date(2025, 11, 13), None)) == 1


def test_update_and_delete(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    original = _measurement(datetime(2025, 11, 12, 8, 0, tzinfo=WARSAW))
    store.insert_measurement(original)
    edited_at = datetime(2025, 11, 12, 9, 0, tzinfo=WARSAW)
    store.update_measurement(
        replace(
            original,
            weight_kg=70.8,
            note="ajuste",
            outlier_confirmed=OutlierConfirmation.CONFIRMED,
            updated_by="U1",
            updated_at=edited_at,
        )
    )
    fetched = store.get_measurement(original.id)
    assert fetched is not None
    assert fetched.weight_kg == 70.8
    assert fetched.note == "ajuste"
    assert fetched.outlier_confirmed is OutlierConfirmation.CONFIRMED
    assert fetched.updated_at == edited_at

    assert store.delete_measurement(original.id, "U2") is False
    assert store.delete_measurement(original.id, "U1") is True
    assert store.delete_measurement(original.id, "U1") is False


def test_last_measured_at(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    assert store.last_measured_at("U1") is None
    latest = datetime(2025, 11, 12, 8, 0, tzinfo=WARSAW)
    store.insert_measurement(_measurement(datetime(2025, 11, 10, 8, 0, tzinfo=WARSAW)))
    store.insert_measurement(_measurement(latest))
    assert store.last_measured_at("U1") == latest


def test_store_rejects_out_of_bounds_policy(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    with pytest.raises(ValueError, match="moving_average_window"):
        store.save_policy(MeasurementPolicy(moving_average_window=0))
    with pytest.raises(ValueError, match="min_weight_kg"):
        store.save_policy(MeasurementPolicy(min_weight_kg=300.0))
    assert store.load_policy() == MeasurementPolicy()


def test_timezone_change_rekeys_local_days(tmp_path: Path) -> None:
    db = tmp_path / "app.sqlite3"
    store = SQLiteStore(db)
    # Sunday 23:30 UTC is already Monday in Warsaw.
    stored = store.insert_measurement(
        _measurement(datetime(2025, 11, 16, 23, 30, tzinfo=timezone.utc))
    )
    monday = date(2025, 11, 17)
    assert store.find_by_owner_and_local_day("U1", monday) == stored
    assert store.list_weeks_with_presence("U1", 2, monday) == {monday}

    store.save_policy(replace(store.load_policy(), timezone="UTC"))

    assert store.timezone == "UTC"
    assert store.find_by_owner_and_local_day("U1", monday) is None
    assert store.find_by_owner_and_local_day("U1", date(2025, 11, 16)) == stored
    assert store.list_weeks_with_presence("U1", 2, monday) == {date(2025, 11, 10)}
    assert SQLiteStore(db).timezone == "UTC"


def test_timezone_change_refused_when_days_collide(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "app.sqlite3")
    late = store.insert_measurement(
        _measurement(datetime(2025, 11, 12, 22, 30, tzinfo=timezone.utc))
    )
    later = store.insert_measurement(
        _measurement(datetime(2025, 11, 12, 23, 30, tzinfo=timezone.utc), 70.4)
    )

    with pytest.raises(ValueError, match="Cannot switch to UTC"):
        store.save_policy(replace(store.load_policy(), timezone="UTC"))

    assert store.timezone == "Europe/Warsaw"
    assert store.load_policy().timezone == "Europe/Warsaw"
    assert store.find_by_owner_and_local_day("U1", date(2025, 11, 12)) == late
    assert store.find_by_owner_and_local_day("U1", date(2025, 11, 13)) == later
