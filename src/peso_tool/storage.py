"""Persistencia SQLite para configuración y pesajes."""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, timedelta, tzinfo
from pathlib import Path
from typing import Protocol

from peso_tool.clock import get_zone, local_day, to_utc, week_start
from peso_tool.config import (
    MeasurementPolicy,
    policy_from_mapping,
    policy_to_mapping,
    validate_policy,
)
from peso_tool.errors import UniqueConstraintError
from peso_tool.model import Measurement, MeasurementSource, OutlierConfirmation

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS app_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS measurements (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    weight_kg REAL NOT NULL,
    measured_at TEXT NOT NULL,
    local_day TEXT NOT NULL,
    week_start TEXT NOT NULL,
    source TEXT NOT NULL,
    is_backfill INTEGER NOT NULL,
    is_outlier INTEGER NOT NULL,
    outlier_confirmed TEXT NOT NULL DEFAULT 'unset',
    note TEXT,
    created_by TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_by TEXT,
    updated_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_measurements_owner_day_unique
ON measurements(owner_id, local_day);

CREATE INDEX IF NOT EXISTS idx_measurements_owner_measured_at
ON measurements(owner_id, measured_at);
"""

_COLUMNS = (
    "id, owner_id, weight_kg, measured_at, source, is_backfill, is_outlier, "
    "outlier_confirmed, note, created_by, created_at, updated_by, updated_at"
)


class MeasurementStore(Protocol):
    """Storage operations the measurement engine depends on.

    The store owns the timezone that defines local days; callers read it
    through ``timezone`` instead of keeping their own.
    """

    @property
    def timezone(self) -> str: ...

    def load_policy(self) -> MeasurementPolicy: ...

    def find_by_owner_and_local_day(
        self, owner_id: str, day: date
    ) -> Measurement | None: ...

    def find_most_recent_before(
        self, owner_id: str, instant: datetime
    ) -> Measurement | None: ...

    def list_weeks_with_presence(
        self, owner_id: str, lookback_weeks: int, current_week: date
    ) -> set[date]: ...

    def list_in_range(
        self, owner_id: str, start_date: date | None, end_date: date | None
    ) -> list[Measurement]: ...

    def list_page(
        self,
        owner_id: str,
        *,
        start_date: date | None,
        end_date: date | None,
        limit: int,
        cursor: datetime | None,
    ) -> list[Measurement]: ...

    def get_measurement(self, measurement_id: str) -> Measurement | None: ...

    def insert_measurement(self, measurement: Measurement) -> Measurement: ...

    def update_measurement(self, measurement: Measurement) -> Measurement: ...

    def delete_measurement(self, measurement_id: str, owner_id: str) -> bool: ...

    def count_by_owner(self, owner_id: str) -> int: ...

    def last_measured_at(self, owner_id: str) -> datetime | None: ...


class SQLiteStore:
    """Repositorio SQLite para pesajes."""

    def __init__(self, db_path: Path) -> None:
        """Create store and ensure schema exists."""
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()
        self._timezone = self.load_policy().timezone
        self._zone = get_zone(self._timezone)

    @property
    def timezone(self) -> str:
        """IANA zone used for the stored ``local_day`` and ``week_start``."""
        return self._timezone

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        logger.debug("Schema ready at %s", self._db_path)

    def load_policy(self) -> MeasurementPolicy:
        """Return the stored policy merged over defaults."""
        with self._connect() as conn:
            rows = conn.execute("SELECT key, value FROM app_config").fetchall()
        return policy_from_mapping({row["key"]: row["value"] for row in rows})

    def save_policy(self, policy: MeasurementPolicy) -> None:
        """Persist every policy field in the key/value table.

        A new timezone re-keys ``local_day`` and ``week_start`` of every
        stored measurement in the same transaction.

        Raises:
            ValueError: If a field is out of bounds, the timezone is unknown,
                or the new timezone would put two measurements of one owner
                on the same local day. Nothing is saved in that case.
        """
        validate_policy(policy)
        zone = get_zone(policy.timezone)
        try:
            with self._connect() as conn:
                conn.executemany(
                    """
                    INSERT INTO app_config(key, value) VALUES(?, ?)
                    ON CONFLICT(key) DO UPDATE SET value=excluded.value
                    """,
                    policy_to_mapping(policy).items(),
                )
                if policy.timezone != self._timezone:
                    _rekey_local_days(conn, zone)
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise ValueError(
                f"Cannot switch to {policy.timezone}: two measurements of the "
                "same owner would fall on one local day."
            ) from exc
        if policy.timezone != self._timezone:
            logger.info(
                "Local days re-keyed from %s to %s", self._timezone, policy.timezone
            )
        self._timezone = policy.timezone
        self._zone = zone

    def find_by_owner_and_local_day(
        self, owner_id: str, day: date
    ) -> Measurement | None:
        """Measurement of ``owner_id`` on a local calendar day, if any."""
        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM measurements
                WHERE owner_id = ? AND local_day = ?
                LIMIT 1
                """,
                (owner_id, day.isoformat()),
            ).fetchone()
        return _row_to_measurement(row) if row is not None else None

    def find_most_recent_before(
        self, owner_id: str, instant: datetime
    ) -> Measurement | None:
        """Latest measurement strictly before ``instant`` by measurement time."""
        with self._connect() as conn:
            row = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM measurements
                WHERE owner_id = ? AND measured_at < ?
                ORDER BY measured_at DESC
                LIMIT 1
                """,
                (owner_id, _instant_text(instant)),
            ).fetchone()
        return _row_to_measurement(row) if row is not None else None

    def list_weeks_with_presence(
        self, owner_id: str, lookback_weeks: int, current_week: date
    ) -> set[date]:
        """Local Mondays with at least one measurement in the lookback."""
        since = current_week - timedelta(weeks=max(lookback_weeks - 1, 0))
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT DISTINCT week_start FROM measurements
                WHERE owner_id = ? AND week_start BETWEEN ? AND ?
                """,
                (owner_id, since.isoformat(), current_week.isoformat()),
            ).fetchall()
        return {date.fromisoformat(row["week_start"]) for row in rows}

    def list_in_range(
        self, owner_id: str, start_date: date | None, end_date: date | None
    ) -> list[Measurement]:
        """Measurements in an inclusive local-day range, oldest first."""
        where, params = _range_filter(owner_id, start_date, end_date)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM measurements WHERE {where} "
                "ORDER BY measured_at ASC",
                params,
            ).fetchall()
        return [_row_to_measurement(row) for row in rows]

    def list_page(
        self,
        owner_id: str,
        *,
        start_date: date | None,
        end_date: date | None,
        limit: int,
        cursor: datetime | None,
    ) -> list[Measurement]:
        """Up to ``limit`` measurements older than ``cursor``, newest first."""
        where, params = _range_filter(owner_id, start_date, end_date)
        if cursor is not None:
            where += " AND measured_at < ?"
            params.append(_instant_text(cursor))
        params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM measurements WHERE {where} "
                "ORDER BY measured_at DESC LIMIT ?",
                params,
            ).fetchall()
        return [_row_to_measurement(row) for row in rows]

    def get_measurement(self, measurement_id: str) -> Measurement | None:
        """Fetch one measurement by id."""
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM measurements WHERE id = ?",
                (measurement_id,),
            ).fetchone()
        return _row_to_measurement(row) if row is not None else None

    def insert_measurement(self, measurement: Measurement) -> Measurement:
        """Insert a new measurement.

        Raises:
            UniqueConstraintError: If the owner already has a measurement on
                that local day (or the id is taken).
        """
        day = local_day(measurement.measured_at, self._zone)
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO measurements(
                        id, owner_id, weight_kg, measured_at, local_day,
                        week_start, source, is_backfill, is_outlier,
                        outlier_confirmed, note, created_by, created_at,
                        updated_by, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        measurement.id,
                        measurement.owner_id,
                        measurement.weight_kg,
                        _instant_text(measurement.measured_at),
                        day.isoformat(),
                        week_start(day, self._zone).isoformat(),
                        measurement.source.value,
                        int(measurement.is_backfill),
                        int(measurement.is_outlier),
                        measurement.outlier_confirmed.value,
                        measurement.note,
                        measurement.created_by,
                        _instant_text(measurement.created_at),
                        measurement.updated_by,
                        _optional_instant_text(measurement.updated_at),
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            logger.info(
                "Insert rejected for owner %s on %s: %s",
                measurement.owner_id,
                day.isoformat(),
                exc,
            )
            raise UniqueConstraintError(str(exc)) from exc
        return measurement

    def update_measurement(self, measurement: Measurement) -> Measurement:
        """Write the mutable fields of an existing measurement."""
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE measurements
                SET weight_kg = ?, note = ?, outlier_confirmed = ?,
                    updated_by = ?, updated_at = ?
                WHERE id = ? AND owner_id = ?
                """,
                (
                    measurement.weight_kg,
                    measurement.note,
                    measurement.outlier_confirmed.value,
                    measurement.updated_by,
                    _optional_instant_text(measurement.updated_at),
                    measurement.id,
                    measurement.owner_id,
                ),
            )
            conn.commit()
        return measurement

    def delete_measurement(self, measurement_id: str, owner_id: str) -> bool:
        """Delete one owned measurement. Returns False if nothing matched."""
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM measurements WHERE id = ? AND owner_id = ?",
                (measurement_id, owner_id),
            )
            conn.commit()
        return cur.rowcount > 0

    def count_by_owner(self, owner_id: str) -> int:
        """Total measurements of an owner."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM measurements WHERE owner_id = ?",
                (owner_id,),
            ).fetchone()
        return int(row["total"])

    def last_measured_at(self, owner_id: str) -> datetime | None:
        """Instant of the owner's latest measurement."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT MAX(measured_at) AS last FROM measurements WHERE owner_id = ?",
                (owner_id,),
            ).fetchone()
        if row is None or row["last"] is None:
            return None
        return datetime.fromisoformat(row["last"])


def _instant_text(instant: datetime) -> str:
    # Fixed-width UTC text keeps lexicographic order equal to time order.
    return to_utc(instant).isoformat(timespec="microseconds")


def _optional_instant_text(instant: datetime | None) -> str | None:
    if instant is None:
        return None
    return _instant_text(instant)


def _range_filter(
    owner_id: str, start_date: date | None, end_date: date | None
) -> tuple[str, list[object]]:
    where = "owner_id = ?"
    params: list[object] = [owner_id]
    if start_date is not None:
        where += " AND local_day >= ?"
        params.append(start_date.isoformat())
    if end_date is not None:
        where += " AND local_day <= ?"
        params.append(end_date.isoformat())
    return where, params


def _row_to_measurement(row: sqlite3.Row) -> Measurement:
    updated_at = row["updated_at"]
    return Measurement(
        id=row["id"],
        owner_id=row["owner_id"],
        weight_kg=float(row["weight_kg"]),
        measured_at=datetime.fromisoformat(row["measured_at"]),
        source=MeasurementSource(row["source"]),
        is_backfill=bool(row["is_backfill"]),
        is_outlier=bool(row["is_outlier"]),
        outlier_confirmed=OutlierConfirmation(row["outlier_confirmed"]),
        note=row["note"],
        created_by=row["created_by"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_by=row["updated_by"],
        updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
    )


def _rekey_local_days(conn: sqlite3.Connection, zone: tzinfo) -> None:
    rows = conn.execute("SELECT id, measured_at FROM measurements").fetchall()
    # Park every row on a unique key first so moves never collide midway.
    conn.execute("UPDATE measurements SET local_day = 'rekey:' || id")
    updates = []
    for row in rows:
        day = local_day(datetime.fromisoformat(row["measured_at"]), zone)
        updates.append(
            (day.isoformat(), week_start(day, zone).isoformat(), row["id"])
        )
    conn.executemany(
        "UPDATE measurements SET local_day = ?, week_start = ? WHERE id = ?",
        updates,
    )
