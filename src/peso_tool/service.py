"""Operaciones sobre pesajes: alta, edición, borrado y reportes."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, tzinfo
from uuid import uuid4

from peso_tool.chart import build_chart_series
from peso_tool.clock import get_zone, week_start
from peso_tool.compliance import compliance_statistics
from peso_tool.config import MeasurementPolicy, validate_policy
from peso_tool.edit_guard import apply_patch, assert_confirmable, assert_editable
from peso_tool.errors import DuplicateEntryError, NotFoundError, UniqueConstraintError
from peso_tool.model import (
    ChartSeries,
    ComplianceStatistics,
    CreateResult,
    Measurement,
    MeasurementPage,
    MeasurementPatch,
    MeasurementSource,
    OutlierConfirmation,
)
from peso_tool.storage import MeasurementStore
from peso_tool.validator import check_weight, normalize_note, validate_and_prepare


class MeasurementService:
    """Entry points for measurement use cases.

    Stateless apart from its collaborators; every method receives ``now``
    explicitly and never reads the system clock.
    """

    def __init__(
        self, store: MeasurementStore, policy: MeasurementPolicy | None = None
    ) -> None:
        """Create the service.

        Args:
            store: Storage collaborator; its timezone defines local days.
            policy: Thresholds; defaults to the policy saved in ``store``.

        Raises:
            ValueError: If ``policy`` is out of bounds or names a timezone
                other than the store's.
        """
        if policy is None:
            policy = store.load_policy()
        elif policy.timezone != store.timezone:
            raise ValueError(
                f"Policy timezone {policy.timezone} does not match the store "
                f"timezone {store.timezone}."
            )
        self._store = store
        self._policy = validate_policy(policy)

    @property
    def policy(self) -> MeasurementPolicy:
        """Current thresholds, with the timezone always taken from the store."""
        if self._policy.timezone != self._store.timezone:
            self._policy = replace(self._policy, timezone=self._store.timezone)
        return self._policy

    @property
    def _zone(self) -> tzinfo:
        return get_zone(self.policy.timezone)

    def create_measurement(
        self,
        owner_id: str,
        weight_kg: float,
        measured_at: datetime,
        source: MeasurementSource,
        now: datetime,
        *,
        note: str | None = None,
        created_by: str | None = None,
    ) -> CreateResult:
        """Validate and store a new measurement.

        Raises:
            InvalidWeightError: Weight out of range or too precise.
            InvalidNoteError: Note too long.
            FutureDateError: Measurement day after today.
            BackfillLimitError: Measurement day too far back.
            DuplicateEntryError: Owner already has a measurement that day,
                found by the pre-check or by the storage unique index.
        """
        weight = check_weight(weight_kg, self.policy)
        clean_note = normalize_note(note, self.policy)
        result = validate_and_prepare(
            self._store, owner_id, weight, measured_at, source, now, self.policy
        )
        measurement = Measurement(
            id=uuid4().hex,
            owner_id=owner_id,
            weight_kg=weight,
            measured_at=measured_at,
            source=source,
            is_backfill=result.is_backfill,
            is_outlier=result.is_outlier,
            note=clean_note,
            created_by=created_by or owner_id,
            created_at=now,
        )
        try:
            stored = self._store.insert_measurement(measurement)
        except UniqueConstraintError as exc:
            raise DuplicateEntryError(
                f"A measurement already exists for {owner_id} on that day; "
                "edit the existing one instead."
            ) from exc
        return CreateResult(measurement=stored, warnings=result.warnings)

    def update_measurement(
        self,
        measurement_id: str,
        requesting_user_id: str,
        patch: MeasurementPatch,
        now: datetime,
    ) -> Measurement:
        """Change weight and/or note of the requester's own recent entry.

        Raises:
            NotFoundError: Missing or foreign.
            ForbiddenError: Recorded by the professional.
            EditWindowExpiredError: Window closed.
            EmptyPatchError: Nothing would change.
        """
        current = assert_editable(
            self._store.get_measurement(measurement_id),
            requesting_user_id,
            now,
            self._zone,
        )
        updated = apply_patch(current, patch, requesting_user_id, now, self.policy)
        return self._store.update_measurement(updated)

    def delete_measurement(
        self, measurement_id: str, requesting_user_id: str, now: datetime
    ) -> None:
        """Delete the requester's own recent entry.

        Raises:
            NotFoundError: Missing, foreign, or already deleted.
            ForbiddenError: Recorded by the professional.
            EditWindowExpiredError: Window closed.
        """
        current = assert_editable(
            self._store.get_measurement(measurement_id),
            requesting_user_id,
            now,
            self._zone,
        )
        if not self._store.delete_measurement(current.id, current.owner_id):
            raise NotFoundError("Measurement not found.")

    def confirm_outlier(
        self,
        measurement_id: str,
        requesting_user_id: str,
        confirmed: bool,
        *,
        now: datetime,
        professional_override: bool = False,
    ) -> Measurement:
        """Record whether a flagged measurement is genuine.

        Repeating the current judgment returns the record unchanged.

        Raises:
            NotFoundError: Missing, or foreign without override.
            NotAnOutlierError: Measurement was never flagged.
        """
        current = assert_confirmable(
            self._store.get_measurement(measurement_id),
            requesting_user_id,
            professional_override=professional_override,
        )
        judgment = OutlierConfirmation.from_bool(confirmed)
        if current.outlier_confirmed is judgment:
            return current
        updated = replace(
            current,
            outlier_confirmed=judgment,
            updated_by=requesting_user_id,
            updated_at=now,
        )
        return self._store.update_measurement(updated)

    def get_compliance_statistics(
        self, owner_id: str, now: datetime
    ) -> ComplianceStatistics:
        """Weekly adherence figures for an owner as of ``now``."""
        current = week_start(now, self._zone)
        weeks = self._store.list_weeks_with_presence(
            owner_id, self.policy.streak_lookback_weeks, current
        )
        return compliance_statistics(
            weeks,
            now,
            total_entries=self._store.count_by_owner(owner_id),
            last_measured_at=self._store.last_measured_at(owner_id),
            policy=self.policy,
        )

    def get_chart_series(
        self, owner_id: str, start_date: date, end_date: date
    ) -> ChartSeries:
        """Chart points and statistics for an inclusive local-day range."""
        measurements = self._store.list_in_range(owner_id, start_date, end_date)
        return build_chart_series(measurements, self.policy)

    def list_measurements(
        self,
        owner_id: str,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int | None = None,
        cursor: datetime | None = None,
    ) -> MeasurementPage:
        """History page, newest first, continuing before ``cursor``.

        Raises:
            ValueError: If ``limit`` is outside 1..``page_size_max``.
        """
        size = self.policy.page_size_default if limit is None else limit
        if not 1 <= size <= self.policy.page_size_max:
            raise ValueError(
                f"limit must be between 1 and {self.policy.page_size_max}"
            )
        rows = self._store.list_page(
            owner_id,
            start_date=start_date,
            end_date=end_date,
            limit=size + 1,
            cursor=cursor,
        )
        has_more = len(rows) > size
        entries = rows[:size]
        next_cursor = entries[-1].measured_at if has_more and entries else None
        return MeasurementPage(
            entries=entries, has_more=has_more, next_cursor=next_cursor
        )
