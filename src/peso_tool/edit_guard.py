"""Ventana de edición y borrado de pesajes cargados por el paciente."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, tzinfo

from peso_tool.clock import local_day, start_of_day
from peso_tool.config import MeasurementPolicy
from peso_tool.errors import (
    EditWindowExpiredError,
    EmptyPatchError,
    ForbiddenError,
    NotAnOutlierError,
    NotFoundError,
)
from peso_tool.model import (
    Measurement,
    MeasurementPatch,
    MeasurementSource,
    OutlierConfirmation,
)
from peso_tool.validator import check_weight, normalize_note


def edit_deadline(measurement: Measurement, zone: tzinfo) -> datetime:
    """First instant after the edit window (local midnight two days later)."""
    day = local_day(measurement.measured_at, zone)
    return start_of_day(day + timedelta(days=2), zone)


def _require_owned(
    measurement: Measurement | None, requesting_user_id: str
) -> Measurement:
    # Foreign records must look exactly like missing ones.
    if measurement is None or measurement.owner_id != requesting_user_id:
        raise NotFoundError("Measurement not found.")
    return measurement


def assert_editable(
    measurement: Measurement | None,
    requesting_user_id: str,
    now: datetime,
    zone: tzinfo,
) -> Measurement:
    """Check that ``requesting_user_id`` may edit or delete ``measurement``.

    Args:
        measurement: Fetched record, or None if storage had nothing.
        requesting_user_id: Id of the patient making the request.
        now: Request time.
        zone: Local timezone.

    Returns:
        The measurement, narrowed to non-None.

    Raises:
        NotFoundError: Missing or owned by someone else.
        ForbiddenError: Recorded by the professional.
        EditWindowExpiredError: Past the end of the day after the
            measurement's local day.
    """
    owned = _require_owned(measurement, requesting_user_id)
    if owned.source is not MeasurementSource.PATIENT:
        raise ForbiddenError(
            "Only measurements recorded by the patient can be changed; "
            "this one was added by the professional."
        )
    if now >= edit_deadline(owned, zone):
        raise EditWindowExpiredError(
            "The edit window has closed; measurements can be changed only "
            "until the end of the day after the measurement date."
        )
    return owned


def assert_confirmable(
    measurement: Measurement | None,
    requesting_user_id: str,
    *,
    professional_override: bool = False,
) -> Measurement:
    """Check that the outlier judgment may be recorded.

    No edit window applies. ``professional_override`` is decided by the
    caller's authorization layer.

    Raises:
        NotFoundError: Missing, or foreign without override.
        NotAnOutlierError: The measurement was never flagged.
    """
    if measurement is None:
        raise NotFoundError("Measurement not found.")
    if not professional_override:
        _require_owned(measurement, requesting_user_id)
    if not measurement.is_outlier:
        raise NotAnOutlierError("Measurement is not flagged as an outlier.")
    return measurement


def apply_patch(
    measurement: Measurement,
    patch: MeasurementPatch,
    requesting_user_id: str,
    now: datetime,
    policy: MeasurementPolicy,
) -> Measurement:
    """Return ``measurement`` with the patch applied.

    Only weight and note change. A new weight clears the outlier judgment
    but keeps ``is_outlier`` as computed at creation.

    Raises:
        EmptyPatchError: Nothing would change.
        InvalidWeightError: New weight out of range.
        InvalidNoteError: New note too long.
    """
    if patch.is_empty():
        raise EmptyPatchError("Provide a new weight or note.")

    weight = measurement.weight_kg
    confirmation = measurement.outlier_confirmed
    if patch.weight_kg is not None:
        weight = check_weight(patch.weight_kg, policy)
        if weight != measurement.weight_kg:
            confirmation = OutlierConfirmation.UNSET

    note = measurement.note
    if patch.note is not None:
        note = normalize_note(patch.note, policy)

    if weight == measurement.weight_kg and note == measurement.note:
        raise EmptyPatchError("The patch does not change weight or note.")

    return replace(
        measurement,
        weight_kg=weight,
        note=note,
        outlier_confirmed=confirmation,
        updated_by=requesting_user_id,
        updated_at=now,
    )
