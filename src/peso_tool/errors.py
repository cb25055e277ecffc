"""Errores de dominio para pesajes (sin semántica HTTP)."""

from __future__ import annotations


class MeasurementError(Exception):
    """Base class for every rejection raised by the measurement engine."""


class FutureDateError(MeasurementError):
    """The measurement's local day is after today."""


class BackfillLimitError(MeasurementError):
    """The measurement's local day is further back than the backfill window."""


class DuplicateEntryError(MeasurementError):
    """A measurement already exists for the owner on that local day."""


class EditWindowExpiredError(MeasurementError):
    """The measurement can no longer be edited or deleted."""


class ForbiddenError(MeasurementError):
    """The requester may see the measurement but not change it."""


class NotFoundError(MeasurementError):
    """The measurement does not exist or belongs to someone else."""


class NotAnOutlierError(MeasurementError):
    """Confirmation was requested for a measurement that was never flagged."""


class EmptyPatchError(MeasurementError):
    """An edit that would not change weight nor note."""


class InvalidWeightError(MeasurementError, ValueError):
    """Weight outside the allowed range or with more than one decimal."""


class InvalidNoteError(MeasurementError, ValueError):
    """Note longer than allowed."""


class UniqueConstraintError(Exception):
    """Raised by storage when the (owner, local day) index rejects an insert.

    The service translates it into :class:`DuplicateEntryError`.
    """
