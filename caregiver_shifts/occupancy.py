"""
Occupancy rules for scheduling new shifts.

A non-cancelled full24 shift closes its date to any further shift. The
check is by anchoring date only: a full24 from the previous day spills
into this day on the calendar but does not block scheduling here.
Overlap between partial shifts is not checked.
"""

import logging
from collections.abc import Iterable
from datetime import date, timedelta

from pydantic import BaseModel, ConfigDict

from caregiver_shifts.errors import OccupancyConflict
from caregiver_shifts.models import Shift, ShiftType

logger = logging.getLogger(__name__)


class OccupancyDecision(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    conflict: OccupancyConflict | None = None

    @property
    def allowed(self) -> bool:
        return self.conflict is None


def _full24_on(
    shifts: Iterable[Shift], day: date, patient_id: str | None = None
) -> Shift | None:
    return next(
        (
            s
            for s in shifts
            if s.date == day
            and s.shift_type == ShiftType.FULL24
            and not s.is_cancelled
            and (patient_id is None or s.patient_id == patient_id)
        ),
        None,
    )


def is_day_occupied(
    shifts: Iterable[Shift], day: date, patient_id: str | None = None
) -> bool:
    return _full24_on(shifts, day, patient_id) is not None


def previous_day_full24(
    shifts: Iterable[Shift], day: date, patient_id: str | None = None
) -> Shift | None:
    return _full24_on(shifts, day - timedelta(days=1), patient_id)


def can_schedule(
    existing: Iterable[Shift],
    day: date,
    shift_type: ShiftType,
    patient_id: str | None = None,
) -> OccupancyDecision:
    blocking = _full24_on(existing, day, patient_id)
    if blocking is None:
        return OccupancyDecision()

    if shift_type == ShiftType.FULL24:
        message = f"A 24-hour shift already exists on {day.isoformat()}"
    else:
        message = f"{day.isoformat()} is fully covered by a 24-hour shift"

    logger.warning(
        "occupancy rejected: patient=%s date=%s type=%s blocking=%s",
        blocking.patient_id,
        day,
        shift_type,
        blocking.id,
    )
    return OccupancyDecision(
        conflict=OccupancyConflict(
            message,
            patient_id=blocking.patient_id,
            day=day,
            blocking_shift_id=blocking.id,
        )
    )


def ensure_can_schedule(
    existing: Iterable[Shift],
    day: date,
    shift_type: ShiftType,
    patient_id: str | None = None,
) -> None:
    decision = can_schedule(existing, day, shift_type, patient_id)
    if decision.conflict is not None:
        raise decision.conflict
