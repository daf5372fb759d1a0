"""
Shift lifecycle state machine.

    scheduled -> confirmed -> active -> completed
    scheduled | confirmed | active -> cancelled

completed and cancelled are terminal. Every transition is a pure function
returning a new ``Shift``; a call from any state not listed for it raises
``InvalidTransition``. Repeating a transition is an error, not a no-op.
"""

from collections.abc import Iterable
from datetime import datetime, tzinfo
from typing import Any

from caregiver_shifts.errors import InvalidTransition, ShiftValidationError
from caregiver_shifts.models import Incident, Shift, ShiftState, TaskItem, hours_between

CONFIRM = "confirm"
CHECK_IN = "check_in"
CHECK_OUT = "check_out"
CANCEL = "cancel"


def _rejected(shift: Shift, transition: str) -> InvalidTransition:
    return InvalidTransition(
        f"Cannot {transition.replace('_', ' ')} a shift that is {shift.state.value}",
        shift_id=shift.id,
        transition=transition,
        current_state=shift.state.value,
    )


def scheduled_start_instant(shift: Shift, tz: tzinfo | None = None) -> datetime:
    naive = datetime.combine(shift.date, shift.scheduled_start)
    return naive if tz is None else naive.replace(tzinfo=tz)


def confirm(shift: Shift) -> Shift:
    match shift.state:
        case ShiftState.SCHEDULED:
            return shift.model_copy(update={"state": ShiftState.CONFIRMED})
        case _:
            raise _rejected(shift, CONFIRM)


def check_in(shift: Shift, now: datetime, tz: tzinfo | None = None) -> Shift:
    """
    Start the shift at ``now``. The delay is measured against the scheduled
    start on the shift's date, in ``tz`` (default: the timezone of ``now``),
    in whole minutes and never negative.
    """
    match shift.state:
        case ShiftState.SCHEDULED | ShiftState.CONFIRMED:
            tz = (tz or now.tzinfo) if now.tzinfo is not None else None
            expected = scheduled_start_instant(shift, tz)
            late_by = int((now - expected).total_seconds() // 60)
            return shift.model_copy(
                update={
                    "state": ShiftState.ACTIVE,
                    "actual_start": now,
                    "delay_minutes": max(0, late_by),
                }
            )
        case _:
            raise _rejected(shift, CHECK_IN)


def check_out(
    shift: Shift,
    now: datetime,
    exit_notes: str | None = None,
    incidents: Iterable[Incident] = (),
    tasks_completed: Iterable[TaskItem] = (),
) -> Shift:
    match shift.state:
        case ShiftState.ACTIVE:
            if shift.actual_start is not None:
                if now < shift.actual_start:
                    raise ShiftValidationError(
                        f"Check-out at {now.isoformat()} is before check-in at "
                        f"{shift.actual_start.isoformat()}",
                        shift_id=shift.id,
                        transition=CHECK_OUT,
                        current_state=shift.state.value,
                    )
                worked = hours_between(shift.actual_start, now)
            else:
                worked = shift.scheduled_hours
            return shift.model_copy(
                update={
                    "state": ShiftState.COMPLETED,
                    "actual_end": now,
                    "actual_hours": worked,
                    "exit_notes": exit_notes,
                    "incidents": list(incidents),
                    "tasks_completed": list(tasks_completed),
                }
            )
        case _:
            raise _rejected(shift, CHECK_OUT)


def cancel(shift: Shift) -> Shift:
    # actual_start and delay_minutes stay on a cancelled active shift
    match shift.state:
        case ShiftState.SCHEDULED | ShiftState.CONFIRMED | ShiftState.ACTIVE:
            return shift.model_copy(update={"state": ShiftState.CANCELLED})
        case _:
            raise _rejected(shift, CANCEL)


def changed_fields(before: Shift, after: Shift) -> dict[str, Any]:
    return {
        name: getattr(after, name)
        for name in type(after).model_fields
        if getattr(after, name) != getattr(before, name)
    }
