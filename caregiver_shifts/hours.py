"""
Weekly hours per caregiver, scheduled against actually worked.
"""

from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal

from caregiver_shifts.errors import ShiftValidationError
from caregiver_shifts.models import HoursRow, Shift, ShiftState, round_half_up


def week_bounds(day: date, week_starts_on: int = 0) -> tuple[date, date]:
    """First and last date of the week containing ``day`` (0 = Monday)."""
    offset = (day.weekday() - week_starts_on) % 7
    start = day - timedelta(days=offset)
    return start, start + timedelta(days=6)


def week_days(day: date, week_starts_on: int = 0) -> list[date]:
    start, _ = week_bounds(day, week_starts_on)
    return [start + timedelta(days=i) for i in range(7)]


def aggregate(
    shifts: Iterable[Shift], week_start: date, week_end: date
) -> list[HoursRow]:
    if week_end < week_start:
        raise ShiftValidationError(
            f"Week end {week_end.isoformat()} is before week start {week_start.isoformat()}"
        )

    totals: dict[str, dict] = {}
    for shift in shifts:
        if not (week_start <= shift.date <= week_end):
            continue
        if shift.state == ShiftState.CANCELLED:
            continue

        row = totals.setdefault(
            shift.caregiver_id,
            {
                "caregiver": shift.caregiver_name,
                "shift_count": 0,
                "scheduled": Decimal(0),
                "actual": Decimal(0),
            },
        )
        row["shift_count"] += 1
        row["scheduled"] += Decimal(repr(shift.scheduled_hours))
        if shift.state == ShiftState.COMPLETED and shift.actual_hours is not None:
            row["actual"] += Decimal(repr(shift.actual_hours))

    return [
        HoursRow(
            caregiver_id=caregiver_id,
            caregiver=row["caregiver"],
            shift_count=row["shift_count"],
            scheduled_hours=round_half_up(row["scheduled"]),
            actual_hours=round_half_up(row["actual"]),
        )
        for caregiver_id, row in totals.items()
    ]
