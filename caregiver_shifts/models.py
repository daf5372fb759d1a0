"""
Domain models for caregiver shifts.

A shift is anchored to exactly one calendar ``date``. Its scheduled window
is a pair of times of day; an end at or before the start means the shift
runs past midnight into the following day.
"""

import re
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from caregiver_shifts.errors import ShiftValidationError

MINUTES_PER_DAY = 24 * 60

_TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class ShiftType(StrEnum):
    MORNING = "morning"
    EVENING = "evening"
    NIGHT = "night"
    FULL24 = "full24"
    CUSTOM = "custom"


class ShiftState(StrEnum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ShiftState.COMPLETED, ShiftState.CANCELLED)


class Severity(StrEnum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


# Default windows per shift type. full24 ends one minute short of the next
# day's start so a new shift may begin on the following date at 09:00.
SHIFT_TYPE_PRESETS: dict[ShiftType, tuple[time, time]] = {
    ShiftType.MORNING: (time(7, 0), time(15, 0)),
    ShiftType.EVENING: (time(15, 0), time(23, 0)),
    ShiftType.NIGHT: (time(23, 0), time(7, 0)),
    ShiftType.FULL24: (time(9, 0), time(8, 59)),
}


def parse_time_of_day(value: str) -> time:
    """Parse a strict ``HH:MM`` string."""
    match = _TIME_OF_DAY.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ShiftValidationError(f"Invalid time of day {value!r}, expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def _coerce_time_of_day(value):
    if isinstance(value, str):
        return parse_time_of_day(value)
    if isinstance(value, time):
        if value.tzinfo is not None:
            raise ShiftValidationError("Time of day must not carry a timezone")
        return value.replace(second=0, microsecond=0)
    return value


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def crosses_midnight(start: time, end: time) -> bool:
    return to_minutes(end) <= to_minutes(start)


def duration_minutes(start: time, end: time) -> int:
    minutes = to_minutes(end) - to_minutes(start)
    if minutes <= 0:
        minutes += MINUTES_PER_DAY
    return minutes


def round_half_up(value: float | Decimal, places: int = 1) -> float:
    """
    Round to ``places`` decimals, halves away from zero.

    Floats go through ``repr`` so 7.75 is treated as the exact midpoint it
    reads as, not its binary approximation.
    """
    quantum = Decimal(1).scaleb(-places)
    if not isinstance(value, Decimal):
        value = Decimal(repr(value))
    return float(value.quantize(quantum, rounding=ROUND_HALF_UP))


def hours_between(start: datetime, end: datetime) -> float:
    seconds = Decimal(str((end - start).total_seconds()))
    return round_half_up(seconds / Decimal(3600))


class Caregiver(BaseModel):
    id: str
    name: str
    role: str = "caregiver"
    phone: str | None = None
    active: bool = True


class Incident(BaseModel):
    category: str
    description: str
    time: time
    severity: Severity = Severity.MINOR

    @field_validator("time", mode="before")
    @classmethod
    def check_time(cls, value):
        return _coerce_time_of_day(value)


class TaskItem(BaseModel):
    description: str
    done: bool = False


class Shift(BaseModel):
    id: str
    patient_id: str
    caregiver_id: str
    caregiver_name: str
    date: date
    scheduled_start: time
    scheduled_end: time
    shift_type: ShiftType
    state: ShiftState = ShiftState.SCHEDULED
    scheduled_hours: float

    # set only by lifecycle transitions
    actual_start: datetime | None = None
    actual_end: datetime | None = None
    delay_minutes: int | None = None
    actual_hours: float | None = None

    entry_notes: str | None = None
    exit_notes: str | None = None
    incidents: list[Incident] = Field(default_factory=list)
    tasks_completed: list[TaskItem] = Field(default_factory=list)

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("scheduled_start", "scheduled_end", mode="before")
    @classmethod
    def check_times(cls, value):
        return _coerce_time_of_day(value)

    @property
    def crosses_midnight(self) -> bool:
        return crosses_midnight(self.scheduled_start, self.scheduled_end)

    @property
    def is_cancelled(self) -> bool:
        return self.state == ShiftState.CANCELLED


class ScheduleShiftRequest(BaseModel):
    """
    Input for creating a shift. Preset shift types fill in their default
    window when times are omitted; ``custom`` needs both times.
    """

    caregiver_id: str
    date: date
    shift_type: ShiftType = ShiftType.MORNING
    scheduled_start: time | None = None
    scheduled_end: time | None = None
    entry_notes: str | None = None

    @field_validator("scheduled_start", "scheduled_end", mode="before")
    @classmethod
    def check_times(cls, value):
        return _coerce_time_of_day(value)

    @field_validator("caregiver_id")
    @classmethod
    def caregiver_required(cls, value: str) -> str:
        if not value.strip():
            raise ShiftValidationError("A caregiver is required")
        return value

    @model_validator(mode="after")
    def custom_needs_window(self) -> "ScheduleShiftRequest":
        if self.shift_type == ShiftType.CUSTOM and (
            self.scheduled_start is None or self.scheduled_end is None
        ):
            raise ShiftValidationError("Custom shifts need a start and an end time")
        return self

    def window(self) -> tuple[time, time]:
        preset_start, preset_end = SHIFT_TYPE_PRESETS.get(self.shift_type, (None, None))
        start = self.scheduled_start or preset_start
        end = self.scheduled_end or preset_end
        if start is None or end is None:
            raise ShiftValidationError(
                f"No window available for shift type {self.shift_type.value}"
            )
        return start, end


class CheckOutRequest(BaseModel):
    exit_notes: str | None = None
    incidents: list[Incident] = Field(default_factory=list)
    tasks_completed: list[TaskItem] = Field(default_factory=list)


class TimelineSegment(BaseModel):
    """Vertical placement on a 24-hour axis, as fractions of the day."""

    top: float
    height: float
    crosses_midnight: bool
    continuation: bool = False


class PlacedSegment(BaseModel):
    shift_id: str
    caregiver_name: str
    shift_type: ShiftType
    state: ShiftState
    segment: TimelineSegment


class HoursRow(BaseModel):
    caregiver_id: str
    caregiver: str
    shift_count: int
    scheduled_hours: float
    actual_hours: float

    @computed_field
    @property
    def variance(self) -> float:
        return round_half_up(
            Decimal(repr(self.actual_hours)) - Decimal(repr(self.scheduled_hours))
        )


class DayColumn(BaseModel):
    """One day of the week calendar."""

    date: date
    occupied: bool
    # id of the previous day's full24 shift spilling into this day
    carried_over_full24: str | None = None
    segments: list[PlacedSegment] = Field(default_factory=list)
