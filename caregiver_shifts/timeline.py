"""
Timeline geometry for the calendar day grid.

Positions are fractions of a 1440-minute day; the presentation layer
scales them to pixels or cells. A shift crossing midnight renders as a
segment on its own date plus a continuation at the top of the next date.
"""

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, tzinfo

from caregiver_shifts.models import (
    MINUTES_PER_DAY,
    PlacedSegment,
    Shift,
    TimelineSegment,
    to_minutes,
)

MAX_SPAN_MINUTES = 2 * MINUTES_PER_DAY


def layout_window(start: time, end: time) -> list[TimelineSegment]:
    s = to_minutes(start)
    e = to_minutes(end)

    if e > s:
        return [
            TimelineSegment(
                top=s / MINUTES_PER_DAY,
                height=(e - s) / MINUTES_PER_DAY,
                crosses_midnight=False,
            )
        ]

    return [
        TimelineSegment(
            top=s / MINUTES_PER_DAY,
            height=(MINUTES_PER_DAY - s) / MINUTES_PER_DAY,
            crosses_midnight=True,
        ),
        TimelineSegment(
            top=0.0,
            height=e / MINUTES_PER_DAY,
            crosses_midnight=True,
            continuation=True,
        ),
    ]


def _minutes_from_anchor(shift: Shift, moment: datetime, tz: tzinfo | None) -> int:
    if moment.tzinfo is not None:
        moment = moment.astimezone(tz or moment.tzinfo)
        midnight = datetime.combine(shift.date, time(0, 0), tzinfo=moment.tzinfo)
    else:
        midnight = datetime.combine(shift.date, time(0, 0))
    return int((moment - midnight).total_seconds() // 60)


def layout_span(start_minute: int, end_minute: int) -> list[TimelineSegment]:
    """
    Lay out a recorded span given in minutes from midnight of the anchoring
    date. The span is clamped to that day and the next; the part past
    1440 is a continuation drawn on the following date.
    """
    s = min(max(start_minute, 0), MAX_SPAN_MINUTES)
    e = min(max(end_minute, 0), MAX_SPAN_MINUTES)
    segments: list[TimelineSegment] = []
    if e <= s:
        return segments

    if s < MINUTES_PER_DAY:
        segments.append(
            TimelineSegment(
                top=s / MINUTES_PER_DAY,
                height=(min(e, MINUTES_PER_DAY) - s) / MINUTES_PER_DAY,
                crosses_midnight=e > MINUTES_PER_DAY,
            )
        )
    if e > MINUTES_PER_DAY:
        first = max(s, MINUTES_PER_DAY)
        segments.append(
            TimelineSegment(
                top=(first - MINUTES_PER_DAY) / MINUTES_PER_DAY,
                height=(e - first) / MINUTES_PER_DAY,
                crosses_midnight=s < MINUTES_PER_DAY,
                continuation=True,
            )
        )
    return segments


def layout_shift(shift: Shift, tz: tzinfo | None = None) -> list[TimelineSegment]:
    """
    Recorded check-in to check-out once both exist, placed by full date and
    time relative to the shift's date; the scheduled window otherwise.
    """
    if shift.actual_start is not None and shift.actual_end is not None:
        return layout_span(
            _minutes_from_anchor(shift, shift.actual_start, tz),
            _minutes_from_anchor(shift, shift.actual_end, tz),
        )
    return layout_window(shift.scheduled_start, shift.scheduled_end)


def _place(shift: Shift, segment: TimelineSegment) -> PlacedSegment:
    return PlacedSegment(
        shift_id=shift.id,
        caregiver_name=shift.caregiver_name,
        shift_type=shift.shift_type,
        state=shift.state,
        segment=segment,
    )


def segments_for_day(
    shifts: Iterable[Shift],
    day: date,
    *,
    tz: tzinfo | None = None,
    include_cancelled: bool = False,
) -> list[PlacedSegment]:
    """
    Everything drawn in one day column: the shifts anchored on ``day`` and
    the continuations of the previous day's shifts that run past midnight.
    """
    previous_day = day - timedelta(days=1)
    continuations: list[PlacedSegment] = []
    own: list[PlacedSegment] = []

    for shift in shifts:
        if shift.is_cancelled and not include_cancelled and shift.date == day:
            continue

        segments = layout_shift(shift, tz)
        if shift.date == day:
            own.extend(_place(shift, seg) for seg in segments if not seg.continuation)
        elif shift.date == previous_day and not shift.is_cancelled:
            continuations.extend(
                _place(shift, seg)
                for seg in segments
                if seg.continuation and seg.height > 0
            )

    own.sort(key=lambda placed: placed.segment.top)
    return continuations + own
