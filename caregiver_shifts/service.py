"""
Scheduling and lifecycle orchestration over the shift store.

Creation goes through the occupancy guard before the store write. Each
lifecycle transition is read, applied as a pure function, then written
with a conditional update on the state it was read in, so a concurrent
writer that lost the race gets ``InvalidTransition`` instead of
overwriting the winner.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import TypeVar
from uuid import uuid4

from caregiver_shifts import lifecycle
from caregiver_shifts.config import Settings
from caregiver_shifts.database import CaregiverDirectory, ShiftStore
from caregiver_shifts.errors import InvalidTransition, PersistenceError, ShiftValidationError
from caregiver_shifts.hours import aggregate, week_bounds, week_days
from caregiver_shifts.models import (
    CheckOutRequest,
    DayColumn,
    HoursRow,
    PlacedSegment,
    ScheduleShiftRequest,
    Shift,
    duration_minutes,
    round_half_up,
)
from caregiver_shifts.occupancy import (
    ensure_can_schedule,
    is_day_occupied,
    previous_day_full24,
)
from caregiver_shifts.timeline import segments_for_day

logger = logging.getLogger(__name__)

T = TypeVar("T")

NowFn = Callable[[], datetime]


class ShiftService:
    def __init__(
        self,
        store: ShiftStore,
        directory: CaregiverDirectory,
        *,
        settings: Settings | None = None,
        now_fn: NowFn | None = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.settings = settings or Settings()
        self.now_fn = now_fn or (lambda: datetime.now(UTC))

    async def _io(
        self,
        awaitable: Awaitable[T],
        *,
        shift_id: str | None = None,
        transition: str | None = None,
    ) -> T:
        try:
            return await asyncio.wait_for(
                awaitable, timeout=self.settings.store_timeout_seconds
            )
        except TimeoutError as exc:
            logger.warning(
                "store call timed out: shift=%s transition=%s", shift_id, transition
            )
            raise PersistenceError(
                "Store did not respond in time",
                shift_id=shift_id,
                transition=transition,
            ) from exc
        except OSError as exc:
            logger.warning(
                "store unavailable: shift=%s transition=%s error=%s",
                shift_id,
                transition,
                exc,
            )
            raise PersistenceError(
                f"Store unavailable: {exc}", shift_id=shift_id, transition=transition
            ) from exc

    async def get_shift(self, shift_id: str) -> Shift:
        return await self._io(self.store.get(shift_id), shift_id=shift_id)

    async def list_shifts(self, patient_id: str, start: date, end: date) -> list[Shift]:
        if end < start:
            raise ShiftValidationError(
                f"Range end {end.isoformat()} is before start {start.isoformat()}"
            )
        return await self._io(self.store.query(patient_id, start, end))

    async def schedule(self, patient_id: str, request: ScheduleShiftRequest) -> Shift:
        caregiver = await self._io(self.directory.resolve(request.caregiver_id))
        if caregiver is None or not caregiver.active:
            raise ShiftValidationError(
                f"Caregiver {request.caregiver_id} not found or inactive"
            )

        start, end = request.window()
        existing = await self._io(self.store.query(patient_id, request.date, request.date))
        ensure_can_schedule(existing, request.date, request.shift_type, patient_id)

        now = self.now_fn()
        shift = Shift(
            id=uuid4().hex,
            patient_id=patient_id,
            caregiver_id=caregiver.id,
            caregiver_name=caregiver.name,
            date=request.date,
            scheduled_start=start,
            scheduled_end=end,
            shift_type=request.shift_type,
            scheduled_hours=round_half_up(Decimal(duration_minutes(start, end)) / 60),
            entry_notes=request.entry_notes,
            created_at=now,
            updated_at=now,
        )
        created = await self._io(self.store.create(shift), shift_id=shift.id)
        logger.info(
            "scheduled shift %s: patient=%s caregiver=%s date=%s %s-%s (%s)",
            created.id,
            patient_id,
            caregiver.id,
            created.date,
            created.scheduled_start.strftime("%H:%M"),
            created.scheduled_end.strftime("%H:%M"),
            created.shift_type,
        )
        return created

    async def _transition(
        self, shift_id: str, transition: str, apply: Callable[[Shift, datetime], Shift]
    ) -> Shift:
        shift = await self._io(
            self.store.get(shift_id), shift_id=shift_id, transition=transition
        )
        now = self.now_fn()
        updated = apply(shift, now)

        patch = lifecycle.changed_fields(shift, updated)
        patch["updated_at"] = now
        result = await self._io(
            self.store.conditional_update(shift_id, shift.state, patch),
            shift_id=shift_id,
            transition=transition,
        )
        if result is None:
            current = await self._io(
                self.store.get(shift_id), shift_id=shift_id, transition=transition
            )
            logger.warning(
                "lost concurrent %s on shift %s: expected %s, found %s",
                transition,
                shift_id,
                shift.state,
                current.state,
            )
            raise InvalidTransition(
                f"Shift changed to {current.state.value} before {transition} was applied",
                shift_id=shift_id,
                transition=transition,
                current_state=current.state.value,
            )

        logger.info(
            "shift %s %s: %s -> %s", shift_id, transition, shift.state, result.state
        )
        return result

    async def confirm(self, shift_id: str) -> Shift:
        return await self._transition(
            shift_id, lifecycle.CONFIRM, lambda shift, _now: lifecycle.confirm(shift)
        )

    async def check_in(self, shift_id: str) -> Shift:
        return await self._transition(
            shift_id,
            lifecycle.CHECK_IN,
            lambda shift, now: lifecycle.check_in(shift, now, self.settings.tz),
        )

    async def check_out(
        self, shift_id: str, request: CheckOutRequest | None = None
    ) -> Shift:
        request = request or CheckOutRequest()
        return await self._transition(
            shift_id,
            lifecycle.CHECK_OUT,
            lambda shift, now: lifecycle.check_out(
                shift,
                now,
                exit_notes=request.exit_notes,
                incidents=request.incidents,
                tasks_completed=request.tasks_completed,
            ),
        )

    async def cancel(self, shift_id: str) -> Shift:
        return await self._transition(
            shift_id, lifecycle.CANCEL, lambda shift, _now: lifecycle.cancel(shift)
        )

    async def day_timeline(
        self, patient_id: str, day: date, *, include_cancelled: bool = False
    ) -> list[PlacedSegment]:
        shifts = await self._io(
            self.store.query(patient_id, day - timedelta(days=1), day)
        )
        return segments_for_day(
            shifts, day, tz=self.settings.tz, include_cancelled=include_cancelled
        )

    async def weekly_hours(self, patient_id: str, day: date) -> list[HoursRow]:
        week_start, week_end = week_bounds(day, self.settings.week_starts_on)
        shifts = await self._io(self.store.query(patient_id, week_start, week_end))
        return aggregate(shifts, week_start, week_end)

    async def week_view(self, patient_id: str, day: date) -> list[DayColumn]:
        days = week_days(day, self.settings.week_starts_on)
        shifts = await self._io(
            self.store.query(patient_id, days[0] - timedelta(days=1), days[-1])
        )

        columns = []
        for column_day in days:
            carried = previous_day_full24(shifts, column_day, patient_id)
            columns.append(
                DayColumn(
                    date=column_day,
                    occupied=is_day_occupied(shifts, column_day, patient_id),
                    carried_over_full24=carried.id if carried is not None else None,
                    segments=segments_for_day(shifts, column_day, tz=self.settings.tz),
                )
            )
        return columns
