import asyncio
from datetime import UTC, date, datetime, time, timedelta

import pytest
import pytest_asyncio

from caregiver_shifts.config import Settings
from caregiver_shifts.database import InMemoryCaregiverDirectory, InMemoryShiftStore
from caregiver_shifts.errors import (
    InvalidTransition,
    OccupancyConflict,
    PersistenceError,
    ShiftNotFound,
    ShiftValidationError,
)
from caregiver_shifts.models import (
    Caregiver,
    CheckOutRequest,
    Incident,
    ScheduleShiftRequest,
    ShiftState,
    ShiftType,
)
from caregiver_shifts.service import ShiftService

PATIENT = "patient-1"
DAY = date(2025, 7, 2)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class YieldingShiftStore(InMemoryShiftStore):
    """Suspends on every read so concurrent transitions interleave."""

    async def get(self, shift_id: str):
        shift = await super().get(shift_id)
        await asyncio.sleep(0)
        return shift


class SlowShiftStore(InMemoryShiftStore):
    async def query(self, patient_id, start, end):
        await asyncio.sleep(1)
        return await super().query(patient_id, start, end)


class UnavailableShiftStore(InMemoryShiftStore):
    async def conditional_update(self, shift_id, expected_state, patch):
        raise ConnectionRefusedError("store down")


@pytest.fixture
def directory() -> InMemoryCaregiverDirectory:
    return InMemoryCaregiverDirectory(
        [
            Caregiver(id="alice-id", name="Alice Ongwele", phone="+15550001"),
            Caregiver(id="wei-id", name="Wei Yan", phone="+15550002"),
            Caregiver(id="barry-id", name="Barry Kozumikov", active=False),
        ]
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 7, 1, 12, 0, tzinfo=UTC))


@pytest_asyncio.fixture
async def service(directory, clock) -> ShiftService:
    return ShiftService(InMemoryShiftStore(), directory, now_fn=clock)


@pytest.mark.asyncio
async def test_schedule_fills_preset_window_and_hours(service, clock) -> None:
    shift = await service.schedule(
        PATIENT,
        ScheduleShiftRequest(caregiver_id="alice-id", date=DAY, shift_type=ShiftType.NIGHT),
    )

    assert shift.state == ShiftState.SCHEDULED
    assert shift.caregiver_name == "Alice Ongwele"
    assert shift.scheduled_start == time(23, 0)
    assert shift.scheduled_end == time(7, 0)
    assert shift.scheduled_hours == 8.0
    assert shift.crosses_midnight
    assert shift.created_at == clock.now
    assert shift.actual_start is None
    assert await service.get_shift(shift.id) == shift


@pytest.mark.asyncio
async def test_schedule_full24_preset_is_24_hours(service) -> None:
    shift = await service.schedule(
        PATIENT,
        ScheduleShiftRequest(caregiver_id="alice-id", date=DAY, shift_type=ShiftType.FULL24),
    )
    assert shift.scheduled_start == time(9, 0)
    assert shift.scheduled_end == time(8, 59)
    assert shift.scheduled_hours == 24.0


@pytest.mark.asyncio
async def test_schedule_custom_window(service) -> None:
    shift = await service.schedule(
        PATIENT,
        ScheduleShiftRequest(
            caregiver_id="wei-id",
            date=DAY,
            shift_type=ShiftType.CUSTOM,
            scheduled_start="10:15",
            scheduled_end="14:00",
        ),
    )
    assert shift.scheduled_hours == 3.8


@pytest.mark.asyncio
@pytest.mark.parametrize("caregiver_id", ["nobody", "barry-id"])
async def test_schedule_requires_active_caregiver(service, caregiver_id) -> None:
    with pytest.raises(ShiftValidationError):
        await service.schedule(
            PATIENT, ScheduleShiftRequest(caregiver_id=caregiver_id, date=DAY)
        )


@pytest.mark.asyncio
async def test_full24_exclusive_until_cancelled(service) -> None:
    request = ScheduleShiftRequest(
        caregiver_id="alice-id", date=DAY, shift_type=ShiftType.FULL24
    )
    first = await service.schedule(PATIENT, request)

    with pytest.raises(OccupancyConflict):
        await service.schedule(PATIENT, request)
    with pytest.raises(OccupancyConflict):
        await service.schedule(
            PATIENT, ScheduleShiftRequest(caregiver_id="wei-id", date=DAY)
        )

    # next day stays open, and other patients are unaffected
    await service.schedule(
        PATIENT,
        ScheduleShiftRequest(caregiver_id="wei-id", date=DAY + timedelta(days=1)),
    )
    await service.schedule("patient-2", request)

    await service.cancel(first.id)
    second = await service.schedule(PATIENT, request)
    assert second.id != first.id

    shifts = await service.list_shifts(PATIENT, DAY, DAY)
    assert [s.state for s in shifts] == [ShiftState.CANCELLED, ShiftState.SCHEDULED]


@pytest.mark.asyncio
async def test_full_lifecycle(service, clock) -> None:
    shift = await service.schedule(
        PATIENT, ScheduleShiftRequest(caregiver_id="alice-id", date=DAY)
    )

    confirmed = await service.confirm(shift.id)
    assert confirmed.state == ShiftState.CONFIRMED

    clock.now = datetime(2025, 7, 2, 7, 15, tzinfo=UTC)
    active = await service.check_in(shift.id)
    assert active.state == ShiftState.ACTIVE
    assert active.delay_minutes == 15
    assert active.updated_at == clock.now

    clock.advance(timedelta(hours=7, minutes=45))
    done = await service.check_out(
        shift.id,
        CheckOutRequest(
            exit_notes="All good",
            incidents=[
                Incident(category="mood", description="Agitated after lunch", time="13:10")
            ],
        ),
    )
    assert done.state == ShiftState.COMPLETED
    assert done.actual_hours == 7.8
    assert done.actual_end == clock.now
    assert done.incidents[0].category == "mood"

    with pytest.raises(InvalidTransition):
        await service.cancel(shift.id)


@pytest.mark.asyncio
async def test_check_in_twice_fails_without_touching_record(service, clock) -> None:
    shift = await service.schedule(
        PATIENT, ScheduleShiftRequest(caregiver_id="alice-id", date=DAY)
    )
    clock.now = datetime(2025, 7, 2, 7, 0, tzinfo=UTC)
    await service.check_in(shift.id)

    clock.advance(timedelta(minutes=20))
    with pytest.raises(InvalidTransition) as excinfo:
        await service.check_in(shift.id)

    assert excinfo.value.current_state == "active"
    stored = await service.get_shift(shift.id)
    assert stored.actual_start == datetime(2025, 7, 2, 7, 0, tzinfo=UTC)
    assert stored.delay_minutes == 0


@pytest.mark.asyncio
async def test_concurrent_check_in_only_one_wins(directory, clock) -> None:
    service = ShiftService(YieldingShiftStore(), directory, now_fn=clock)
    shift = await service.schedule(
        PATIENT, ScheduleShiftRequest(caregiver_id="alice-id", date=DAY)
    )
    clock.now = datetime(2025, 7, 2, 7, 5, tzinfo=UTC)

    results = await asyncio.gather(
        service.check_in(shift.id),
        service.check_in(shift.id),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, InvalidTransition)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert losers[0].current_state == "active"
    assert losers[0].transition == "check_in"


@pytest.mark.asyncio
async def test_cancel_after_check_in_keeps_actuals(service, clock) -> None:
    shift = await service.schedule(
        PATIENT, ScheduleShiftRequest(caregiver_id="alice-id", date=DAY)
    )
    clock.now = datetime(2025, 7, 2, 7, 30, tzinfo=UTC)
    await service.check_in(shift.id)

    cancelled = await service.cancel(shift.id)

    assert cancelled.state == ShiftState.CANCELLED
    assert cancelled.actual_start == clock.now
    assert cancelled.delay_minutes == 30


@pytest.mark.asyncio
async def test_unknown_shift(service) -> None:
    with pytest.raises(ShiftNotFound) as excinfo:
        await service.confirm("missing")
    assert excinfo.value.shift_id == "missing"


@pytest.mark.asyncio
async def test_store_timeout_becomes_persistence_error(directory, clock) -> None:
    service = ShiftService(
        SlowShiftStore(),
        directory,
        settings=Settings(store_timeout_seconds=0.01),
        now_fn=clock,
    )
    with pytest.raises(PersistenceError):
        await service.list_shifts(PATIENT, DAY, DAY)


@pytest.mark.asyncio
async def test_failed_write_leaves_shift_unchanged(directory, clock) -> None:
    store = UnavailableShiftStore()
    service = ShiftService(store, directory, now_fn=clock)
    shift = await service.schedule(
        PATIENT, ScheduleShiftRequest(caregiver_id="alice-id", date=DAY)
    )

    with pytest.raises(PersistenceError) as excinfo:
        await service.confirm(shift.id)

    assert excinfo.value.transition == "confirm"
    assert (await store.get(shift.id)).state == ShiftState.SCHEDULED


@pytest.mark.asyncio
async def test_day_timeline_and_weekly_hours(service, clock) -> None:
    night = await service.schedule(
        PATIENT,
        ScheduleShiftRequest(caregiver_id="alice-id", date=DAY, shift_type=ShiftType.NIGHT),
    )
    morning = await service.schedule(
        PATIENT,
        ScheduleShiftRequest(caregiver_id="wei-id", date=DAY + timedelta(days=1)),
    )

    placed = await service.day_timeline(PATIENT, DAY + timedelta(days=1))
    assert [(p.shift_id, p.segment.continuation) for p in placed] == [
        (night.id, True),
        (morning.id, False),
    ]

    clock.now = datetime(2025, 7, 2, 23, 0, tzinfo=UTC)
    await service.check_in(night.id)
    clock.advance(timedelta(hours=8, minutes=30))
    await service.check_out(night.id)

    rows = {row.caregiver_id: row for row in await service.weekly_hours(PATIENT, DAY)}
    assert rows["alice-id"].scheduled_hours == 8.0
    assert rows["alice-id"].actual_hours == 8.5
    assert rows["wei-id"].actual_hours == 0.0
    assert rows["wei-id"].variance == -8.0


@pytest.mark.asyncio
async def test_list_shifts_rejects_inverted_range(service) -> None:
    with pytest.raises(ShiftValidationError):
        await service.list_shifts(PATIENT, DAY, DAY - timedelta(days=1))


@pytest.mark.asyncio
async def test_week_view_flags_full24_days(service) -> None:
    monday = date(2025, 6, 30)
    sunday_before = await service.schedule(
        PATIENT,
        ScheduleShiftRequest(
            caregiver_id="alice-id",
            date=monday - timedelta(days=1),
            shift_type=ShiftType.FULL24,
        ),
    )
    thursday = await service.schedule(
        PATIENT,
        ScheduleShiftRequest(
            caregiver_id="wei-id",
            date=monday + timedelta(days=3),
            shift_type=ShiftType.FULL24,
        ),
    )

    columns = await service.week_view(PATIENT, DAY)

    assert [c.date for c in columns] == [monday + timedelta(days=i) for i in range(7)]
    assert columns[0].carried_over_full24 == sunday_before.id
    assert not columns[0].occupied
    assert [p.shift_id for p in columns[0].segments] == [sunday_before.id]
    assert columns[3].occupied
    assert columns[4].carried_over_full24 == thursday.id
    assert [c.occupied for c in columns].count(True) == 1
