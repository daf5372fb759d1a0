import logging
from datetime import UTC, date, datetime

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from caregiver_shifts.config import Settings, configure_logging
from caregiver_shifts.database import InMemoryCaregiverDirectory, InMemoryShiftStore
from caregiver_shifts.errors import (
    InvalidTransition,
    OccupancyConflict,
    PersistenceError,
    ShiftEngineError,
    ShiftNotFound,
    ShiftValidationError,
)
from caregiver_shifts.models import (
    CheckOutRequest,
    DayColumn,
    HoursRow,
    PlacedSegment,
    ScheduleShiftRequest,
    Shift,
)
from caregiver_shifts.service import ShiftService

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_BY_ERROR: dict[type[ShiftEngineError], int] = {
    ShiftValidationError: 422,
    OccupancyConflict: 409,
    InvalidTransition: 409,
    ShiftNotFound: 404,
    PersistenceError: 503,
}


def _service(request: Request) -> ShiftService:
    return request.app.state.shift_service


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/patients/{patient_id}/shifts", status_code=201)
async def schedule_shift(
    patient_id: str, body: ScheduleShiftRequest, request: Request
) -> Shift:
    return await _service(request).schedule(patient_id, body)


@router.get("/patients/{patient_id}/shifts")
async def list_shifts(
    patient_id: str, start: date, end: date, request: Request
) -> list[Shift]:
    return await _service(request).list_shifts(patient_id, start, end)


@router.get("/patients/{patient_id}/timeline")
async def day_timeline(
    patient_id: str, day: date, request: Request, include_cancelled: bool = False
) -> list[PlacedSegment]:
    return await _service(request).day_timeline(
        patient_id, day, include_cancelled=include_cancelled
    )


@router.get("/patients/{patient_id}/week")
async def week_view(
    patient_id: str, week_of: date, request: Request
) -> list[DayColumn]:
    return await _service(request).week_view(patient_id, week_of)


@router.get("/patients/{patient_id}/hours")
async def weekly_hours(
    patient_id: str, week_of: date, request: Request
) -> list[HoursRow]:
    return await _service(request).weekly_hours(patient_id, week_of)


@router.get("/shifts/{shift_id}")
async def get_shift(shift_id: str, request: Request) -> Shift:
    return await _service(request).get_shift(shift_id)


@router.post("/shifts/{shift_id}/confirm")
async def confirm_shift(shift_id: str, request: Request) -> Shift:
    return await _service(request).confirm(shift_id)


@router.post("/shifts/{shift_id}/check-in")
async def check_in(shift_id: str, request: Request) -> Shift:
    return await _service(request).check_in(shift_id)


@router.post("/shifts/{shift_id}/check-out")
async def check_out(
    shift_id: str, request: Request, body: CheckOutRequest | None = None
) -> Shift:
    return await _service(request).check_out(shift_id, body)


@router.post("/shifts/{shift_id}/cancel")
async def cancel_shift(shift_id: str, request: Request) -> Shift:
    return await _service(request).cancel(shift_id)


async def handle_engine_error(request: Request, exc: ShiftEngineError) -> JSONResponse:
    status_code = STATUS_BY_ERROR.get(type(exc), 400)
    logger.info(
        "%s %s -> %s: %s", request.method, request.url.path, status_code, exc.message
    )
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings)
    if settings.tz is None:
        logger.warning(
            "CAREGIVER_SHIFTS_TIMEZONE is not set; shift dates and check-in "
            "delays are read in the clock's own timezone"
        )

    app = FastAPI(title="Caregiver Shifts")
    app.state.settings = settings
    app.state.store = InMemoryShiftStore()
    app.state.directory = InMemoryCaregiverDirectory()

    app.state.now_fn = lambda: datetime.now(UTC)
    # resolved per call so tests can swap app.state.now_fn
    app.state.shift_service = ShiftService(
        app.state.store,
        app.state.directory,
        settings=settings,
        now_fn=lambda: app.state.now_fn(),
    )

    app.add_exception_handler(ShiftEngineError, handle_engine_error)
    app.include_router(router)
    return app
