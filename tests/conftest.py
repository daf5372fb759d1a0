from datetime import date, time

import pytest

from caregiver_shifts.models import Shift, ShiftState, ShiftType


@pytest.fixture
def make_shift():
    counter = iter(range(1, 1000))

    def _make(**overrides) -> Shift:
        n = next(counter)
        fields = {
            "id": f"shift-{n}",
            "patient_id": "patient-1",
            "caregiver_id": "alice-id",
            "caregiver_name": "Alice Ongwele",
            "date": date(2025, 7, 2),
            "scheduled_start": time(7, 0),
            "scheduled_end": time(15, 0),
            "shift_type": ShiftType.MORNING,
            "state": ShiftState.SCHEDULED,
            "scheduled_hours": 8.0,
        }
        fields.update(overrides)
        return Shift(**fields)

    return _make
