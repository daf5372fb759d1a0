from collections.abc import Iterator, Mapping, MutableMapping
from datetime import date
from typing import Any, Generic, Protocol, TypeVar

from caregiver_shifts.errors import ShiftNotFound, ShiftValidationError
from caregiver_shifts.models import Caregiver, Shift, ShiftState

K = TypeVar("K")
V = TypeVar("V")


class ShiftStore(Protocol):
    async def get(self, shift_id: str) -> Shift: ...

    async def query(
        self, patient_id: str, start: date, end: date
    ) -> list[Shift]: ...

    async def create(self, shift: Shift) -> Shift: ...

    async def conditional_update(
        self, shift_id: str, expected_state: ShiftState, patch: Mapping[str, Any]
    ) -> Shift | None: ...


class CaregiverDirectory(Protocol):
    async def resolve(self, caregiver_id: str) -> Caregiver | None: ...


class InMemoryKeyValueDatabase(Generic[K, V]):
    """
    Simple in-memory key/value database.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}

    def put(self, key: K, value: V) -> None:
        self._store[key] = value

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def all(self) -> list[V]:
        return list(self._store.values())

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __iter__(self) -> Iterator[V]:
        return iter(self._store.values())

    def __len__(self) -> int:
        return len(self._store)


class InMemoryShiftStore:
    """
    Shift store over the key/value database. Shifts are never deleted;
    cancellation is a state.
    """

    def __init__(self) -> None:
        self.db: InMemoryKeyValueDatabase[str, Shift] = InMemoryKeyValueDatabase()

    async def get(self, shift_id: str) -> Shift:
        shift = self.db.get(shift_id)
        if shift is None:
            raise ShiftNotFound(f"Shift {shift_id} not found", shift_id=shift_id)
        return shift

    async def query(self, patient_id: str, start: date, end: date) -> list[Shift]:
        return sorted(
            (
                s
                for s in self.db
                if s.patient_id == patient_id and start <= s.date <= end
            ),
            key=lambda s: (s.date, s.scheduled_start),
        )

    async def create(self, shift: Shift) -> Shift:
        if shift.id in self.db:
            raise ShiftValidationError(
                f"Shift {shift.id} already exists", shift_id=shift.id
            )
        self.db.put(shift.id, shift)
        return shift

    async def conditional_update(
        self, shift_id: str, expected_state: ShiftState, patch: Mapping[str, Any]
    ) -> Shift | None:
        """
        Apply ``patch`` only if the stored shift is still in ``expected_state``.
        Returns the updated shift, or None when another writer got there first.
        """
        # no await between the read and the write
        current = self.db.get(shift_id)
        if current is None:
            raise ShiftNotFound(f"Shift {shift_id} not found", shift_id=shift_id)
        if current.state != expected_state:
            return None
        updated = current.model_copy(update=dict(patch))
        self.db.put(shift_id, updated)
        return updated


class InMemoryCaregiverDirectory:
    def __init__(self, caregivers: list[Caregiver] | None = None) -> None:
        self.db: InMemoryKeyValueDatabase[str, Caregiver] = InMemoryKeyValueDatabase()
        for caregiver in caregivers or []:
            self.add(caregiver)

    def add(self, caregiver: Caregiver) -> None:
        self.db.put(caregiver.id, caregiver)

    async def resolve(self, caregiver_id: str) -> Caregiver | None:
        return self.db.get(caregiver_id)
