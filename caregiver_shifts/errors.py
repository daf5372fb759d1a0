"""
Error taxonomy for the shift engine.

Every error is a per-operation failure. Each carries enough context
(shift id, attempted transition, current state) for a caller to explain
what went wrong.
"""

from typing import Any


class ShiftEngineError(Exception):
    def __init__(
        self,
        message: str,
        *,
        shift_id: str | None = None,
        transition: str | None = None,
        current_state: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.shift_id = shift_id
        self.transition = transition
        self.current_state = current_state

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.shift_id is not None:
            detail["shift_id"] = self.shift_id
        if self.transition is not None:
            detail["transition"] = self.transition
        if self.current_state is not None:
            detail["current_state"] = self.current_state
        return detail


class ShiftValidationError(ShiftEngineError, ValueError):
    """Malformed input caught before any store write."""


class OccupancyConflict(ShiftEngineError):
    def __init__(
        self,
        message: str,
        *,
        patient_id: str | None = None,
        day=None,
        blocking_shift_id: str | None = None,
    ) -> None:
        super().__init__(message, shift_id=blocking_shift_id)
        self.patient_id = patient_id
        self.day = day

    def to_dict(self) -> dict[str, Any]:
        detail = super().to_dict()
        if self.patient_id is not None:
            detail["patient_id"] = self.patient_id
        if self.day is not None:
            detail["date"] = self.day.isoformat()
        return detail


class InvalidTransition(ShiftEngineError):
    """Raised for a disallowed state change, including a lost concurrent write."""


class PersistenceError(ShiftEngineError):
    """The store failed; the attempted change has not taken effect."""


class ShiftNotFound(ShiftEngineError):
    pass
