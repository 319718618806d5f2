"""
Error taxonomy for the scheduling engine.

Expected domain failures (validation, availability, policy, capacity) are
collected in BookingErrors and returned as values. Exceptions are reserved
for store-level failures and malformed data rejected at the boundary.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator


BASE = "base"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AVAILABILITY = "availability"
    POLICY = "policy"
    CAPACITY = "capacity"


@dataclass(frozen=True)
class ErrorDetail:
    field: str
    message: str
    kind: ErrorKind = ErrorKind.VALIDATION

    @property
    def full_message(self) -> str:
        if self.field == BASE:
            return self.message
        label = self.field.replace("_id", "").replace("_", " ").capitalize()
        return f"{label} {self.message}"


class BookingErrors:
    """Ordered, field-keyed error collection attached to a booking flow."""

    def __init__(self) -> None:
        self._details: list[ErrorDetail] = []

    def add(
        self,
        field: str,
        message: str,
        kind: ErrorKind = ErrorKind.VALIDATION,
    ) -> ErrorDetail:
        detail = ErrorDetail(field=field, message=message, kind=kind)
        self._details.append(detail)
        return detail

    def on(self, field: str) -> list[str]:
        return [d.message for d in self._details if d.field == field]

    def extend(self, other: "BookingErrors") -> None:
        self._details.extend(other)

    def clear(self) -> None:
        self._details.clear()

    @property
    def full_messages(self) -> list[str]:
        return [d.full_message for d in self._details]

    @property
    def kinds(self) -> set[ErrorKind]:
        return {d.kind for d in self._details}

    def __iter__(self) -> Iterator[ErrorDetail]:
        return iter(list(self._details))

    def __len__(self) -> int:
        return len(self._details)

    def __bool__(self) -> bool:
        return bool(self._details)

    def __repr__(self) -> str:
        return f"BookingErrors({self.full_messages!r})"


class BookingEngineError(Exception):
    """Base class for exceptions raised by the engine."""


class SlotTakenError(BookingEngineError):
    """The store rejected a booking because its slot is already occupied."""

    def __init__(self, staff_member_id: int, start_time) -> None:
        super().__init__(
            f"Staff member {staff_member_id} already has an active booking at {start_time}"
        )
        self.staff_member_id = staff_member_id
        self.start_time = start_time


class InvalidScheduleError(BookingEngineError, ValueError):
    """Schedule or policy data could not be parsed."""


class BookingRejected(BookingEngineError):
    """
    Raised inside a write transaction to roll it back; carries the
    user-facing errors the manager returns to its caller.
    """

    def __init__(self, errors: BookingErrors) -> None:
        super().__init__("; ".join(errors.full_messages))
        self.errors = errors
