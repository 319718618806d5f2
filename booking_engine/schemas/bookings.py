# booking_engine/schemas/bookings.py

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..errors import BookingErrors


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_active(self) -> bool:
        """Active bookings occupy the staff member's time."""
        return self in ACTIVE_STATUSES


ACTIVE_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return current == target or target in TRANSITIONS[current]


def _as_utc_aware(value: datetime) -> datetime:
    # The store keeps naive UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Booking(BaseModel):
    id: int
    business_id: int
    staff_member_id: int
    service_id: int
    tenant_customer_id: Optional[int] = None

    start_time: datetime
    end_time: datetime

    status: BookingStatus = BookingStatus.PENDING
    quantity: int = 1

    amount: Optional[float] = None
    original_amount: Optional[float] = None
    discount_amount: float = 0.0

    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    manager_override: bool = False

    errors: BookingErrors = Field(default_factory=BookingErrors, exclude=True)

    model_config = ConfigDict(
        from_attributes=True,
        arbitrary_types_allowed=True,
        validate_assignment=False,
    )

    @field_validator("start_time", "end_time")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        return _as_utc_aware(value)

    @field_validator("errors", mode="before")
    @classmethod
    def fresh_errors(cls, value):
        # ORM rows have no error collection
        return value if isinstance(value, BookingErrors) else BookingErrors()

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def duration_minutes(self) -> int:
        elapsed = self.end_time.astimezone(timezone.utc) - self.start_time.astimezone(timezone.utc)
        return int(elapsed.total_seconds() // 60)


class BookingParams(BaseModel):
    """Caller input for BookingManager.create_booking."""
    staff_member_id: Optional[int] = None
    service_id: Optional[int] = None

    tenant_customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None

    start_time: Optional[datetime] = None
    date: Optional[str] = None  # "YYYY-MM-DD" in the business time zone
    time: Optional[str] = None  # "HH:MM" or "HHMM"

    quantity: int = 1
    notes: Optional[str] = None
    send_confirmation: bool = False

    model_config = {"extra": "ignore"}


class BookingChanges(BaseModel):
    """Caller input for BookingManager.update_booking; only set fields apply."""
    staff_member_id: Optional[int] = None
    service_id: Optional[int] = None

    start_time: Optional[datetime] = None
    date: Optional[str] = None
    time: Optional[str] = None

    status: Optional[BookingStatus] = None
    quantity: Optional[int] = None
    notes: Optional[str] = None

    model_config = {"extra": "ignore"}
