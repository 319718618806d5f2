# booking_engine/repositories/base.py
"""
Collaborator interfaces consumed by the scheduling core.

Every call takes business_id explicitly; there is no ambient tenant.
"""

from contextlib import AbstractContextManager
from datetime import date, datetime
from typing import Any, Optional, Protocol

from ..schemas import (
    Booking,
    BookingPolicy,
    BookingStatus,
    Business,
    Service,
    StaffMember,
    TenantCustomer,
)


class BusinessRepository(Protocol):
    def find(self, business_id: int) -> Optional[Business]: ...


class StaffRepository(Protocol):
    def find(self, business_id: int, staff_id: int) -> Optional[StaffMember]: ...

    def list_for_service(self, business_id: int, service_id: int) -> list[StaffMember]: ...

    def lock_for_update(self, business_id: int, staff_id: int) -> None:
        """Serialize writers for one staff member until the transaction ends."""


class BookingRepository(Protocol):
    def find(self, business_id: int, booking_id: int) -> Optional[Booking]: ...

    def find_overlapping(
        self,
        business_id: int,
        staff_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> list[Booking]:
        """Pending/confirmed bookings of staff_id overlapping [start, end)."""

    def count_for_day(
        self,
        business_id: int,
        staff_id: int,
        target_date: date,
        time_zone: str,
        exclude_id: Optional[int] = None,
    ) -> int:
        """Pending/confirmed bookings starting on target_date (local to time_zone)."""

    def create(self, business_id: int, attributes: dict[str, Any]) -> Booking:
        """Raises SlotTakenError when the store rejects a duplicate active slot."""

    def update(self, business_id: int, booking_id: int, changes: dict[str, Any]) -> Booking: ...

    def set_status(
        self,
        business_id: int,
        booking_id: int,
        status: BookingStatus,
        reason: Optional[str] = None,
        manager_override: bool = False,
    ) -> Booking: ...


class ServiceRepository(Protocol):
    def find(self, business_id: int, service_id: int) -> Optional[Service]: ...

    def decrement_spots(self, business_id: int, service_id: int, quantity: int) -> bool:
        """Atomically take spots; False when fewer than quantity remain."""

    def increment_spots(self, business_id: int, service_id: int, quantity: int) -> None: ...


class PolicyRepository(Protocol):
    def find_for_business(self, business_id: int) -> Optional[BookingPolicy]: ...


class CustomerResolver(Protocol):
    def find(self, business_id: int, customer_id: int) -> Optional[TenantCustomer]: ...

    def find_or_create(
        self,
        business_id: int,
        email: str,
        first_name: str,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Optional[TenantCustomer]: ...


class Repositories(Protocol):
    """Bundle handed to BookingManager; transaction() commits or rolls back."""
    businesses: BusinessRepository
    staff: StaffRepository
    bookings: BookingRepository
    services: ServiceRepository
    policies: PolicyRepository
    customers: CustomerResolver

    def transaction(self) -> AbstractContextManager[None]: ...
