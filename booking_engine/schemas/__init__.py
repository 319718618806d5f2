from .bookings import (
    ACTIVE_STATUSES,
    Booking,
    BookingChanges,
    BookingParams,
    BookingStatus,
    can_transition,
)
from .business import Business
from .customers import TenantCustomer
from .policy import BookingPolicy
from .schedule import ScheduleTemplate, TimeWindow
from .services import Service
from .slots import Slot, StaffSlot
from .staff import StaffMember

__all__ = [
    "ACTIVE_STATUSES",
    "Booking",
    "BookingChanges",
    "BookingParams",
    "BookingPolicy",
    "BookingStatus",
    "Business",
    "ScheduleTemplate",
    "Service",
    "Slot",
    "StaffMember",
    "StaffSlot",
    "TenantCustomer",
    "TimeWindow",
    "can_transition",
]
