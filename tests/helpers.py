"""Shared fakes and builders for the unit tests."""

import fnmatch
from datetime import date, datetime, time, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from booking_engine.schemas import (
    Booking,
    BookingPolicy,
    BookingStatus,
    Business,
    ScheduleTemplate,
    Service,
    StaffMember,
)

# Monday 2030-01-07 08:00 UTC
NOW = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)
MONDAY = date(2030, 1, 14)
SATURDAY = date(2030, 1, 19)

NINE_TO_FIVE = [{"start": "09:00", "end": "17:00"}]
WEEKDAYS_NINE_TO_FIVE = {
    day: NINE_TO_FIVE for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


def at(day: date, hhmm: str, zone: str = "UTC") -> datetime:
    hour, minute = (int(part) for part in hhmm.split(":"))
    return datetime.combine(day, time(hour, minute), tzinfo=ZoneInfo(zone))


def make_business(id: int = 1, time_zone: str = "UTC") -> Business:
    return Business(id=id, name="Studio", time_zone=time_zone)


def make_service(id: int = 10, duration: int = 60, **kwargs: Any) -> Service:
    kwargs.setdefault("business_id", 1)
    kwargs.setdefault("name", "Haircut")
    return Service(id=id, duration=duration, **kwargs)


def make_staff(
    id: int = 100,
    availability: Optional[dict] = None,
    service_ids=(10,),
    active: bool = True,
    name: str = "Alex",
) -> StaffMember:
    return StaffMember(
        id=id,
        business_id=1,
        name=name,
        active=active,
        service_ids=frozenset(service_ids),
        schedule=ScheduleTemplate.from_availability(
            WEEKDAYS_NINE_TO_FIVE if availability is None else availability
        ),
    )


def make_booking(
    id: int,
    start: datetime,
    end: datetime,
    staff_id: int = 100,
    status: BookingStatus = BookingStatus.CONFIRMED,
) -> Booking:
    return Booking(
        id=id,
        business_id=1,
        staff_member_id=staff_id,
        service_id=10,
        start_time=start,
        end_time=end,
        status=status,
    )


class FakeBookingRepository:
    """Read side of BookingRepository over a plain list."""

    def __init__(self, bookings=()):
        self.bookings = list(bookings)
        self.overlap_calls = 0

    def _active(self, business_id, staff_id, exclude_id):
        return [
            b for b in self.bookings
            if b.business_id == business_id
            and b.staff_member_id == staff_id
            and b.is_active
            and b.id != exclude_id
        ]

    def find_overlapping(self, business_id, staff_id, start, end, exclude_id=None):
        self.overlap_calls += 1
        return [
            b for b in self._active(business_id, staff_id, exclude_id)
            if b.start_time < end and b.end_time > start
        ]

    def count_for_day(self, business_id, staff_id, target_date, time_zone, exclude_id=None):
        zone = ZoneInfo(time_zone)
        return sum(
            1 for b in self._active(business_id, staff_id, exclude_id)
            if b.start_time.astimezone(zone).date() == target_date
        )


class FakePolicyRepository:
    def __init__(self, policy: Optional[BookingPolicy] = None):
        self.policy = policy

    def find_for_business(self, business_id):
        return self.policy


class FakeStaffRepository:
    def __init__(self, staff=()):
        self.staff = list(staff)

    def find(self, business_id, staff_id):
        return next((s for s in self.staff if s.id == staff_id), None)

    def list_for_service(self, business_id, service_id):
        return [s for s in self.staff if s.active and service_id in s.service_ids]

    def lock_for_update(self, business_id, staff_id):
        pass


class RecordingSink:
    def __init__(self):
        self.events: list[tuple[str, int]] = []

    def notify(self, event, booking):
        self.events.append((event, booking.id))

    @property
    def names(self) -> list[str]:
        return [event for event, _ in self.events]


class ExplodingSink:
    def notify(self, event, booking):
        raise RuntimeError("queue unavailable")


class FakeRedis:
    """The handful of Redis commands the engine issues."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.lists: dict[str, list[str]] = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex

    def scan_iter(self, match="*"):
        return iter([k for k in list(self.store) if fnmatch.fnmatchcase(k, match)])

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def rpush(self, name, value):
        self.lists.setdefault(name, []).append(value)
        return len(self.lists[name])


class BrokenRedis(FakeRedis):
    def rpush(self, name, value):
        raise ConnectionError("redis down")
