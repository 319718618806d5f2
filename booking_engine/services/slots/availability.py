# booking_engine/services/slots/availability.py
"""
Aggregated availability built on the per-staff slot cache.

- availability_calendar: one staff member, a range of dates
- fetch_available_slots: every qualified staff member, one date
- available_staff_for_service: who can take a given start time
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from ...repositories.base import StaffRepository
from ...schemas import Business, Service, Slot, StaffMember, StaffSlot
from .cache import SlotCache
from .calculator import AvailabilityCalculator


def dates_between(start_date: date, end_date: date) -> list[date]:
    """Dates in [start_date, end_date]; swapped bounds are reordered."""
    if start_date > end_date:
        start_date, end_date = end_date, start_date

    dates = []
    current = start_date
    while current <= end_date:
        dates.append(current)
        current += timedelta(days=1)
    return dates


def availability_calendar(
    cache: SlotCache,
    business: Business,
    staff: StaffMember,
    service: Service,
    start_date: date,
    end_date: date,
    interval: Optional[int] = None,
) -> dict[str, list[Slot]]:
    """
    Slots per date for one staff member.

    Returns:
        Dict mapping ISO date → slots (empty list for closed/full days).
    """
    return {
        dt.isoformat(): list(cache.available_slots(business, staff, dt, service, interval))
        for dt in dates_between(start_date, end_date)
    }


def fetch_available_slots(
    cache: SlotCache,
    staff_repo: StaffRepository,
    business: Business,
    service: Service,
    target_date: date,
    interval: Optional[int] = None,
) -> list[StaffSlot]:
    """All staff who provide the service, merged and sorted by start time."""
    result: list[StaffSlot] = []
    for staff in staff_repo.list_for_service(business.id, service.id):
        for slot in cache.available_slots(business, staff, target_date, service, interval):
            result.append(StaffSlot(
                start_time=slot.start_time,
                end_time=slot.end_time,
                staff_member_id=staff.id,
                staff_member_name=staff.name,
            ))

    result.sort(key=lambda s: (s.start_time, s.staff_member_id))
    return result


def available_staff_for_service(
    calculator: AvailabilityCalculator,
    staff_repo: StaffRepository,
    business: Business,
    service: Service,
    start_time: datetime,
) -> list[StaffMember]:
    """Staff qualified and free for [start_time, start_time + effective duration)."""
    duration = calculator.effective_duration(business, service)
    if duration is None:
        return []

    end_time = start_time.astimezone(timezone.utc) + timedelta(minutes=duration)
    return [
        staff
        for staff in staff_repo.list_for_service(business.id, service.id)
        if calculator.is_available(business, staff, start_time, end_time, service)
    ]
