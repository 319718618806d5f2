# booking_engine/services/slots/calculator.py
"""
Per-staff slot calculation.

Produces the ordered list of bookable [start, end) ranges for one staff
member, one service, one local date.

Contains:
✓ weekly schedule + date exceptions of the staff member
✓ booking policy (duration clamp, fixed grid, advance windows, daily cap)
✓ "now" in the business time zone (past / min_advance filtering)
✓ existing pending/confirmed bookings (conflict filtering)

Does NOT contain:
✗ Caching (cache.py)
✗ Multi-staff aggregation (availability.py)
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from ...repositories.base import BookingRepository, PolicyRepository
from ...schemas import BookingPolicy, Business, Service, Slot, StaffMember, TimeWindow
from ..clock import Clock
from .config import BookingConfig, get_booking_config
from .conflicts import ConflictDetector

logger = logging.getLogger(__name__)


class Unavailable(str, Enum):
    """Why a single-slot check failed."""
    INACTIVE_STAFF = "inactive_staff"
    UNQUALIFIED = "unqualified"
    INVALID_RANGE = "invalid_range"
    DURATION_POLICY = "duration_policy"
    OUTSIDE_SCHEDULE = "outside_schedule"
    TOO_SOON = "too_soon"
    TOO_FAR_AHEAD = "too_far_ahead"
    DAILY_LIMIT = "daily_limit"
    CONFLICT = "conflict"

    @property
    def is_policy(self) -> bool:
        return self in (
            Unavailable.DURATION_POLICY,
            Unavailable.TOO_SOON,
            Unavailable.TOO_FAR_AHEAD,
            Unavailable.DAILY_LIMIT,
        )


class AvailabilityCalculator:
    def __init__(
        self,
        bookings: BookingRepository,
        policies: PolicyRepository,
        clock: Clock,
        conflicts: ConflictDetector | None = None,
        config: BookingConfig | None = None,
    ):
        self.bookings = bookings
        self.policies = policies
        self.clock = clock
        self.conflicts = conflicts or ConflictDetector(bookings)
        self.config = config or get_booking_config()

    def policy_for(self, business_id: int) -> BookingPolicy:
        return self.policies.find_for_business(business_id) or BookingPolicy.unrestricted()

    def effective_duration(self, business: Business, service: Service) -> Optional[int]:
        return self.policy_for(business.id).effective_duration(service.duration)

    def step_for(
        self,
        business: Business,
        service: Service,
        interval: Optional[int] = None,
    ) -> Optional[int]:
        """Start-time step for this service; None when it cannot be offered."""
        policy = self.policy_for(business.id)
        duration = policy.effective_duration(service.duration)
        if duration is None:
            return None
        return policy.step_for(duration, interval or self.config.default_interval_minutes)

    # ── Slot list ────────────────────────────────────────────────────────

    def compute_slots(
        self,
        business: Business,
        staff: StaffMember | None,
        target_date: date,
        service: Service,
        interval: Optional[int] = None,
    ) -> list[Slot]:
        """
        Calculate bookable slots for a staff member on a local date.

        Returns:
            Slots in chronological order. Empty list = nothing bookable.
        """
        # Step 1: Staff must be active and qualified
        if staff is None or not staff.active:
            return []
        if not staff.can_perform(service):
            return []

        # Step 2: Exceptions override the weekly template ([] = closed)
        windows = staff.schedule.windows_for(target_date)
        if not windows:
            return []

        policy = self.policy_for(business.id)
        now = self.clock.now(business.time_zone)

        # Step 3: Advance-booking horizon
        last_date = policy.last_bookable_date(now.date())
        if last_date is not None and target_date > last_date:
            return []

        # Step 4: Effective duration (a service above max can't be offered)
        duration = policy.effective_duration(service.duration)
        if duration is None:
            logger.debug(
                f"Service {service.id} ({service.duration} min) exceeds max duration "
                f"{policy.max_duration_mins} for business {business.id}"
            )
            return []

        # Step 5: Step size only controls start-time density
        step = policy.step_for(duration, interval or self.config.default_interval_minutes)

        # Step 6: Daily capacity, checked once for the whole day
        if policy.max_daily_bookings is not None:
            booked = self.bookings.count_for_day(
                business.id, staff.id, target_date, business.time_zone
            )
            if policy.daily_limit_reached(booked):
                return []

        # Step 7: Generate candidates and drop those before the earliest start
        earliest = policy.earliest_start(now)
        candidates = [
            (start, end)
            for start, end in _window_candidates(target_date, windows, duration, step, business.zone)
            if start >= earliest
        ]
        if not candidates:
            return []

        # Step 8: One read for the day's bookings, then in-memory conflict checks
        day_bookings = self.bookings.find_overlapping(
            business.id, staff.id, candidates[0][0], candidates[-1][1]
        )
        free = self.conflicts.free_candidates(candidates, day_bookings)

        zone = business.zone
        return [
            Slot(start_time=start.astimezone(zone), end_time=end.astimezone(zone))
            for start, end in free
        ]

    # ── Single slot ──────────────────────────────────────────────────────

    def check_slot(
        self,
        business: Business,
        staff: StaffMember | None,
        start_time: datetime,
        end_time: datetime,
        service: Service | None = None,
        exclude_booking_id: Optional[int] = None,
    ) -> Optional[Unavailable]:
        """Return the first reason [start_time, end_time) can't be booked, or None."""
        if staff is None or not staff.active:
            return Unavailable.INACTIVE_STAFF
        if service is not None and not staff.can_perform(service):
            return Unavailable.UNQUALIFIED
        if end_time <= start_time:
            return Unavailable.INVALID_RANGE

        policy = self.policy_for(business.id)
        elapsed = end_time.astimezone(timezone.utc) - start_time.astimezone(timezone.utc)
        minutes = elapsed.total_seconds() / 60
        if not policy.duration_allowed(minutes):
            return Unavailable.DURATION_POLICY

        zone = business.zone
        local_start = start_time.astimezone(zone)
        local_end = end_time.astimezone(zone)
        if not _fits_windows(staff.schedule.windows_for(local_start.date()), local_start, local_end):
            return Unavailable.OUTSIDE_SCHEDULE

        now = self.clock.now(business.time_zone)
        if start_time < policy.earliest_start(now):
            return Unavailable.TOO_SOON
        last_date = policy.last_bookable_date(now.date())
        if last_date is not None and local_start.date() > last_date:
            return Unavailable.TOO_FAR_AHEAD

        if policy.max_daily_bookings is not None:
            booked = self.bookings.count_for_day(
                business.id,
                staff.id,
                local_start.date(),
                business.time_zone,
                exclude_id=exclude_booking_id,
            )
            if policy.daily_limit_reached(booked):
                return Unavailable.DAILY_LIMIT

        if self.conflicts.conflicts(
            business.id, staff.id, start_time, end_time, exclude_booking_id=exclude_booking_id
        ):
            return Unavailable.CONFLICT

        return None

    def is_available(
        self,
        business: Business,
        staff: StaffMember | None,
        start_time: datetime,
        end_time: datetime,
        service: Service | None = None,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        return self.check_slot(
            business, staff, start_time, end_time, service, exclude_booking_id
        ) is None


# ── Helpers ──────────────────────────────────────────────────────────────


def _window_candidates(
    target_date: date,
    windows: tuple[TimeWindow, ...],
    duration: int,
    step: int,
    zone: ZoneInfo,
) -> Iterator[tuple[datetime, datetime]]:
    """
    Yield UTC (start, end) per window; exact fit at the window end is allowed.
    Windows are sorted and disjoint, so output is chronological.

    Lengths are elapsed time. Wall-clock starts that fall in a DST gap are
    skipped, as are slots whose real end runs past the window.
    """
    length = timedelta(minutes=duration)
    for window in windows:
        t = window.start_minutes
        while t + duration <= window.end_minutes:
            wall = datetime.combine(target_date, time(t // 60, t % 60))
            t += step
            start = wall.replace(tzinfo=zone).astimezone(timezone.utc)
            local_start = start.astimezone(zone)
            if local_start.replace(tzinfo=None) != wall:
                continue
            end = start + length
            if not _fits_windows((window,), local_start, end.astimezone(zone)):
                continue
            yield start, end


def _fits_windows(
    windows: tuple[TimeWindow, ...],
    local_start: datetime,
    local_end: datetime,
) -> bool:
    """True if the local range lies entirely inside one window of its day."""
    if local_end.date() != local_start.date():
        return False
    start, end = local_start.time(), local_end.time()
    return any(w.start <= start and end <= w.end for w in windows)
