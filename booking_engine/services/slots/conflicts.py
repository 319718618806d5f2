# booking_engine/services/slots/conflicts.py
"""
Booking conflict detection.

Two ranges [a_start, a_end) and [b_start, b_end) conflict iff
    a_start < b_end and b_start < a_end
Touching endpoints do not conflict. Only pending/confirmed bookings of the
same staff member count.
"""

from datetime import datetime
from typing import Iterable, Optional, Sequence

from ...repositories.base import BookingRepository
from ...schemas import Booking


def ranges_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    return a_start < b_end and b_start < a_end


class ConflictDetector:
    def __init__(self, bookings: BookingRepository):
        self.bookings = bookings

    def conflicts(
        self,
        business_id: int,
        staff_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        """True if [start, end) overlaps an active booking of staff_id."""
        overlapping = self.bookings.find_overlapping(
            business_id, staff_id, start, end, exclude_id=exclude_booking_id
        )
        # find_overlapping may return a superset; the overlap rule decides
        return any(self._blocks(b, start, end, exclude_booking_id) for b in overlapping)

    @staticmethod
    def _blocks(
        booking: Booking,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int],
    ) -> bool:
        if exclude_booking_id is not None and booking.id == exclude_booking_id:
            return False
        return booking.is_active and ranges_overlap(start, end, booking.start_time, booking.end_time)

    def free_candidates(
        self,
        candidates: Iterable[tuple[datetime, datetime]],
        bookings: Sequence[Booking],
        exclude_booking_id: Optional[int] = None,
    ) -> list[tuple[datetime, datetime]]:
        """Filter candidate ranges against a pre-loaded set of bookings."""
        return [
            (start, end)
            for start, end in candidates
            if not any(self._blocks(b, start, end, exclude_booking_id) for b in bookings)
        ]
