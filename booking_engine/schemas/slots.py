# booking_engine/schemas/slots.py
"""
Slot value objects returned by the availability layer.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict


class Slot(BaseModel):
    """Bookable range [start_time, end_time) for one staff member."""
    start_time: datetime
    end_time: datetime

    model_config = ConfigDict(frozen=True)

    @property
    def duration_minutes(self) -> int:
        elapsed = self.end_time.astimezone(timezone.utc) - self.start_time.astimezone(timezone.utc)
        return int(elapsed.total_seconds() // 60)


class StaffSlot(Slot):
    """Slot enriched with the staff member who can take it."""
    staff_member_id: int
    staff_member_name: str = ""
