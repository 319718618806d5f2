# booking_engine/schemas/policy.py

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BookingPolicy(BaseModel):
    """
    Business-wide booking constraints. A business without a policy row is
    treated as BookingPolicy.unrestricted().
    """
    business_id: Optional[int] = None

    min_duration_mins: Optional[int] = Field(default=None, ge=1)
    max_duration_mins: Optional[int] = Field(default=None, ge=1)
    max_daily_bookings: Optional[int] = Field(default=None, ge=0)
    cancellation_window_mins: int = Field(default=0, ge=0)
    min_advance_mins: Optional[int] = Field(default=None, ge=0)
    max_advance_days: Optional[int] = Field(default=None, ge=0)

    use_fixed_intervals: bool = False
    interval_mins: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @model_validator(mode="after")
    def check_consistency(self) -> "BookingPolicy":
        if (
            self.min_duration_mins is not None
            and self.max_duration_mins is not None
            and self.min_duration_mins > self.max_duration_mins
        ):
            raise ValueError(
                f"min_duration_mins ({self.min_duration_mins}) exceeds "
                f"max_duration_mins ({self.max_duration_mins})"
            )
        if self.use_fixed_intervals and not self.interval_mins:
            raise ValueError("interval_mins is required when use_fixed_intervals is enabled")
        return self

    @classmethod
    def unrestricted(cls) -> "BookingPolicy":
        return cls()

    # ── Duration ─────────────────────────────────────────────────────────

    def effective_duration(self, service_duration: int) -> Optional[int]:
        """
        Service duration clamped up to min_duration_mins.

        Returns None when the result is longer than max_duration_mins:
        a fixed-length service above the maximum cannot be offered at all.
        """
        duration = service_duration
        if self.min_duration_mins is not None and duration < self.min_duration_mins:
            duration = self.min_duration_mins
        if self.max_duration_mins is not None and duration > self.max_duration_mins:
            return None
        return duration

    def duration_allowed(self, minutes: float) -> bool:
        if self.min_duration_mins is not None and minutes < self.min_duration_mins:
            return False
        if self.max_duration_mins is not None and minutes > self.max_duration_mins:
            return False
        return True

    def step_for(self, effective_duration: int, interval_hint: Optional[int] = None) -> int:
        """Start-time step: fixed grid wins, then the caller's hint, then the duration."""
        if self.use_fixed_intervals:
            return self.interval_mins
        if interval_hint:
            return interval_hint
        return effective_duration

    # ── Windows ──────────────────────────────────────────────────────────

    def earliest_start(self, now: datetime) -> datetime:
        """Earliest bookable start time; never earlier than now."""
        if self.min_advance_mins:
            return now.astimezone(timezone.utc) + timedelta(minutes=self.min_advance_mins)
        return now

    def last_bookable_date(self, today: date) -> Optional[date]:
        if self.max_advance_days is None:
            return None
        return today + timedelta(days=self.max_advance_days)

    def cancellation_deadline(self, start_time: datetime) -> Optional[datetime]:
        """Latest moment a booking may still be cancelled; None = no window."""
        if not self.cancellation_window_mins:
            return None
        return start_time.astimezone(timezone.utc) - timedelta(minutes=self.cancellation_window_mins)

    def daily_limit_reached(self, existing_count: int) -> bool:
        return self.max_daily_bookings is not None and existing_count >= self.max_daily_bookings
