# booking_engine/services/slots/config.py
"""
Booking configuration for slots calculation.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from ...config import settings


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for the slots system.

    Attributes:
        default_time_zone: Zone used when a business has none configured
        today_ttl_seconds: Cache TTL for same-day slot lists (short)
        future_ttl_seconds: Cache TTL for future-day slot lists
        default_interval_minutes: Start-time step when the caller passes none
                                  (None = step by the effective duration)
    """
    default_time_zone: str = "UTC"
    today_ttl_seconds: int = 300  # 5 minutes
    future_ttl_seconds: int = 900  # 15 minutes
    default_interval_minutes: Optional[int] = None

    def __post_init__(self):
        """Validate configuration."""
        if self.today_ttl_seconds <= 0 or self.future_ttl_seconds <= 0:
            raise ValueError("cache TTLs must be positive")
        if self.today_ttl_seconds > self.future_ttl_seconds:
            raise ValueError(
                f"today_ttl_seconds ({self.today_ttl_seconds}) must not exceed "
                f"future_ttl_seconds ({self.future_ttl_seconds})"
            )
        if self.default_interval_minutes is not None and self.default_interval_minutes <= 0:
            raise ValueError(
                f"default_interval_minutes must be positive, got {self.default_interval_minutes}"
            )

    def ttl_for(self, is_today: bool) -> int:
        return self.today_ttl_seconds if is_today else self.future_ttl_seconds


@lru_cache
def get_booking_config() -> BookingConfig:
    """Get booking configuration (singleton, read from settings)."""
    return BookingConfig(
        default_time_zone=settings.default_time_zone,
        today_ttl_seconds=settings.slots_today_ttl_seconds,
        future_ttl_seconds=settings.slots_future_ttl_seconds,
        default_interval_minutes=settings.slots_default_interval_minutes,
    )


# ── Time helpers ─────────────────────────────────────────────────────────


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight."""
    hour_str, minute_str = value.strip().split(":")
    hour, minute = int(hour_str), int(minute_str)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"time out of range: {value!r}")
    return hour * 60 + minute


def minutes_to_time_str(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
