# booking_engine/services/slots/cache.py
"""
Slot list cache.

Key format: slots:{business_id}:{staff_id}:{date}:{service_id}:{step}:{hour}
  hour = "h<HH>" (business-local hour) when date is today → key rotates hourly
  hour = "static" for any other date

TTL: config.today_ttl_seconds for today, config.future_ttl_seconds otherwise.
Values are immutable snapshots; a stale read lasts at most one TTL unless
the writer invalidates (BookingManager does after each mutation).
"""

import json
import logging
import time
from datetime import date, datetime
from typing import Iterable, Optional, Protocol

from redis import Redis

from ...schemas import Business, Service, Slot, StaffMember
from .calculator import AvailabilityCalculator
from .config import BookingConfig, get_booking_config

logger = logging.getLogger(__name__)


KEY_PREFIX = "slots"
EMPTY_SENTINEL = "__empty__"


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def delete_prefix(self, prefix: str) -> int: ...


class RedisCacheBackend:
    """Redis strings with SET EX; prefix deletes walk SCAN, never KEYS."""

    def __init__(self, redis: Redis):
        self.redis = redis

    def get(self, key: str) -> Optional[str]:
        value = self.redis.get(key)
        if isinstance(value, bytes):
            return value.decode()
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.redis.set(key, value, ex=ttl_seconds)

    def delete_prefix(self, prefix: str) -> int:
        keys = list(self.redis.scan_iter(match=f"{prefix}*"))
        if not keys:
            return 0
        return self.redis.delete(*keys)


class MemoryCacheBackend:
    """Process-local backend for single-process deployments and tests."""

    def __init__(self, timer=time.monotonic):
        self._timer = timer
        self._data: dict[str, tuple[float, str]] = {}

    def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._timer() >= expires_at:
            del self._data[key]
            return None
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (self._timer() + ttl_seconds, value)

    def delete_prefix(self, prefix: str) -> int:
        keys = [k for k in self._data if k.startswith(prefix)]
        for key in keys:
            del self._data[key]
        return len(keys)


# ── Serialization ────────────────────────────────────────────────────────


def _dump_slots(slots: Iterable[Slot]) -> str:
    payload = [[s.start_time.isoformat(), s.end_time.isoformat()] for s in slots]
    return json.dumps(payload) if payload else EMPTY_SENTINEL


def _load_slots(raw: str) -> tuple[Slot, ...]:
    if raw == EMPTY_SENTINEL:
        return ()
    return tuple(
        Slot(
            start_time=datetime.fromisoformat(start),
            end_time=datetime.fromisoformat(end),
        )
        for start, end in json.loads(raw)
    )


class SlotCache:
    """Memoizes AvailabilityCalculator.compute_slots with a date-dependent TTL."""

    def __init__(
        self,
        calculator: AvailabilityCalculator,
        backend: CacheBackend,
        config: BookingConfig | None = None,
    ):
        self.calculator = calculator
        self.backend = backend
        self.config = config or get_booking_config()

    @staticmethod
    def _prefix(business_id: int, staff_id: int, target_date: date | None = None) -> str:
        prefix = f"{KEY_PREFIX}:{business_id}:{staff_id}:"
        if target_date is not None:
            prefix += f"{target_date.isoformat()}:"
        return prefix

    def cache_key(
        self,
        business: Business,
        staff_id: int,
        target_date: date,
        service_id: int,
        step: Optional[int],
    ) -> tuple[str, int]:
        """Return (key, ttl_seconds) for a slot list."""
        now = self.calculator.clock.now(business.time_zone)
        is_today = target_date == now.date()
        bucket = f"h{now.hour:02d}" if is_today else "static"
        key = (
            f"{self._prefix(business.id, staff_id, target_date)}"
            f"{service_id}:{step if step is not None else 'none'}:{bucket}"
        )
        return key, self.config.ttl_for(is_today)

    def available_slots(
        self,
        business: Business,
        staff: StaffMember,
        target_date: date,
        service: Service,
        interval: Optional[int] = None,
    ) -> tuple[Slot, ...]:
        step = self.calculator.step_for(business, service, interval)
        key, ttl = self.cache_key(business, staff.id, target_date, service.id, step)

        cached = self.backend.get(key)
        if cached is not None:
            logger.debug(f"Slot cache hit: {key}")
            return _load_slots(cached)

        logger.debug(f"Slot cache miss: {key}")
        slots = tuple(
            self.calculator.compute_slots(business, staff, target_date, service, interval)
        )
        self.backend.set(key, _dump_slots(slots), ttl)
        return slots

    def invalidate(
        self,
        business_id: int,
        staff_id: int,
        dates: Iterable[date] | None = None,
    ) -> int:
        """
        Drop cached slot lists for a staff member.

        Args:
            dates: Specific local dates, or None for every cached date.

        Returns:
            Number of deleted keys.
        """
        if dates is None:
            return self.backend.delete_prefix(self._prefix(business_id, staff_id))
        return sum(
            self.backend.delete_prefix(self._prefix(business_id, staff_id, dt))
            for dt in set(dates)
        )
