"""Wiring of the booking engine around one database session."""

from typing import Optional

from redis import Redis
from sqlalchemy.orm import Session

from ..config import Settings
from ..repositories import SqlRepositories
from .booking_manager import BookingManager
from .clock import Clock, SystemClock
from .events import LoggingNotificationSink, RedisNotificationSink
from .locks import StaffLockRegistry
from .slots.cache import CacheBackend, MemoryCacheBackend, RedisCacheBackend, SlotCache
from .slots.calculator import AvailabilityCalculator
from .slots.config import BookingConfig, get_booking_config

# Shared by every manager built in this process
_default_locks = StaffLockRegistry()
_default_memory_backend = MemoryCacheBackend()


def booking_config_from(settings: Optional[Settings]) -> BookingConfig:
    if settings is None:
        return get_booking_config()
    return BookingConfig(
        default_time_zone=settings.default_time_zone,
        today_ttl_seconds=settings.slots_today_ttl_seconds,
        future_ttl_seconds=settings.slots_future_ttl_seconds,
        default_interval_minutes=settings.slots_default_interval_minutes,
    )


def build_booking_manager(
    db: Session,
    redis: Optional[Redis] = None,
    clock: Optional[Clock] = None,
    settings: Optional[Settings] = None,
    cache_backend: Optional[CacheBackend] = None,
    locks: Optional[StaffLockRegistry] = None,
) -> BookingManager:
    """
    Build a BookingManager bound to db.

    With a Redis client the slot cache and notifications go through Redis;
    without one, slot lists are cached in process memory and events are
    only logged. The slot cache is reachable as manager.slot_cache.
    """
    clock = clock or SystemClock()
    config = booking_config_from(settings)
    repos = SqlRepositories(db)

    calculator = AvailabilityCalculator(repos.bookings, repos.policies, clock, config=config)

    if cache_backend is None:
        cache_backend = RedisCacheBackend(redis) if redis is not None else _default_memory_backend
    slot_cache = SlotCache(calculator, cache_backend, config=config)

    notifications = RedisNotificationSink(redis) if redis is not None else LoggingNotificationSink()

    return BookingManager(
        repos,
        calculator,
        clock,
        notifications=notifications,
        slot_cache=slot_cache,
        locks=locks or _default_locks,
    )
