import json
import logging
import threading
import time
from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import Session

from booking_engine.config import BASE_DIR, Settings
from booking_engine.database import get_db
from booking_engine.logging_config import setup_logging
from booking_engine.services.clock import FrozenClock, SystemClock
from booking_engine.services.events import (
    P2P_QUEUE,
    LoggingNotificationSink,
    RedisNotificationSink,
    booking_payload,
)
from booking_engine.services.factory import booking_config_from, build_booking_manager
from booking_engine.services.locks import StaffLockRegistry
from booking_engine.services.slots.cache import MemoryCacheBackend, RedisCacheBackend
from booking_engine.services.slots.config import (
    BookingConfig,
    minutes_to_time_str,
    time_str_to_minutes,
)
from helpers import MONDAY, NOW, BrokenRedis, FakeRedis, at, make_booking


# ── Clock ────────────────────────────────────────────────────────────────


def test_frozen_clock_reports_in_requested_zone():
    clock = FrozenClock(NOW)

    assert clock.now("America/New_York").hour == 3
    assert clock.now() == NOW


def test_frozen_clock_advances():
    clock = FrozenClock(NOW)
    clock.advance(minutes=90)

    assert clock.now() == datetime(2030, 1, 7, 9, 30, tzinfo=timezone.utc)


def test_frozen_clock_needs_aware_instant():
    with pytest.raises(ValueError):
        FrozenClock(datetime(2030, 1, 7, 8, 0))


def test_system_clock_is_aware():
    assert SystemClock().now("Europe/Berlin").tzinfo is not None


# ── Locks ────────────────────────────────────────────────────────────────


def test_same_staff_shares_one_lock():
    registry = StaffLockRegistry()

    assert registry.lock_for(1, 100) is registry.lock_for(1, 100)
    assert registry.lock_for(1, 100) is not registry.lock_for(2, 100)


def test_hold_serializes_writers_for_one_staff_member():
    registry = StaffLockRegistry()
    active, peak = [0], [0]
    guard = threading.Lock()

    def writer():
        with registry.hold(1, 100):
            with guard:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
            time.sleep(0.01)
            with guard:
                active[0] -= 1

    threads = [threading.Thread(target=writer) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert peak[0] == 1


def test_hold_accepts_duplicate_ids_and_releases():
    registry = StaffLockRegistry()

    with registry.hold(1, 200, 100, 200):
        assert registry.lock_for(1, 100).locked()
        assert registry.lock_for(1, 200).locked()

    assert not registry.lock_for(1, 100).locked()
    assert not registry.lock_for(1, 200).locked()


# ── Events ───────────────────────────────────────────────────────────────


def test_booking_payload_shape():
    booking = make_booking(7, at(MONDAY, "10:00"), at(MONDAY, "11:00"))

    payload = booking_payload("booking_confirmation", booking)

    assert payload["type"] == "booking_confirmation"
    assert payload["booking_id"] == 7
    assert payload["status"] == "confirmed"
    assert payload["start_time"] == "2030-01-14T10:00:00+00:00"
    assert isinstance(payload["ts"], int)


def test_redis_sink_pushes_json_to_queue():
    redis = FakeRedis()

    RedisNotificationSink(redis).notify("booking_cancellation", make_booking(7, at(MONDAY, "10:00"), at(MONDAY, "11:00")))

    (raw,) = redis.lists[P2P_QUEUE]
    assert json.loads(raw)["type"] == "booking_cancellation"


def test_redis_sink_swallows_delivery_errors(caplog):
    with caplog.at_level(logging.ERROR):
        RedisNotificationSink(BrokenRedis()).notify(
            "booking_confirmation", make_booking(7, at(MONDAY, "10:00"), at(MONDAY, "11:00"))
        )

    assert "Failed to emit event booking_confirmation" in caplog.text


def test_logging_sink_only_logs(caplog):
    with caplog.at_level(logging.INFO):
        LoggingNotificationSink().notify("booking_confirmation", make_booking(7, at(MONDAY, "10:00"), at(MONDAY, "11:00")))

    assert "booking_confirmation" in caplog.text


# ── Config ───────────────────────────────────────────────────────────────


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("SLOTS_TODAY_TTL_SECONDS", "120")
    monkeypatch.setenv("DEFAULT_TIME_ZONE", "Europe/Berlin")

    settings = Settings()

    assert settings.slots_today_ttl_seconds == 120
    assert booking_config_from(settings).default_time_zone == "Europe/Berlin"


def test_relative_sqlite_url_is_anchored():
    url = Settings(database_url="sqlite:///./local.db").resolved_database_url

    assert url == f"sqlite:///{BASE_DIR / 'local.db'}"


def test_booking_config_validation():
    assert BookingConfig().ttl_for(True) == 300
    assert BookingConfig().ttl_for(False) == 900

    with pytest.raises(ValueError):
        BookingConfig(today_ttl_seconds=0)
    with pytest.raises(ValueError):
        BookingConfig(today_ttl_seconds=1000, future_ttl_seconds=900)
    with pytest.raises(ValueError):
        BookingConfig(default_interval_minutes=0)


def test_time_string_helpers():
    assert time_str_to_minutes("09:30") == 570
    assert minutes_to_time_str(570) == "09:30"

    with pytest.raises(ValueError):
        time_str_to_minutes("24:00")


def test_setup_logging_quiets_sqlalchemy():
    setup_logging("DEBUG")

    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


# ── Factory ──────────────────────────────────────────────────────────────


def test_factory_without_redis_uses_process_local_pieces(db):
    manager = build_booking_manager(db, clock=FrozenClock(NOW))

    assert isinstance(manager.notifications, LoggingNotificationSink)
    assert isinstance(manager.slot_cache.backend, MemoryCacheBackend)
    assert manager.calculator.clock is manager.clock


def test_factory_with_redis_uses_redis_pieces(db):
    redis = FakeRedis()

    manager = build_booking_manager(db, redis=redis, settings=Settings(slots_future_ttl_seconds=600))

    assert isinstance(manager.notifications, RedisNotificationSink)
    assert isinstance(manager.slot_cache.backend, RedisCacheBackend)
    assert manager.slot_cache.config.future_ttl_seconds == 600


def test_get_db_yields_and_closes_a_session():
    gen = get_db()
    session = next(gen)

    assert isinstance(session, Session)
    gen.close()
