from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from booking_engine.schemas import BookingPolicy


def test_unrestricted_policy_keeps_service_duration():
    policy = BookingPolicy.unrestricted()

    assert policy.effective_duration(45) == 45
    assert policy.step_for(45) == 45
    assert policy.cancellation_deadline(datetime(2030, 1, 14, 14, 0, tzinfo=timezone.utc)) is None
    assert policy.last_bookable_date(date(2030, 1, 7)) is None
    assert not policy.daily_limit_reached(100)


def test_short_service_is_clamped_to_min_duration():
    policy = BookingPolicy(min_duration_mins=45)

    assert policy.effective_duration(30) == 45
    assert policy.effective_duration(60) == 60


def test_service_above_max_duration_cannot_be_offered():
    policy = BookingPolicy(max_duration_mins=60)

    assert policy.effective_duration(60) == 60
    assert policy.effective_duration(61) is None


def test_clamped_duration_above_max_is_rejected():
    policy = BookingPolicy(min_duration_mins=30, max_duration_mins=30)

    assert policy.effective_duration(20) == 30
    assert policy.effective_duration(31) is None


def test_step_prefers_fixed_grid_then_hint_then_duration():
    assert BookingPolicy(use_fixed_intervals=True, interval_mins=30).step_for(32, 15) == 30
    assert BookingPolicy().step_for(32, 15) == 15
    assert BookingPolicy().step_for(32) == 32


def test_fixed_intervals_require_interval():
    with pytest.raises(ValidationError):
        BookingPolicy(use_fixed_intervals=True)


def test_min_duration_above_max_is_rejected():
    with pytest.raises(ValidationError):
        BookingPolicy(min_duration_mins=90, max_duration_mins=60)


def test_negative_values_are_rejected():
    with pytest.raises(ValidationError):
        BookingPolicy(cancellation_window_mins=-5)


def test_advance_windows():
    policy = BookingPolicy(min_advance_mins=30, max_advance_days=7)
    now = datetime(2030, 1, 7, 11, 0, tzinfo=timezone.utc)

    assert policy.earliest_start(now) == now + timedelta(minutes=30)
    assert policy.last_bookable_date(now.date()) == date(2030, 1, 14)


def test_cancellation_deadline():
    policy = BookingPolicy(cancellation_window_mins=60)
    start = datetime(2030, 1, 14, 14, 0, tzinfo=timezone.utc)

    assert policy.cancellation_deadline(start) == datetime(2030, 1, 14, 13, 0, tzinfo=timezone.utc)


def test_daily_limit():
    policy = BookingPolicy(max_daily_bookings=2)

    assert not policy.daily_limit_reached(1)
    assert policy.daily_limit_reached(2)


def test_zero_daily_limit_blocks_everything():
    assert BookingPolicy(max_daily_bookings=0).daily_limit_reached(0)
