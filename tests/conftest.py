import json
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker

from booking_engine.database import init_db, make_engine
from booking_engine.models.generated import (
    BookingPolicies,
    Businesses,
    Services,
    StaffMembers,
)
from booking_engine.schemas import Business
from booking_engine.services.clock import FrozenClock
from booking_engine.services.factory import build_booking_manager
from booking_engine.services.locks import StaffLockRegistry
from booking_engine.services.slots.cache import MemoryCacheBackend
from helpers import NOW, WEEKDAYS_NINE_TO_FIVE, RecordingSink


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def seeded(db):
    """One business, one staff member (Mon–Fri 09–17), a standard and an experience service."""
    business = Businesses(name="Studio", time_zone="UTC")
    db.add(business)
    db.flush()

    haircut = Services(business_id=business.id, name="Haircut", duration=60, price=50.0)
    tour = Services(
        business_id=business.id,
        name="Tasting tour",
        duration=60,
        price=30.0,
        service_type="experience",
        min_bookings=1,
        max_bookings=4,
        spots=5,
    )
    coloring = Services(business_id=business.id, name="Coloring", duration=90, price=80.0)
    db.add_all([haircut, tour, coloring])
    db.flush()

    staff = StaffMembers(
        business_id=business.id,
        name="Alex",
        availability=json.dumps(WEEKDAYS_NINE_TO_FIVE),
    )
    staff.services = [haircut, tour, coloring]
    other = StaffMembers(
        business_id=business.id,
        name="Sam",
        availability=json.dumps(WEEKDAYS_NINE_TO_FIVE),
    )
    other.services = [haircut]
    db.add_all([staff, other])
    db.commit()

    return SimpleNamespace(
        business_id=business.id,
        staff_id=staff.id,
        other_staff_id=other.id,
        service_id=haircut.id,
        experience_id=tour.id,
        long_service_id=coloring.id,
    )


@pytest.fixture
def business(db, seeded) -> Business:
    return Business.model_validate(db.get(Businesses, seeded.business_id))


@pytest.fixture
def set_policy(db, seeded):
    def _set(**values):
        row = BookingPolicies(business_id=seeded.business_id, **values)
        db.add(row)
        db.commit()
        return row

    return _set


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def manager(db, seeded, clock, sink):
    manager = build_booking_manager(
        db,
        clock=clock,
        cache_backend=MemoryCacheBackend(),
        locks=StaffLockRegistry(),
    )
    manager.notifications = sink
    return manager


@pytest.fixture
def book(manager, seeded, business):
    """Create a booking through the manager and fail loudly if it is refused."""
    def _book(day, hhmm, **overrides):
        params = {
            "staff_member_id": seeded.staff_id,
            "service_id": seeded.service_id,
            "date": day.isoformat(),
            "time": hhmm,
            "customer_name": "Jamie Doe",
            "customer_email": "jamie@example.com",
        }
        params.update(overrides)
        booking, errors = manager.create_booking(params, business)
        assert errors is None, errors
        return booking

    return _book
