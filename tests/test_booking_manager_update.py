from booking_engine.errors import ErrorKind
from booking_engine.models.generated import Bookings, Services
from booking_engine.schemas import BookingStatus
from booking_engine.services.booking_manager import NOT_AVAILABLE
from helpers import MONDAY, SATURDAY, at


def test_reschedule_to_free_time(manager, book, db):
    booking = book(MONDAY, "10:00")

    updated, errors = manager.update_booking(booking, {"date": MONDAY.isoformat(), "time": "14:00"})

    assert errors is None
    assert updated is booking
    assert booking.start_time == at(MONDAY, "14:00")
    assert booking.end_time == at(MONDAY, "15:00")
    db.expire_all()
    assert db.get(Bookings, booking.id).start_time.hour == 14


def test_reschedule_may_overlap_its_own_old_range(manager, book):
    booking = book(MONDAY, "10:00")

    _, errors = manager.update_booking(booking, {"start_time": at(MONDAY, "10:30")})

    assert errors is None
    assert booking.start_time == at(MONDAY, "10:30")


def test_reschedule_onto_another_booking_is_refused(manager, book):
    book(MONDAY, "14:00")
    booking = book(MONDAY, "10:00")

    updated, errors = manager.update_booking(booking, {"start_time": at(MONDAY, "14:30")})

    assert updated is None
    assert errors.full_messages == [NOT_AVAILABLE]
    assert errors.kinds == {ErrorKind.AVAILABILITY}
    assert booking.start_time == at(MONDAY, "10:00")


def test_reschedule_outside_schedule_is_refused(manager, book):
    booking = book(MONDAY, "10:00")

    _, errors = manager.update_booking(booking, {"date": SATURDAY.isoformat(), "time": "10:00"})

    assert errors.full_messages == [NOT_AVAILABLE]


def test_move_to_other_staff_member(manager, seeded, book):
    booking = book(MONDAY, "10:00")

    _, errors = manager.update_booking(booking, {"staff_member_id": seeded.other_staff_id})

    assert errors is None
    assert booking.staff_member_id == seeded.other_staff_id


def test_changing_service_recomputes_end_time(manager, seeded, book):
    booking = book(MONDAY, "10:00")

    _, errors = manager.update_booking(booking, {"service_id": seeded.long_service_id})

    assert errors is None
    assert booking.end_time == at(MONDAY, "11:30")


def test_service_change_requires_qualified_staff(manager, seeded, book, db):
    booking = book(MONDAY, "10:00", staff_member_id=seeded.other_staff_id)

    updated, errors = manager.update_booking(booking, {"service_id": seeded.experience_id})

    assert updated is None
    assert errors.full_messages == [NOT_AVAILABLE]
    assert booking.service_id == seeded.service_id
    db.expire_all()
    assert db.get(Bookings, booking.id).service_id == seeded.service_id
    assert db.get(Services, seeded.experience_id).spots == 5


def test_same_length_service_change_for_qualified_staff(manager, seeded, book):
    booking = book(MONDAY, "10:00")

    _, errors = manager.update_booking(booking, {"service_id": seeded.experience_id})

    assert errors is None
    assert booking.service_id == seeded.experience_id
    assert booking.end_time == at(MONDAY, "11:00")


def test_confirming_notifies_status_change(manager, book, sink):
    booking = book(MONDAY, "10:00")

    _, errors = manager.update_booking(booking, {"status": "confirmed"})

    assert errors is None
    assert booking.status == BookingStatus.CONFIRMED
    assert sink.events == [("booking_status_update", booking.id)]


def test_notes_only_update_sends_nothing(manager, book, sink):
    booking = book(MONDAY, "10:00")

    _, errors = manager.update_booking(booking, {"notes": "window seat"})

    assert errors is None
    assert booking.notes == "window seat"
    assert sink.events == []


def test_invalid_status_transition(manager, book):
    booking = book(MONDAY, "10:00")
    manager.update_booking(booking, {"status": "confirmed"})
    manager.update_booking(booking, {"status": "completed"})

    updated, errors = manager.update_booking(booking, {"status": "pending"})

    assert updated is None
    assert errors.full_messages == ["Status cannot change from completed to pending"]
    assert booking.status == BookingStatus.COMPLETED


def test_cancelled_booking_cannot_be_rescheduled(manager, book):
    booking = book(MONDAY, "10:00")
    assert manager.cancel_booking(booking)

    updated, errors = manager.update_booking(booking, {"start_time": at(MONDAY, "14:00")})

    assert updated is None
    assert errors.full_messages == ["A cancelled booking can no longer be rescheduled"]


def test_empty_update_is_a_no_op(manager, book):
    booking = book(MONDAY, "10:00")

    updated, errors = manager.update_booking(booking, {})

    assert errors is None
    assert updated is booking


def test_quantity_delta_adjusts_spots(manager, seeded, book, db):
    booking = book(MONDAY, "10:00", service_id=seeded.experience_id, quantity=2)

    _, errors = manager.update_booking(booking, {"quantity": 4})
    db.expire_all()
    assert errors is None
    assert db.get(Services, seeded.experience_id).spots == 1

    manager.update_booking(booking, {"quantity": 1})
    db.expire_all()
    assert db.get(Services, seeded.experience_id).spots == 4


def test_quantity_increase_beyond_spots_is_refused(manager, seeded, book, db):
    first = book(MONDAY, "10:00", service_id=seeded.experience_id, quantity=4)
    second = book(MONDAY, "13:00", service_id=seeded.experience_id, quantity=1)
    assert first and second

    _, errors = manager.update_booking(second, {"quantity": 2})

    assert errors.kinds == {ErrorKind.CAPACITY}
    db.expire_all()
    assert db.get(Services, seeded.experience_id).spots == 0
    assert second.quantity == 1


def test_cancelling_through_update_returns_spots(manager, seeded, book, db):
    booking = book(MONDAY, "10:00", service_id=seeded.experience_id, quantity=2)

    _, errors = manager.update_booking(booking, {"status": "cancelled"})

    assert errors is None
    db.expire_all()
    assert db.get(Services, seeded.experience_id).spots == 5


def test_reschedule_invalidates_old_and_new_dates(manager, seeded, business, book):
    staff = manager.repos.staff.find(business.id, seeded.staff_id)
    service = manager.repos.services.find(business.id, seeded.service_id)
    tuesday = MONDAY.replace(day=15)
    booking = book(MONDAY, "10:00")

    manager.slot_cache.available_slots(business, staff, MONDAY, service)
    manager.slot_cache.available_slots(business, staff, tuesday, service)
    manager.update_booking(booking, {"date": tuesday.isoformat(), "time": "10:00"})

    monday = [s.start_time for s in manager.slot_cache.available_slots(business, staff, MONDAY, service)]
    tue = [s.start_time for s in manager.slot_cache.available_slots(business, staff, tuesday, service)]
    assert at(MONDAY, "10:00") in monday
    assert at(tuesday, "10:00") not in tue
