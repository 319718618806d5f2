"""
booking_engine/services/booking_manager.py

Booking lifecycle: create, update, cancel.

Every write runs the availability check and the write inside one
transaction while holding the staff member's lock (in-process lock plus a
row lock on the staff record). Expected failures come back as
(None, BookingErrors) or False; store failures propagate after rollback.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import (
    BASE,
    BookingErrors,
    BookingRejected,
    ErrorKind,
    SlotTakenError,
)
from ..repositories.base import Repositories
from ..schemas import (
    Booking,
    BookingChanges,
    BookingParams,
    BookingPolicy,
    BookingStatus,
    Business,
    Service,
    StaffMember,
    TenantCustomer,
    can_transition,
)
from .clock import Clock
from .events import LoggingNotificationSink, NotificationSink
from .locks import StaffLockRegistry
from .slots.cache import SlotCache
from .slots.calculator import AvailabilityCalculator

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "The selected time is not available for this staff member"
MANAGER_OVERRIDE_REASON = "Cancelled by business manager (override)"

ParamsT = TypeVar("ParamsT", bound=BaseModel)


class BookingManager:
    def __init__(
        self,
        repos: Repositories,
        calculator: AvailabilityCalculator,
        clock: Clock,
        notifications: NotificationSink | None = None,
        slot_cache: SlotCache | None = None,
        locks: StaffLockRegistry | None = None,
    ):
        self.repos = repos
        self.calculator = calculator
        self.clock = clock
        self.notifications = notifications or LoggingNotificationSink()
        self.slot_cache = slot_cache
        self.locks = locks or StaffLockRegistry()

    # ── Create ───────────────────────────────────────────────────────────

    def create_booking(
        self,
        params: BookingParams | Mapping[str, Any],
        business: Business,
    ) -> tuple[Optional[Booking], Optional[BookingErrors]]:
        errors = BookingErrors()
        params = _coerce(BookingParams, params, errors)
        if params is None:
            return None, errors

        staff = self._find_staff(business, params.staff_member_id, errors)
        service = self._find_service(business, params.service_id, errors)
        if errors:
            return None, errors

        start_time = self._resolve_start_time(
            business, params.start_time, params.date, params.time, errors
        )
        if start_time is None:
            if not errors:
                errors.add("start_time", "can't be blank")
            return None, errors

        policy = self.calculator.policy_for(business.id)
        duration = _effective_duration(policy, service, errors)
        if duration is None:
            return None, errors
        end_time = _end_after(start_time, duration)

        customer = None
        if params.tenant_customer_id:
            customer = self.repos.customers.find(business.id, params.tenant_customer_id)
            if customer is None:
                errors.add("tenant_customer", "is invalid")
        elif not (params.customer_name and params.customer_name.strip() and params.customer_email):
            errors.add("tenant_customer", "can't be blank")

        _validate_quantity(service, params.quantity, errors)
        if errors:
            return None, errors

        try:
            with self.locks.hold(business.id, staff.id), self.repos.transaction():
                self.repos.staff.lock_for_update(business.id, staff.id)
                self._ensure_available(business, staff, start_time, end_time, service)

                if customer is None:
                    customer = self._find_or_create_customer(business, params)

                if service.is_experience:
                    self._take_spots(business, service, params.quantity)

                booking = self.repos.bookings.create(business.id, {
                    "staff_member_id": staff.id,
                    "service_id": service.id,
                    "tenant_customer_id": customer.id,
                    "start_time": start_time,
                    "end_time": end_time,
                    "status": BookingStatus.PENDING,
                    "quantity": params.quantity,
                    "amount": service.price,
                    "original_amount": service.price,
                    "discount_amount": 0.0,
                    "notes": params.notes,
                })
        except BookingRejected as e:
            return None, e.errors
        except SlotTakenError as e:
            logger.warning(f"Store rejected double booking: {e}")
            errors.add(BASE, NOT_AVAILABLE, ErrorKind.AVAILABILITY)
            return None, errors

        logger.info(
            f"Booking {booking.id} created for staff {staff.id} "
            f"{booking.start_time.isoformat()}–{booking.end_time.isoformat()}"
        )
        self._invalidate(business, staff.id, [start_time])

        if params.send_confirmation:
            self._notify("booking_confirmation", booking)

        return booking, None

    # ── Update ───────────────────────────────────────────────────────────

    def update_booking(
        self,
        booking: Booking,
        params: BookingChanges | Mapping[str, Any],
    ) -> tuple[Optional[Booking], Optional[BookingErrors]]:
        errors = BookingErrors()
        changes = _coerce(BookingChanges, params, errors)
        if changes is None:
            return None, errors
        given = changes.model_fields_set

        business = self._business_for(booking)

        # Target values (unchanged fields fall back to the booking)
        new_start = booking.start_time
        if changes.date and changes.time:
            new_start = self._resolve_start_time(business, None, changes.date, changes.time, errors)
        elif "start_time" in given and changes.start_time is not None:
            new_start = self._resolve_start_time(business, changes.start_time, None, None, errors)
        if new_start is None:
            return None, errors

        service_id = changes.service_id if changes.service_id else booking.service_id
        staff_id = changes.staff_member_id if changes.staff_member_id else booking.staff_member_id
        new_status = changes.status if changes.status else booking.status
        new_quantity = changes.quantity if changes.quantity is not None else booking.quantity

        start_changed = new_start != booking.start_time
        service_changed = service_id != booking.service_id
        staff_changed = staff_id != booking.staff_member_id

        if not booking.is_active and (start_changed or service_changed or staff_changed):
            errors.add(BASE, f"A {booking.status.value} booking can no longer be rescheduled")
            return None, errors

        if not can_transition(booking.status, new_status):
            errors.add(
                "status",
                f"cannot change from {booking.status.value} to {new_status.value}",
            )

        old_service = self._find_service(business, booking.service_id, errors)
        service = old_service if not service_changed else self._find_service(business, service_id, errors)
        staff = self._find_staff(business, staff_id, errors)
        if errors:
            return None, errors

        new_end = booking.end_time
        if start_changed or service_changed:
            policy = self.calculator.policy_for(business.id)
            duration = _effective_duration(policy, service, errors)
            if duration is None:
                return None, errors
            new_end = _end_after(new_start, duration)

        was_holding = booking.status != BookingStatus.CANCELLED
        will_hold = new_status != BookingStatus.CANCELLED
        if will_hold:
            held = booking.quantity if was_holding and not service_changed else 0
            _validate_quantity(service, new_quantity, errors, held=held)
        if errors:
            return None, errors

        attributes: dict[str, Any] = {}
        if start_changed or new_end != booking.end_time:
            attributes.update(start_time=new_start, end_time=new_end)
        if service_changed:
            attributes["service_id"] = service.id
        if staff_changed:
            attributes["staff_member_id"] = staff.id
        if new_status != booking.status:
            attributes["status"] = new_status
        if new_quantity != booking.quantity:
            attributes["quantity"] = new_quantity
        if "notes" in given:
            attributes["notes"] = changes.notes

        if not attributes:
            return booking, None

        reschedule = "start_time" in attributes or staff_changed or service_changed

        try:
            with self.locks.hold(business.id, booking.staff_member_id, staff.id), self.repos.transaction():
                self.repos.staff.lock_for_update(business.id, staff.id)
                if reschedule and new_status.is_active:
                    self._ensure_available(
                        business, staff, new_start, new_end, service, exclude_booking_id=booking.id
                    )
                self._adjust_spots(
                    business,
                    old_service if was_holding else None,
                    booking.quantity,
                    service if will_hold else None,
                    new_quantity,
                )
                updated = self.repos.bookings.update(business.id, booking.id, attributes)
        except BookingRejected as e:
            return None, e.errors
        except SlotTakenError as e:
            logger.warning(f"Store rejected double booking on update: {e}")
            errors.add(BASE, NOT_AVAILABLE, ErrorKind.AVAILABILITY)
            return None, errors

        original_status = booking.status
        original_start = booking.start_time
        original_staff_id = booking.staff_member_id
        _apply(booking, updated)
        logger.info(f"Booking {booking.id} updated: {sorted(attributes)}")

        self._invalidate(business, original_staff_id, [original_start])
        if staff_changed or start_changed:
            self._invalidate(business, booking.staff_member_id, [booking.start_time])

        if booking.status != original_status:
            logger.info(
                f"Booking {booking.id} status changed from {original_status.value} to {booking.status.value}"
            )
            self._notify("booking_status_update", booking)

        return booking, None

    # ── Cancel ───────────────────────────────────────────────────────────

    def cancel_booking(
        self,
        booking: Booking,
        reason: Optional[str] = None,
        notify: bool = True,
        override: bool = False,
    ) -> bool:
        """
        Cancel a booking.

        Clients are held to the policy's cancellation window; override=True
        (business manager / staff) bypasses it. Failures leave the status
        unchanged and add a message to booking.errors.
        """
        booking.errors.clear()
        business = self._business_for(booking)

        if not booking.is_active:
            booking.errors.add(
                BASE,
                f"Booking cannot be cancelled from status {booking.status.value}",
                ErrorKind.VALIDATION,
            )
            return False

        if not override:
            message = self._cancellation_window_error(business, booking)
            if message:
                booking.errors.add(BASE, message, ErrorKind.POLICY)
                logger.warning(f"Attempted to cancel booking {booking.id} within cancellation window")
                return False

        cancellation_reason = reason or (MANAGER_OVERRIDE_REASON if override else None)

        with self.locks.hold(business.id, booking.staff_member_id), self.repos.transaction():
            current = self.repos.bookings.find(business.id, booking.id)
            if current is None or not current.is_active:
                status = current.status.value if current else "missing"
                booking.errors.add(
                    BASE,
                    f"Booking cannot be cancelled from status {status}",
                    ErrorKind.VALIDATION,
                )
                return False

            updated = self.repos.bookings.set_status(
                business.id,
                booking.id,
                BookingStatus.CANCELLED,
                reason=cancellation_reason,
                manager_override=override,
            )

            service = self.repos.services.find(business.id, current.service_id)
            if service and service.is_experience:
                self.repos.services.increment_spots(business.id, service.id, current.quantity)
                logger.info(f"Returned {current.quantity} spot(s) to service {service.id}")

        _apply(booking, updated)
        if override:
            logger.info(f"Manager override cancellation for booking {booking.id}")
        else:
            logger.info(f"Booking {booking.id} cancelled, reason: {reason or 'Not provided'}")

        self._invalidate(business, booking.staff_member_id, [booking.start_time])

        if notify:
            self._notify("booking_cancellation", booking)

        return True

    # ── Availability ─────────────────────────────────────────────────────

    def available(
        self,
        *,
        business: Business,
        staff: StaffMember,
        start_time: datetime,
        end_time: datetime,
        service: Service | None = None,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        return self.calculator.is_available(
            business,
            staff,
            start_time,
            end_time,
            service=service,
            exclude_booking_id=exclude_booking_id,
        )

    # ── Helpers ──────────────────────────────────────────────────────────

    def _business_for(self, booking: Booking) -> Business:
        business = self.repos.businesses.find(booking.business_id)
        if business is None:
            raise LookupError(f"business {booking.business_id} not found for booking {booking.id}")
        return business

    def _find_staff(
        self,
        business: Business,
        staff_id: Optional[int],
        errors: BookingErrors,
    ) -> Optional[StaffMember]:
        staff = self.repos.staff.find(business.id, staff_id) if staff_id else None
        if staff is None:
            errors.add("staff_member", "can't be blank")
        return staff

    def _find_service(
        self,
        business: Business,
        service_id: Optional[int],
        errors: BookingErrors,
    ) -> Optional[Service]:
        service = self.repos.services.find(business.id, service_id) if service_id else None
        if service is None:
            errors.add("service", "can't be blank")
        return service

    def _resolve_start_time(
        self,
        business: Business,
        explicit: Optional[datetime],
        date_str: Optional[str],
        time_str: Optional[str],
        errors: BookingErrors,
    ) -> Optional[datetime]:
        """date + time pair (business time zone) wins over an explicit timestamp."""
        if date_str and time_str:
            start_time = parse_local_datetime(date_str, time_str, business)
            if start_time is None:
                errors.add("start_time", "is invalid")
            return start_time
        if explicit is None:
            return None
        if explicit.tzinfo is None:
            return explicit.replace(tzinfo=business.zone)
        return explicit

    def _ensure_available(
        self,
        business: Business,
        staff: StaffMember,
        start_time: datetime,
        end_time: datetime,
        service: Service,
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        reason = self.calculator.check_slot(
            business, staff, start_time, end_time, service, exclude_booking_id
        )
        if reason is None:
            return

        logger.info(
            f"Slot {start_time.isoformat()} unavailable for staff {staff.id}: {reason.value}"
        )
        errors = BookingErrors()
        kind = ErrorKind.POLICY if reason.is_policy else ErrorKind.AVAILABILITY
        errors.add(BASE, NOT_AVAILABLE, kind)
        raise BookingRejected(errors)

    def _find_or_create_customer(self, business: Business, params: BookingParams) -> TenantCustomer:
        name_parts = params.customer_name.strip().split(" ", 1)
        first_name = name_parts[0] or "Unknown"
        last_name = name_parts[1].strip() if len(name_parts) > 1 else "Customer"

        customer = self.repos.customers.find_or_create(
            business.id,
            email=params.customer_email,
            first_name=first_name,
            last_name=last_name,
            phone=params.customer_phone,
        )
        if customer is None:
            errors = BookingErrors()
            errors.add(BASE, "Could not create customer record")
            raise BookingRejected(errors)
        return customer

    def _take_spots(self, business: Business, service: Service, quantity: int) -> None:
        if self.repos.services.decrement_spots(business.id, service.id, quantity):
            logger.info(f"Took {quantity} spot(s) from service {service.id}")
            return

        current = self.repos.services.find(business.id, service.id)
        errors = BookingErrors()
        errors.add(BASE, _spots_message(quantity, current.spots if current else 0), ErrorKind.CAPACITY)
        raise BookingRejected(errors)

    def _adjust_spots(
        self,
        business: Business,
        old_service: Optional[Service],
        old_quantity: int,
        new_service: Optional[Service],
        new_quantity: int,
    ) -> None:
        """Move experience spots from the old (service, quantity) to the new one."""
        old_held = old_quantity if old_service and old_service.is_experience else 0
        new_held = new_quantity if new_service and new_service.is_experience else 0

        if old_service and new_service and old_service.id == new_service.id:
            delta = new_held - old_held
            if delta > 0:
                self._take_spots(business, new_service, delta)
            elif delta < 0:
                self.repos.services.increment_spots(business.id, new_service.id, -delta)
            return

        if old_held:
            self.repos.services.increment_spots(business.id, old_service.id, old_held)
        if new_held:
            self._take_spots(business, new_service, new_held)

    def _cancellation_window_error(self, business: Business, booking: Booking) -> Optional[str]:
        policy = self.calculator.policy_for(business.id)
        deadline = policy.cancellation_deadline(booking.start_time)
        if deadline is None:
            return None
        if self.clock.now(business.time_zone) > deadline:
            return (
                f"Cannot cancel booking within {policy.cancellation_window_mins} "
                f"minutes of the start time."
            )
        return None

    def _invalidate(self, business: Business, staff_id: int, instants: Iterable[datetime]) -> None:
        if self.slot_cache is None:
            return
        dates = {instant.astimezone(business.zone).date() for instant in instants}
        try:
            self.slot_cache.invalidate(business.id, staff_id, dates)
        except Exception:
            # entries still expire by TTL
            logger.exception(f"Failed to invalidate slot cache for staff {staff_id}")

    def _notify(self, event: str, booking: Booking) -> None:
        try:
            self.notifications.notify(event, booking)
        except Exception:
            logger.exception(f"Failed to deliver {event} for booking {booking.id}")


# ── Module helpers ───────────────────────────────────────────────────────


def _coerce(model: Type[ParamsT], params: Any, errors: BookingErrors) -> Optional[ParamsT]:
    if isinstance(params, model):
        return params
    try:
        return model.model_validate(params)
    except ValidationError as e:
        for error in e.errors():
            field = str(error["loc"][0]) if error["loc"] else BASE
            errors.add(field, "is invalid")
        return None


def _end_after(start_time: datetime, minutes: int) -> datetime:
    # elapsed time, not wall-clock time, across DST changes
    return start_time.astimezone(timezone.utc) + timedelta(minutes=minutes)


def _effective_duration(
    policy: BookingPolicy,
    service: Service,
    errors: BookingErrors,
) -> Optional[int]:
    duration = policy.effective_duration(service.duration)
    if duration is None:
        clamped = max(service.duration, policy.min_duration_mins or 0)
        errors.add(
            BASE,
            f"Booking duration ({clamped} minutes) exceeds the maximum allowed "
            f"({policy.max_duration_mins} minutes)",
            ErrorKind.POLICY,
        )
        return None
    if duration != service.duration:
        logger.info(f"Adjusted duration to minimum policy value: {duration} minutes")
    return duration


def _validate_quantity(
    service: Service,
    quantity: int,
    errors: BookingErrors,
    held: int = 0,
) -> None:
    """held: spots of this service the booking already occupies."""
    if quantity < 1:
        errors.add("quantity", "must be at least 1")
        return
    if not service.is_experience:
        return

    if service.min_bookings is not None and quantity < service.min_bookings:
        errors.add("quantity", f"must be at least {service.min_bookings}")
    if service.max_bookings is not None and quantity > service.max_bookings:
        errors.add("quantity", f"must be at most {service.max_bookings}")
    available = (service.spots or 0) + held
    if quantity > available:
        errors.add(BASE, _spots_message(quantity, available), ErrorKind.CAPACITY)


def _spots_message(requested: int, available: Optional[int]) -> str:
    return (
        f"Not enough spots available for this experience. "
        f"Requested: {requested}, Available: {available or 0}."
    )


def _apply(target: Booking, source: Booking) -> None:
    """Copy persisted state onto the caller's booking object."""
    for field in Booking.model_fields:
        if field != "errors":
            setattr(target, field, getattr(source, field))


def parse_local_datetime(date_str: str, time_str: str, business: Business) -> Optional[datetime]:
    """
    Combine "YYYY-MM-DD" and "HH:MM" / "HHMM" into an aware datetime in the
    business time zone. Hour and minute are clamped to 0–23 / 0–59.
    """
    try:
        day = date.fromisoformat(str(date_str).strip())

        raw = str(time_str).strip()
        if ":" in raw:
            hour_str, minute_str = raw.split(":")[:2]
            hour, minute = int(hour_str), int(minute_str)
        else:
            value = int(raw)
            hour, minute = value // 100, value % 100

        hour = min(max(hour, 0), 23)
        minute = min(max(minute, 0), 59)
        return datetime(day.year, day.month, day.day, hour, minute, tzinfo=business.zone)
    except (ValueError, TypeError) as e:
        logger.error(f"Error parsing datetime: {e} for date: {date_str}, time: {time_str}")
        return None
