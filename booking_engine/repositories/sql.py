# booking_engine/repositories/sql.py
"""
SQLAlchemy-backed collaborators.

All datetimes are persisted as naive UTC and handed back as aware UTC
(the Booking schema re-attaches the zone).
"""

import json
import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterator, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import InvalidScheduleError, SlotTakenError
from ..models.generated import (
    BookingPolicies as DBBookingPolicy,
    Bookings as DBBooking,
    Businesses as DBBusiness,
    Services as DBService,
    StaffMembers as DBStaffMember,
    TenantCustomers as DBCustomer,
    t_staff_services,
)
from ..schemas import (
    ACTIVE_STATUSES,
    Booking,
    BookingPolicy,
    BookingStatus,
    Business,
    ScheduleTemplate,
    Service,
    StaffMember,
    TenantCustomer,
)

logger = logging.getLogger(__name__)

ACTIVE_STATUS_VALUES = [s.value for s in ACTIVE_STATUSES]

# Substrings identifying the partial unique index violation per dialect
_SLOT_INDEX_MARKERS = (
    "uq_bookings_staff_start_active",
    "bookings.staff_member_id, bookings.start_time",
)


def to_store(value: datetime) -> datetime:
    """Aware (or naive UTC) datetime → naive UTC for storage."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def local_day_bounds(target_date: date, time_zone: str) -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day as naive UTC."""
    zone = ZoneInfo(time_zone)
    start = datetime.combine(target_date, time.min, tzinfo=zone)
    end = datetime.combine(target_date + timedelta(days=1), time.min, tzinfo=zone)
    return to_store(start), to_store(end)


# ── Businesses / policies ────────────────────────────────────────────────


class SqlBusinessRepository:
    def __init__(self, db: Session):
        self.db = db

    def find(self, business_id: int) -> Optional[Business]:
        row = self.db.get(DBBusiness, business_id)
        return Business.model_validate(row) if row else None


class SqlPolicyRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_for_business(self, business_id: int) -> Optional[BookingPolicy]:
        row = (
            self.db.query(DBBookingPolicy)
            .filter(DBBookingPolicy.business_id == business_id)
            .first()
        )
        if not row:
            return None
        return BookingPolicy(
            business_id=row.business_id,
            min_duration_mins=row.min_duration_mins,
            max_duration_mins=row.max_duration_mins,
            max_daily_bookings=row.max_daily_bookings,
            cancellation_window_mins=row.cancellation_window_mins or 0,
            min_advance_mins=row.min_advance_mins,
            max_advance_days=row.max_advance_days,
            use_fixed_intervals=bool(row.use_fixed_intervals),
            interval_mins=row.interval_mins,
        )


# ── Staff ────────────────────────────────────────────────────────────────


def _to_staff(row: DBStaffMember) -> StaffMember:
    try:
        availability = json.loads(row.availability) if row.availability else {}
    except json.JSONDecodeError as e:
        raise InvalidScheduleError(f"staff member {row.id} has malformed availability JSON") from e

    return StaffMember(
        id=row.id,
        business_id=row.business_id,
        name=row.name,
        active=bool(row.active),
        service_ids=frozenset(s.id for s in row.services),
        schedule=ScheduleTemplate.from_availability(availability),
    )


class SqlStaffRepository:
    def __init__(self, db: Session):
        self.db = db

    def find(self, business_id: int, staff_id: int) -> Optional[StaffMember]:
        row = (
            self.db.query(DBStaffMember)
            .filter(
                DBStaffMember.id == staff_id,
                DBStaffMember.business_id == business_id,
            )
            .first()
        )
        return _to_staff(row) if row else None

    def list_for_service(self, business_id: int, service_id: int) -> list[StaffMember]:
        rows = (
            self.db.query(DBStaffMember)
            .join(t_staff_services, DBStaffMember.id == t_staff_services.c.staff_member_id)
            .filter(
                t_staff_services.c.service_id == service_id,
                DBStaffMember.business_id == business_id,
                DBStaffMember.active == 1,
            )
            .order_by(DBStaffMember.id)
            .all()
        )
        return [_to_staff(row) for row in rows]

    def lock_for_update(self, business_id: int, staff_id: int) -> None:
        # SELECT ... FOR UPDATE; SQLite has no row locks and ignores the clause
        (
            self.db.query(DBStaffMember.id)
            .filter(
                DBStaffMember.id == staff_id,
                DBStaffMember.business_id == business_id,
            )
            .with_for_update()
            .first()
        )


# ── Services ─────────────────────────────────────────────────────────────


class SqlServiceRepository:
    def __init__(self, db: Session):
        self.db = db

    def find(self, business_id: int, service_id: int) -> Optional[Service]:
        row = (
            self.db.query(DBService)
            .populate_existing()  # spots change through bulk UPDATEs
            .filter(DBService.id == service_id, DBService.business_id == business_id)
            .first()
        )
        return Service.model_validate(row) if row else None

    def decrement_spots(self, business_id: int, service_id: int, quantity: int) -> bool:
        result = self.db.execute(
            update(DBService)
            .where(
                DBService.id == service_id,
                DBService.business_id == business_id,
                DBService.spots >= quantity,
            )
            .values(spots=DBService.spots - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def increment_spots(self, business_id: int, service_id: int, quantity: int) -> None:
        self.db.execute(
            update(DBService)
            .where(DBService.id == service_id, DBService.business_id == business_id)
            .values(spots=func.coalesce(DBService.spots, 0) + quantity)
            .execution_options(synchronize_session=False)
        )


# ── Customers ────────────────────────────────────────────────────────────


class SqlCustomerResolver:
    def __init__(self, db: Session):
        self.db = db

    def find(self, business_id: int, customer_id: int) -> Optional[TenantCustomer]:
        row = (
            self.db.query(DBCustomer)
            .filter(DBCustomer.id == customer_id, DBCustomer.business_id == business_id)
            .first()
        )
        return TenantCustomer.model_validate(row) if row else None

    def _find_by_email(self, business_id: int, email: str) -> Optional[DBCustomer]:
        return (
            self.db.query(DBCustomer)
            .filter(
                DBCustomer.business_id == business_id,
                func.lower(DBCustomer.email) == email,
            )
            .first()
        )

    def find_or_create(
        self,
        business_id: int,
        email: str,
        first_name: str,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Optional[TenantCustomer]:
        email = (email or "").strip().lower()
        if not email or not first_name:
            return None

        row = self._find_by_email(business_id, email)
        if row:
            return TenantCustomer.model_validate(row)

        try:
            with self.db.begin_nested():
                row = DBCustomer(
                    business_id=business_id,
                    first_name=first_name,
                    last_name=last_name,
                    email=email,
                    phone=phone,
                )
                self.db.add(row)
        except IntegrityError:
            # created concurrently; take the winner's row
            logger.info(f"Customer {email} created concurrently for business {business_id}")
            row = self._find_by_email(business_id, email)
            if not row:
                return None

        return TenantCustomer.model_validate(row)


# ── Bookings ─────────────────────────────────────────────────────────────


def _storable(attributes: dict[str, Any]) -> dict[str, Any]:
    result = {}
    for key, value in attributes.items():
        if isinstance(value, datetime):
            value = to_store(value)
        elif isinstance(value, BookingStatus):
            value = value.value
        elif isinstance(value, bool):
            value = int(value)
        result[key] = value
    return result


class SqlBookingRepository:
    def __init__(self, db: Session):
        self.db = db

    def _get_row(self, business_id: int, booking_id: int) -> Optional[DBBooking]:
        return (
            self.db.query(DBBooking)
            .filter(DBBooking.id == booking_id, DBBooking.business_id == business_id)
            .first()
        )

    def find(self, business_id: int, booking_id: int) -> Optional[Booking]:
        row = self._get_row(business_id, booking_id)
        return Booking.model_validate(row) if row else None

    def find_overlapping(
        self,
        business_id: int,
        staff_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> list[Booking]:
        query = self.db.query(DBBooking).filter(
            DBBooking.business_id == business_id,
            DBBooking.staff_member_id == staff_id,
            DBBooking.status.in_(ACTIVE_STATUS_VALUES),
            DBBooking.start_time < to_store(end),
            DBBooking.end_time > to_store(start),
        )
        if exclude_id is not None:
            query = query.filter(DBBooking.id != exclude_id)
        rows = query.order_by(DBBooking.start_time).all()
        return [Booking.model_validate(row) for row in rows]

    def count_for_day(
        self,
        business_id: int,
        staff_id: int,
        target_date: date,
        time_zone: str,
        exclude_id: Optional[int] = None,
    ) -> int:
        day_start, day_end = local_day_bounds(target_date, time_zone)
        query = self.db.query(func.count(DBBooking.id)).filter(
            DBBooking.business_id == business_id,
            DBBooking.staff_member_id == staff_id,
            DBBooking.status.in_(ACTIVE_STATUS_VALUES),
            DBBooking.start_time >= day_start,
            DBBooking.start_time < day_end,
        )
        if exclude_id is not None:
            query = query.filter(DBBooking.id != exclude_id)
        return query.scalar() or 0

    def _flush(self, row: DBBooking) -> None:
        try:
            self.db.flush()
        except IntegrityError as e:
            if any(marker in str(e.orig) for marker in _SLOT_INDEX_MARKERS):
                raise SlotTakenError(row.staff_member_id, row.start_time) from e
            raise

    def create(self, business_id: int, attributes: dict[str, Any]) -> Booking:
        row = DBBooking(business_id=business_id, **_storable(attributes))
        self.db.add(row)
        self._flush(row)
        self.db.refresh(row)
        return Booking.model_validate(row)

    def update(self, business_id: int, booking_id: int, changes: dict[str, Any]) -> Booking:
        row = self._get_row(business_id, booking_id)
        if row is None:
            raise LookupError(f"booking {booking_id} not found for business {business_id}")
        for key, value in _storable(changes).items():
            setattr(row, key, value)
        row.updated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        self._flush(row)
        return Booking.model_validate(row)

    def set_status(
        self,
        business_id: int,
        booking_id: int,
        status: BookingStatus,
        reason: Optional[str] = None,
        manager_override: bool = False,
    ) -> Booking:
        return self.update(
            business_id,
            booking_id,
            {
                "status": status,
                "cancellation_reason": reason,
                "manager_override": manager_override,
            },
        )


# ── Bundle ───────────────────────────────────────────────────────────────


class SqlRepositories:
    """All collaborators bound to one Session (one unit of work)."""

    def __init__(self, db: Session):
        self.db = db
        self.businesses = SqlBusinessRepository(db)
        self.staff = SqlStaffRepository(db)
        self.bookings = SqlBookingRepository(db)
        self.services = SqlServiceRepository(db)
        self.policies = SqlPolicyRepository(db)
        self.customers = SqlCustomerResolver(db)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
