from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Table,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


ACTIVE_BOOKING_FILTER = text("status IN ('pending', 'confirmed')")


class Businesses(Base):
    __tablename__ = 'businesses'

    name = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    time_zone = Column(Text, nullable=False, server_default=text("'UTC'"))
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    booking_policy = relationship('BookingPolicies', uselist=False, back_populates='business')
    staff_members = relationship('StaffMembers', back_populates='business')
    services = relationship('Services', back_populates='business')
    tenant_customers = relationship('TenantCustomers', back_populates='business')
    bookings = relationship('Bookings', back_populates='business')


class BookingPolicies(Base):
    __tablename__ = 'booking_policies'

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False, unique=True)
    id = Column(Integer, primary_key=True)
    min_duration_mins = Column(Integer)
    max_duration_mins = Column(Integer)
    max_daily_bookings = Column(Integer)
    cancellation_window_mins = Column(Integer, nullable=False, server_default=text('0'))
    min_advance_mins = Column(Integer)
    max_advance_days = Column(Integer)
    use_fixed_intervals = Column(Integer, nullable=False, server_default=text('0'))
    interval_mins = Column(Integer)

    business = relationship('Businesses', back_populates='booking_policy')


t_staff_services = Table(
    'staff_services', metadata,
    Column('staff_member_id', ForeignKey('staff_members.id', ondelete='CASCADE'), primary_key=True),
    Column('service_id', ForeignKey('services.id', ondelete='CASCADE'), primary_key=True),
)


class StaffMembers(Base):
    __tablename__ = 'staff_members'

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    active = Column(Integer, nullable=False, server_default=text('1'))
    availability = Column(Text, nullable=False, server_default=text("'{}'"))
    id = Column(Integer, primary_key=True)

    business = relationship('Businesses', back_populates='staff_members')
    services = relationship('Services', secondary=t_staff_services, back_populates='staff_members')
    bookings = relationship('Bookings', back_populates='staff_member')


class Services(Base):
    __tablename__ = 'services'
    __table_args__ = (
        CheckConstraint('spots IS NULL OR spots >= 0', name='ck_services_spots_non_negative'),
    )

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    duration = Column(Integer, nullable=False)
    price = Column(Float, nullable=False, server_default=text('0'))
    service_type = Column(Enum('standard', 'experience', name='service_type'), nullable=False, server_default=text("'standard'"))
    id = Column(Integer, primary_key=True)
    min_bookings = Column(Integer)
    max_bookings = Column(Integer)
    spots = Column(Integer)

    business = relationship('Businesses', back_populates='services')
    staff_members = relationship('StaffMembers', secondary=t_staff_services, back_populates='services')
    bookings = relationship('Bookings', back_populates='service')


class TenantCustomers(Base):
    __tablename__ = 'tenant_customers'
    __table_args__ = (
        UniqueConstraint('business_id', 'email'),
    )

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    first_name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    last_name = Column(Text)
    phone = Column(Text)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    business = relationship('Businesses', back_populates='tenant_customers')
    bookings = relationship('Bookings', back_populates='tenant_customer')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        # store-level guard against double-booking the same start
        Index(
            'uq_bookings_staff_start_active',
            'staff_member_id',
            'start_time',
            unique=True,
            sqlite_where=ACTIVE_BOOKING_FILTER,
            postgresql_where=ACTIVE_BOOKING_FILTER,
        ),
        Index('ix_bookings_staff_range', 'staff_member_id', 'start_time', 'end_time'),
    )

    business_id = Column(ForeignKey('businesses.id', ondelete='CASCADE'), nullable=False)
    staff_member_id = Column(ForeignKey('staff_members.id'), nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    tenant_customer_id = Column(ForeignKey('tenant_customers.id'))
    start_time = Column(DateTime, nullable=False)  # naive UTC
    end_time = Column(DateTime, nullable=False)  # naive UTC
    status = Column(
        Enum('pending', 'confirmed', 'cancelled', 'completed', name='booking_status'),
        nullable=False,
        server_default=text("'pending'"),
    )
    quantity = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    amount = Column(Float)
    original_amount = Column(Float)
    discount_amount = Column(Float, nullable=False, server_default=text('0'))
    notes = Column(Text)
    cancellation_reason = Column(Text)
    manager_override = Column(Integer, nullable=False, server_default=text('0'))
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    business = relationship('Businesses', back_populates='bookings')
    staff_member = relationship('StaffMembers', back_populates='bookings')
    service = relationship('Services', back_populates='bookings')
    tenant_customer = relationship('TenantCustomers', back_populates='bookings')
