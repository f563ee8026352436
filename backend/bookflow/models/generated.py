from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata

BOOKING_STATUSES = ('pending', 'confirmed', 'cancelled')
AVAILABILITY_BASES = ('none', 'staff', 'resource', 'both', 'auto')
OVERRIDE_TYPES = ('OFF', 'ADD_HOURS', 'CUSTOM_HOURS')
MEMBERSHIP_STATUSES = ('active', 'expired', 'archived')
LEDGER_TYPES = ('grant', 'debit')


class Tenants(Base):
    __tablename__ = 'tenants'

    slug = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    timezone = Column(Text, nullable=False, server_default=text("'UTC'"))
    currency = Column(Text, nullable=False, server_default=text("'USD'"))
    require_phone = Column(Integer, nullable=False, server_default=text('0'))
    id = Column(Integer, primary_key=True)
    last_booking_change_at = Column(DateTime)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    hours = relationship('TenantHours', back_populates='tenant')
    services = relationship('Services', back_populates='tenant')
    staff = relationship('Staff', back_populates='tenant')
    resources = relationship('Resources', back_populates='tenant')
    customers = relationship('Customers', back_populates='tenant')
    bookings = relationship('Bookings', back_populates='tenant')


class TenantHours(Base):
    __tablename__ = 'tenant_hours'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'day_of_week'),
    )

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday .. 6 = Saturday
    id = Column(Integer, primary_key=True)
    open_time = Column(Text)   # "HH:MM"
    close_time = Column(Text)  # "HH:MM", <= open_time means overnight
    is_closed = Column(Integer, nullable=False, server_default=text('0'))

    tenant = relationship('Tenants', back_populates='hours')


class Services(Base):
    __tablename__ = 'services'

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    duration_minutes = Column(Integer, nullable=False, server_default=text('60'))
    max_parallel_bookings = Column(Integer, nullable=False, server_default=text('1'))
    requires_staff = Column(Integer, nullable=False, server_default=text('0'))
    requires_resource = Column(Integer, nullable=False, server_default=text('0'))
    requires_confirmation = Column(Integer, nullable=False, server_default=text('0'))
    allow_membership = Column(Integer, nullable=False, server_default=text('0'))
    availability_basis = Column(Enum(*AVAILABILITY_BASES, name='availability_basis'), nullable=False, server_default=text("'auto'"))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    slot_interval_minutes = Column(Integer)  # NULL = duration
    max_consecutive_slots = Column(Integer)

    tenant = relationship('Tenants', back_populates='services')
    bookings = relationship('Bookings', back_populates='service')

    @property
    def effective_availability_basis(self) -> str:
        """
        The basis the engine actually uses.

        An explicit basis wins; 'auto' (or missing) is derived from the
        requires_staff / requires_resource flags.
        """
        basis = self.availability_basis or 'auto'
        if basis != 'auto':
            return basis
        if self.requires_staff and self.requires_resource:
            return 'both'
        if self.requires_staff:
            return 'staff'
        if self.requires_resource:
            return 'resource'
        return 'none'


class Staff(Base):
    __tablename__ = 'staff'

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)

    tenant = relationship('Tenants', back_populates='staff')
    schedules = relationship('StaffSchedules', back_populates='staff')
    overrides = relationship('StaffScheduleOverrides', back_populates='staff')
    bookings = relationship('Bookings', back_populates='staff')


class Resources(Base):
    __tablename__ = 'resources'

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)

    tenant = relationship('Tenants', back_populates='resources')
    bookings = relationship('Bookings', back_populates='resource')


class Customers(Base):
    __tablename__ = 'customers'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'email', name='uq_customers_tenant_email'),
    )

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    id = Column(Integer, primary_key=True)
    email = Column(Text)
    phone = Column(Text)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    tenant = relationship('Tenants', back_populates='customers')
    memberships = relationship('CustomerMemberships', back_populates='customer')


class StaffSchedules(Base):
    __tablename__ = 'staff_schedules'

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    staff_id = Column(ForeignKey('staff.id', ondelete='CASCADE'), nullable=False)
    weekday = Column(Integer, nullable=False)  # 0 = Sunday .. 6 = Saturday
    start_minute = Column(Integer, nullable=False)
    end_minute = Column(Integer, nullable=False)
    id = Column(Integer, primary_key=True)

    staff = relationship('Staff', back_populates='schedules')


class StaffScheduleOverrides(Base):
    __tablename__ = 'staff_schedule_overrides'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'staff_id', 'date', 'type', 'start_minute', 'end_minute',
                         name='staff_overrides_unique_block'),
        Index('idx_staff_overrides_tenant_staff_date', 'tenant_id', 'staff_id', 'date'),
    )

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    staff_id = Column(ForeignKey('staff.id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False)
    type = Column(Enum(*OVERRIDE_TYPES, name='staff_override_type'), nullable=False)
    id = Column(Integer, primary_key=True)
    start_minute = Column(Integer)  # NULL for OFF
    end_minute = Column(Integer)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    staff = relationship('Staff', back_populates='overrides')


class TenantBlackouts(Base):
    __tablename__ = 'tenant_blackouts'
    __table_args__ = (
        Index('idx_tenant_blackouts_window', 'tenant_id', 'starts_at', 'ends_at'),
    )

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    # NULL scope = applies to all
    resource_id = Column(ForeignKey('resources.id', ondelete='CASCADE'))
    staff_id = Column(ForeignKey('staff.id', ondelete='CASCADE'))
    service_id = Column(ForeignKey('services.id', ondelete='CASCADE'))
    reason = Column(Text)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'idempotency_key', name='uq_bookings_tenant_idempotency_key'),
        Index('idx_bookings_staff_window', 'tenant_id', 'staff_id', 'start_time', 'end_time'),
        Index('idx_bookings_resource_window', 'tenant_id', 'resource_id', 'start_time', 'end_time'),
    )

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id'))
    customer_id = Column(ForeignKey('customers.id', ondelete='SET NULL'))
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(Enum(*BOOKING_STATUSES, name='booking_status'), nullable=False, server_default=text("'pending'"))
    created_at = Column(DateTime, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(DateTime, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    id = Column(Integer, primary_key=True)
    staff_id = Column(ForeignKey('staff.id'))
    resource_id = Column(ForeignKey('resources.id'))
    customer_name = Column(Text)
    customer_phone = Column(Text)
    customer_email = Column(Text)
    idempotency_key = Column(Text)
    booking_code = Column(Text)
    customer_membership_id = Column(ForeignKey('customer_memberships.id', ondelete='SET NULL'))

    tenant = relationship('Tenants', back_populates='bookings')
    service = relationship('Services', back_populates='bookings')
    staff = relationship('Staff', back_populates='bookings')
    resource = relationship('Resources', back_populates='bookings')

    @property
    def tenant_slug(self):
        return self.tenant.slug if self.tenant else None

    @property
    def service_name(self):
        return self.service.name if self.service else None

    @property
    def staff_name(self):
        return self.staff.name if self.staff else None

    @property
    def resource_name(self):
        return self.resource.name if self.resource else None


class MembershipPlans(Base):
    __tablename__ = 'membership_plans'

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    included_minutes = Column(Integer, nullable=False, server_default=text('0'))
    included_uses = Column(Integer, nullable=False, server_default=text('0'))
    validity_days = Column(Integer, nullable=False, server_default=text('30'))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    description = Column(Text)
    price = Column(Float)
    currency = Column(Text)

    memberships = relationship('CustomerMemberships', back_populates='plan')


class CustomerMemberships(Base):
    __tablename__ = 'customer_memberships'

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    customer_id = Column(ForeignKey('customers.id', ondelete='CASCADE'), nullable=False)
    plan_id = Column(ForeignKey('membership_plans.id'), nullable=False)
    status = Column(Enum(*MEMBERSHIP_STATUSES, name='membership_status'), nullable=False, server_default=text("'active'"))
    # Materialized from membership_ledger; only the ledger service writes these
    minutes_remaining = Column(Integer, nullable=False, server_default=text('0'))
    uses_remaining = Column(Integer, nullable=False, server_default=text('0'))
    id = Column(Integer, primary_key=True)
    start_at = Column(DateTime)
    end_at = Column(DateTime)
    created_at = Column(DateTime, server_default=text('CURRENT_TIMESTAMP'))

    customer = relationship('Customers', back_populates='memberships')
    plan = relationship('MembershipPlans', back_populates='memberships')
    ledger = relationship('MembershipLedger', back_populates='membership')

    @property
    def plan_name(self):
        return self.plan.name if self.plan else None


class MembershipLedger(Base):
    __tablename__ = 'membership_ledger'
    __table_args__ = (
        # At most one debit per (membership, booking); doubles as the write idempotency guard
        Index(
            'uq_membership_ledger_booking_debit',
            'customer_membership_id',
            'booking_id',
            unique=True,
            postgresql_where=text("type = 'debit'"),
            sqlite_where=text("type = 'debit'"),
        ),
    )

    tenant_id = Column(ForeignKey('tenants.id', ondelete='CASCADE'), nullable=False)
    customer_membership_id = Column(ForeignKey('customer_memberships.id', ondelete='CASCADE'), nullable=False)
    type = Column(Enum(*LEDGER_TYPES, name='membership_ledger_type'), nullable=False)
    minutes_delta = Column(Integer, nullable=False, server_default=text('0'))
    uses_delta = Column(Integer, nullable=False, server_default=text('0'))
    created_at = Column(DateTime, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    id = Column(Integer, primary_key=True)
    booking_id = Column(ForeignKey('bookings.id', ondelete='SET NULL'))
    note = Column(Text)

    membership = relationship('CustomerMemberships', back_populates='ledger')
