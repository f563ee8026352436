# backend/bookflow/services/booking_tx.py
"""
Booking creation and status changes.

create() runs one transaction:
 1. resolve service, duration, staff/resource (all tenant-scoped)
 2. idempotency replay: existing (tenant, key) row is returned unchanged
 3. upsert the customer from the authenticated identity
 4. phone-required policy
 5. reject starts more than the grace period in the past
 6. lock timeouts + FOR UPDATE on the resource, then the staff row
 7. blackout recheck              -> BlackoutConflict
 8. conflict recheck under lock   -> BookingConflict
 9. resolve membership + compute debit
10. insert booking (uniqueness hit on the key -> replay)
11. booking_code, ledger debit, commit
12. heartbeat + event, best-effort, after commit

The staff/resource row locks are what serialize two bookers of the same
slot on PostgreSQL; SQLite serializes writers on its own.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..database import apply_transaction_timeouts, supports_row_locks, transient_store_errors
from ..errors import (
    BlackoutConflict,
    BookingConflict,
    InsufficientBalance,
    InvalidStatusTransition,
    NoEligibleEntitlement,
    NotFoundError,
    ProfileIncomplete,
    TransientStoreError,
    ValidationError,
)
from ..models.generated import (
    BOOKING_STATUSES,
    Bookings as DBBooking,
    Customers as DBCustomer,
    Resources as DBResource,
    Services as DBService,
    Staff as DBStaff,
)
from .blackouts import blackout_to_dict, find_blackout_overlap
from .clock import tenant_zone, to_utc_naive, utcnow
from .conflicts import check_conflicts
from .events import signal_booking_change
from .membership_ledger import (
    EntitlementDebit,
    compute_debit,
    lock_membership,
    record_debit,
    select_eligible_membership,
)
from .slots.config import BookingConfig, get_booking_config

logger = logging.getLogger(__name__)

# from_status -> allowed targets; same -> same is always accepted as a no-op
STATUS_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"cancelled"},
    "cancelled": set(),
}


def can_transition_status(from_status: str, to_status: str) -> bool:
    if from_status == to_status:
        return True
    return to_status in STATUS_TRANSITIONS.get(from_status, set())


@dataclass
class BookingRequest:
    service_id: int
    start_time: datetime
    customer_email: str
    duration_minutes: Optional[int] = None
    staff_id: Optional[int] = None
    resource_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    idempotency_key: Optional[str] = None
    customer_membership_id: Optional[int] = None
    require_membership: bool = False
    auto_consume_membership: bool = False

    @property
    def wants_membership(self) -> bool:
        return bool(self.customer_membership_id or self.require_membership or self.auto_consume_membership)


@dataclass
class BookingResult:
    booking: DBBooking
    created: bool
    membership_debit: Optional[EntitlementDebit] = None


class BookingTransactionManager:
    """Owns the atomic create-booking protocol for one request."""

    def __init__(self, db: Session, config: Optional[BookingConfig] = None):
        self.db = db
        self.config = config or get_booking_config()

    def create(self, tenant, req: BookingRequest) -> BookingResult:
        db = self.db

        # ── Resolve and validate ──
        service = _get_service(db, tenant.id, req.service_id)
        if not service:
            raise ValidationError("Unknown service for tenant.")

        duration = self._resolve_duration(service, req.duration_minutes)
        basis = service.effective_availability_basis

        if req.staff_id is not None and not _get_staff(db, tenant.id, req.staff_id):
            raise ValidationError("staffId is not valid for this tenant.")
        if req.resource_id is not None and not _get_resource(db, tenant.id, req.resource_id):
            raise ValidationError("resourceId is not valid for this tenant.")
        if basis in ("staff", "both") and req.staff_id is None:
            raise ValidationError("staffId is required for this service.")
        if basis in ("resource", "both") and req.resource_id is None:
            raise ValidationError("resourceId is required for this service.")

        start = to_utc_naive(req.start_time, tenant_zone(tenant.timezone))
        end = start + timedelta(minutes=duration)

        # ── Idempotent replay ──
        if req.idempotency_key:
            existing = find_by_idempotency_key(db, tenant.id, req.idempotency_key)
            if existing:
                logger.info(f"Booking replay for tenant {tenant.id} key {req.idempotency_key!r} -> {existing.id}")
                return BookingResult(booking=existing, created=False)

        # A first-time customer inserted concurrently gets one retry, which then finds the row
        for attempt in (1, 2):
            with transient_store_errors(db):
                try:
                    result = self._create_locked(tenant, service, req, start, end, duration)
                    break
                except IntegrityError as e:
                    db.rollback()
                    existing = (
                        find_by_idempotency_key(db, tenant.id, req.idempotency_key)
                        if req.idempotency_key else None
                    )
                    if existing:
                        logger.info(f"Booking replay after insert race, tenant {tenant.id} booking {existing.id}")
                        return BookingResult(booking=existing, created=False)
                    if not _is_customer_conflict(e):
                        raise
                    if attempt == 2:
                        raise TransientStoreError() from e
                    logger.info(f"Customer insert race for tenant {tenant.id}, retrying booking once")
                except Exception:
                    db.rollback()
                    raise

        booking = result.booking
        logger.info(
            f"Booking {booking.id} created for tenant {tenant.id}: service {service.id}, "
            f"{start.isoformat()} +{duration}min, status {booking.status}"
        )
        signal_booking_change(db, tenant.id, "booking_created", {
            "booking_id": booking.id,
            "status": booking.status,
        })
        result.booking = load_booking(db, tenant.id, booking.id)
        return result

    def _resolve_duration(self, service: DBService, requested: Optional[int]) -> int:
        duration = requested or service.duration_minutes or 60
        if duration < 1:
            raise ValidationError("durationMinutes must be positive.")

        if requested and service.max_consecutive_slots:
            step = service.slot_interval_minutes or service.duration_minutes or 60
            limit = service.max_consecutive_slots * step
            if duration > limit:
                raise ValidationError(f"durationMinutes exceeds the maximum of {limit} for this service.")
        return duration

    def _create_locked(
        self,
        tenant,
        service: DBService,
        req: BookingRequest,
        start: datetime,
        end: datetime,
        duration: int,
    ) -> BookingResult:
        db = self.db

        customer = upsert_customer(db, tenant.id, req.customer_email, req.customer_name, req.customer_phone)

        if tenant.require_phone and not (customer.phone or "").strip():
            raise ProfileIncomplete(["phone"])

        if start < utcnow() - timedelta(seconds=self.config.past_booking_grace_seconds):
            raise ValidationError("Cannot book a time in the past.")

        apply_transaction_timeouts(db, self.config.lock_timeout_ms, self.config.statement_timeout_ms)
        _lock_rows(db, req.resource_id, req.staff_id)

        blackout = find_blackout_overlap(
            db, tenant.id, start, end,
            resource_id=req.resource_id, staff_id=req.staff_id, service_id=service.id,
        )
        if blackout:
            logger.info(f"Booking rejected by blackout {blackout.id} for tenant {tenant.id}")
            raise BlackoutConflict(blackout_to_dict(blackout))

        conflicts = check_conflicts(
            db, tenant.id, start, duration,
            staff_id=req.staff_id,
            resource_id=req.resource_id,
            lock=True,
            limit=self.config.max_conflict_rows,
        )
        if conflicts.conflict:
            logger.info(f"Booking rejected by {len(conflicts.rows)} conflict(s) for tenant {tenant.id}")
            raise BookingConflict(conflicts.rows)

        membership, debit = self._resolve_membership(tenant, service, customer, req, duration)

        now = utcnow()
        booking = DBBooking(
            tenant_id=tenant.id,
            service_id=service.id,
            staff_id=req.staff_id,
            resource_id=req.resource_id,
            customer_id=customer.id,
            start_time=start,
            end_time=end,
            duration_minutes=duration,
            status="pending" if service.requires_confirmation else "confirmed",
            customer_name=customer.name,
            customer_phone=customer.phone,
            customer_email=customer.email,
            idempotency_key=req.idempotency_key,
            customer_membership_id=membership.id if membership else None,
            created_at=now,
            updated_at=now,
        )
        db.add(booking)
        db.flush()

        booking.booking_code = make_booking_code(customer.name, tenant.id, service.id, now, booking.id)

        entitlement = None
        if membership:
            entitlement = record_debit(db, membership, booking.id, *debit)

        db.commit()
        return BookingResult(booking=booking, created=True, membership_debit=entitlement)

    def _resolve_membership(self, tenant, service: DBService, customer: DBCustomer, req: BookingRequest, duration: int):
        """(membership, (minutes_delta, uses_delta)) or (None, None)."""
        if not req.wants_membership:
            return None, None

        hard = bool(req.customer_membership_id or req.require_membership)
        if not service.allow_membership:
            if hard:
                raise NoEligibleEntitlement("This service cannot be booked with a membership.")
            return None, None

        if req.customer_membership_id:
            membership = lock_membership(db=self.db, tenant_id=tenant.id, customer_id=customer.id,
                                         membership_id=req.customer_membership_id)
            return membership, compute_debit(membership, duration, 1)

        membership = select_eligible_membership(self.db, tenant.id, customer.id, duration, 1)
        if not membership:
            if hard:
                raise NoEligibleEntitlement()
            return None, None

        try:
            return membership, compute_debit(membership, duration, 1)
        except InsufficientBalance:
            if hard:
                raise
            return None, None

    def update_status(self, tenant, booking_id: int, new_status: str) -> tuple[DBBooking, bool]:
        """
        Apply the status matrix. Returns (booking, changed).

        Same -> same is accepted without a write or heartbeat.
        """
        if new_status not in BOOKING_STATUSES:
            raise ValidationError(f"Invalid status. Allowed: {', '.join(BOOKING_STATUSES)}")

        db = self.db
        with transient_store_errors(db):
            apply_transaction_timeouts(db, self.config.lock_timeout_ms, self.config.statement_timeout_ms)
            query = db.query(DBBooking).filter(DBBooking.id == booking_id, DBBooking.tenant_id == tenant.id)
            if supports_row_locks(db):
                query = query.with_for_update()
            booking = query.first()
            if not booking:
                db.rollback()
                raise NotFoundError("Booking not found")

            old_status = booking.status
            if old_status == new_status:
                db.rollback()
                return load_booking(db, tenant.id, booking_id), False
            if not can_transition_status(old_status, new_status):
                db.rollback()
                raise InvalidStatusTransition(old_status, new_status)

            booking.status = new_status
            booking.updated_at = utcnow()
            db.commit()

        logger.info(f"Booking {booking_id} status {old_status} -> {new_status}")
        signal_booking_change(db, tenant.id, "booking_status_changed", {
            "booking_id": booking_id,
            "old_status": old_status,
            "status": new_status,
        })
        return load_booking(db, tenant.id, booking_id), True


def make_booking_code(customer_name: Optional[str], tenant_id: int, service_id: Optional[int], when: datetime, booking_id: int) -> str:
    first_letter = (customer_name or "X").strip()[:1].upper() or "X"
    return f"{first_letter}-{tenant_id}-{service_id or 0}-{when.strftime('%Y%m%d')}-{booking_id}"


def upsert_customer(
    db: Session,
    tenant_id: int,
    email: str,
    name: Optional[str] = None,
    phone: Optional[str] = None,
) -> DBCustomer:
    """
    Find the tenant customer by email (case-insensitive) or create one.

    A supplied phone is stored only when none is on file.
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Customer email is required.")
    phone = (phone or "").strip() or None
    name = (name or "").strip() or email.split("@")[0]

    customer = db.query(DBCustomer).filter(
        DBCustomer.tenant_id == tenant_id,
        func.lower(DBCustomer.email) == email,
    ).first()

    if customer:
        if phone and not customer.phone:
            customer.phone = phone
            customer.updated_at = utcnow()
        return customer

    customer = DBCustomer(tenant_id=tenant_id, email=email, name=name, phone=phone)
    db.add(customer)
    db.flush()
    return customer


# ── Database helpers ─────────────────────────────────────────────────────


def find_by_idempotency_key(db: Session, tenant_id: int, key: str) -> Optional[DBBooking]:
    return (
        db.query(DBBooking)
        .options(*joined_options())
        .filter(DBBooking.tenant_id == tenant_id, DBBooking.idempotency_key == key)
        .first()
    )


def load_booking(db: Session, tenant_id: int, booking_id: int) -> Optional[DBBooking]:
    """Booking joined with service/staff/resource names."""
    return (
        db.query(DBBooking)
        .options(*joined_options())
        .filter(DBBooking.id == booking_id, DBBooking.tenant_id == tenant_id)
        .first()
    )


def joined_options():
    return (
        joinedload(DBBooking.tenant),
        joinedload(DBBooking.service),
        joinedload(DBBooking.staff),
        joinedload(DBBooking.resource),
    )


def _is_customer_conflict(exc: IntegrityError) -> bool:
    """Uniqueness hit on customers (tenant_id, email): constraint name on PostgreSQL, columns on SQLite."""
    message = str(exc.orig)
    return "uq_customers_tenant_email" in message or "customers.email" in message


def _get_service(db: Session, tenant_id: int, service_id: int) -> Optional[DBService]:
    return db.query(DBService).filter(
        DBService.id == service_id,
        DBService.tenant_id == tenant_id,
        DBService.is_active == 1,
    ).first()


def _get_staff(db: Session, tenant_id: int, staff_id: int) -> Optional[DBStaff]:
    return db.query(DBStaff).filter(DBStaff.id == staff_id, DBStaff.tenant_id == tenant_id).first()


def _get_resource(db: Session, tenant_id: int, resource_id: int) -> Optional[DBResource]:
    return db.query(DBResource).filter(DBResource.id == resource_id, DBResource.tenant_id == tenant_id).first()


def _lock_rows(db: Session, resource_id: Optional[int], staff_id: Optional[int]) -> None:
    """Row locks in a fixed order (resource, then staff) to avoid deadlocks."""
    if not supports_row_locks(db):
        return
    if resource_id is not None:
        db.query(DBResource.id).filter(DBResource.id == resource_id).with_for_update().one()
    if staff_id is not None:
        db.query(DBStaff.id).filter(DBStaff.id == staff_id).with_for_update().one()
