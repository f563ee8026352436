# backend/bookflow/services/membership_ledger.py
"""
Membership entitlement ledger.

membership_ledger is append-only and the source of truth. The balance
columns on customer_memberships are a materialization: every ledger insert
goes through append_entry(), which recomputes them from SUM(delta).
Nothing else writes minutes_remaining / uses_remaining.

Debit policy for a booking (required_minutes, required_uses):
1. minutes, if required_minutes > 0 and the balance covers all of them
2. otherwise max(required_uses, 1) uses, if available
3. otherwise InsufficientBalance

One debit per (membership, booking) is enforced by the partial unique
index uq_membership_ledger_booking_debit.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..database import supports_row_locks
from ..errors import InsufficientBalance, NoEligibleEntitlement, NotFoundError, ValidationError
from ..models.generated import (
    CustomerMemberships as DBMembership,
    MembershipLedger as DBLedger,
    MembershipPlans as DBPlan,
)
from .clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class EntitlementDebit:
    membership_id: int
    minutes_delta: int
    uses_delta: int
    already_debited: bool = False
    ledger_entry_id: Optional[int] = None


def compute_debit(membership: DBMembership, required_minutes: int, required_uses: int) -> tuple[int, int]:
    """
    Deltas (minutes, uses) to debit from the membership.

    Raises:
        InsufficientBalance: neither minutes nor uses cover the requirement
    """
    uses_needed = max(required_uses or 0, 1)
    minutes = membership.minutes_remaining or 0
    uses = membership.uses_remaining or 0

    if required_minutes and required_minutes > 0 and minutes >= required_minutes:
        return -required_minutes, 0
    if uses >= uses_needed:
        return 0, -uses_needed
    raise InsufficientBalance()


def _eligibility_filters(now: datetime, required_minutes: int, uses_needed: int) -> list:
    covers = DBMembership.uses_remaining >= uses_needed
    if required_minutes and required_minutes > 0:
        covers = or_(DBMembership.minutes_remaining >= required_minutes, covers)
    return [
        DBMembership.status == "active",
        or_(DBMembership.end_at.is_(None), DBMembership.end_at > now),
        or_(DBMembership.start_at.is_(None), DBMembership.start_at <= now),
        covers,
    ]


def select_eligible_membership(
    db: Session,
    tenant_id: int,
    customer_id: int,
    required_minutes: int,
    required_uses: int = 0,
    lock: bool = True,
) -> Optional[DBMembership]:
    """
    Pick the one membership to debit, deterministically.

    Soonest expiry first (no expiry last), then the highest remaining
    balance, then the lowest id. The chosen row is locked FOR UPDATE so
    concurrent consumers of the same membership serialize.
    """
    now = utcnow()
    uses_needed = max(required_uses or 0, 1)

    query = (
        db.query(DBMembership)
        .filter(
            DBMembership.tenant_id == tenant_id,
            DBMembership.customer_id == customer_id,
            *_eligibility_filters(now, required_minutes, uses_needed),
        )
        .order_by(
            DBMembership.end_at.is_(None).asc(),
            DBMembership.end_at.asc(),
            DBMembership.minutes_remaining.desc(),
            DBMembership.uses_remaining.desc(),
            DBMembership.id.asc(),
        )
        .limit(1)
    )
    if lock and supports_row_locks(db):
        query = query.with_for_update()
    return query.first()


def lock_membership(db: Session, tenant_id: int, customer_id: int, membership_id: int) -> DBMembership:
    """
    Load an explicitly chosen membership under a row lock and check it is usable now.

    Raises:
        NoEligibleEntitlement: unknown, foreign, inactive or out-of-window membership
    """
    query = db.query(DBMembership).filter(
        DBMembership.id == membership_id,
        DBMembership.tenant_id == tenant_id,
        DBMembership.customer_id == customer_id,
    )
    if supports_row_locks(db):
        query = query.with_for_update()
    membership = query.first()

    if not membership:
        raise NoEligibleEntitlement("Membership not found for this customer.")

    now = utcnow()
    if membership.status != "active":
        raise NoEligibleEntitlement(f"Membership is {membership.status}.")
    if membership.end_at is not None and membership.end_at <= now:
        raise NoEligibleEntitlement("Membership has expired.")
    if membership.start_at is not None and membership.start_at > now:
        raise NoEligibleEntitlement("Membership has not started yet.")
    return membership


# ── Ledger writes ────────────────────────────────────────────────────────


def refresh_balances(db: Session, membership: DBMembership) -> DBMembership:
    """Recompute the materialized balances from the ledger."""
    membership.minutes_remaining, membership.uses_remaining = ledger_totals(db, membership.id)
    return membership


def append_entry(
    db: Session,
    membership: DBMembership,
    entry_type: str,
    minutes_delta: int = 0,
    uses_delta: int = 0,
    booking_id: Optional[int] = None,
    note: Optional[str] = None,
) -> DBLedger:
    """
    Append one ledger row and refresh the membership balances.

    Flushes, so a second debit for the same booking raises IntegrityError
    here; the caller decides whether that is a replay.
    """
    entry = DBLedger(
        tenant_id=membership.tenant_id,
        customer_membership_id=membership.id,
        type=entry_type,
        minutes_delta=minutes_delta,
        uses_delta=uses_delta,
        booking_id=booking_id,
        note=note,
        created_at=utcnow(),
    )
    db.add(entry)
    db.flush()

    refresh_balances(db, membership)
    if (
        entry_type == "debit"
        and membership.status == "active"
        and membership.minutes_remaining <= 0
        and membership.uses_remaining <= 0
    ):
        membership.status = "expired"
        logger.info(f"Membership {membership.id} exhausted, marked expired")
    db.flush()
    return entry


def record_debit(
    db: Session,
    membership: DBMembership,
    booking_id: int,
    minutes_delta: int,
    uses_delta: int,
    note: Optional[str] = None,
) -> EntitlementDebit:
    entry = append_entry(
        db,
        membership,
        "debit",
        minutes_delta=minutes_delta,
        uses_delta=uses_delta,
        booking_id=booking_id,
        note=note or f"Booking #{booking_id}",
    )
    logger.info(
        f"Membership {membership.id} debited for booking {booking_id}: "
        f"minutes {minutes_delta}, uses {uses_delta}"
    )
    return EntitlementDebit(
        membership_id=membership.id,
        minutes_delta=minutes_delta,
        uses_delta=uses_delta,
        ledger_entry_id=entry.id,
    )


def find_booking_debit(db: Session, tenant_id: int, booking_id: int) -> Optional[DBLedger]:
    """Existing debit row for a booking, if any."""
    return (
        db.query(DBLedger)
        .filter(
            DBLedger.tenant_id == tenant_id,
            DBLedger.booking_id == booking_id,
            DBLedger.type == "debit",
        )
        .order_by(DBLedger.id.asc())
        .first()
    )


def debit_from_entry(entry: DBLedger) -> EntitlementDebit:
    return EntitlementDebit(
        membership_id=entry.customer_membership_id,
        minutes_delta=entry.minutes_delta,
        uses_delta=entry.uses_delta,
        already_debited=True,
        ledger_entry_id=entry.id,
    )


def consume_entitlement(
    db: Session,
    tenant_id: int,
    customer_id: int,
    required_minutes: int,
    required_uses: int,
    booking_id: int,
) -> EntitlementDebit:
    """
    Select the eligible membership and debit it for the booking.

    Runs inside the caller's transaction; the caller commits.

    Raises:
        NoEligibleEntitlement: no active, in-window membership covers the requirement
        InsufficientBalance: the selected membership cannot cover the debit
    """
    existing = find_booking_debit(db, tenant_id, booking_id)
    if existing:
        return debit_from_entry(existing)

    membership = select_eligible_membership(db, tenant_id, customer_id, required_minutes, required_uses)
    if not membership:
        raise NoEligibleEntitlement()

    minutes_delta, uses_delta = compute_debit(membership, required_minutes, required_uses)
    return record_debit(db, membership, booking_id, minutes_delta, uses_delta)


# ── Subscriptions ────────────────────────────────────────────────────────


def subscribe(db: Session, tenant_id: int, customer_id: int, plan_id: int) -> tuple[DBMembership, bool]:
    """
    Start a membership from a plan: zero balances plus one grant row.

    Returns (membership, created). An already active membership of the same
    plan is returned instead of a duplicate.
    """
    from ..models.generated import Customers

    customer = db.query(Customers).filter(
        Customers.id == customer_id,
        Customers.tenant_id == tenant_id,
    ).first()
    if not customer:
        raise ValidationError("Unknown customer for tenant.")

    plan = db.query(DBPlan).filter(DBPlan.id == plan_id, DBPlan.tenant_id == tenant_id).first()
    if not plan:
        raise NotFoundError("Plan not found.")
    if not plan.is_active:
        raise ValidationError("Plan is not active.")

    now = utcnow()
    existing = (
        db.query(DBMembership)
        .filter(
            DBMembership.tenant_id == tenant_id,
            DBMembership.customer_id == customer_id,
            DBMembership.plan_id == plan_id,
            DBMembership.status == "active",
            or_(DBMembership.end_at.is_(None), DBMembership.end_at > now),
        )
        .order_by(DBMembership.id.asc())
        .first()
    )
    if existing:
        return existing, False

    membership = DBMembership(
        tenant_id=tenant_id,
        customer_id=customer_id,
        plan_id=plan_id,
        status="active",
        minutes_remaining=0,
        uses_remaining=0,
        start_at=now,
        end_at=now + timedelta(days=plan.validity_days or 30),
        created_at=now,
    )
    db.add(membership)
    db.flush()

    append_entry(
        db,
        membership,
        "grant",
        minutes_delta=plan.included_minutes or 0,
        uses_delta=plan.included_uses or 0,
        note="Membership purchased",
    )
    logger.info(f"Customer {customer_id} subscribed to plan {plan_id} (membership {membership.id})")
    return membership, True


def ledger_totals(db: Session, membership_id: int) -> tuple[int, int]:
    """SUM(minutes_delta), SUM(uses_delta) for a membership."""
    minutes, uses = (
        db.query(
            func.coalesce(func.sum(DBLedger.minutes_delta), 0),
            func.coalesce(func.sum(DBLedger.uses_delta), 0),
        )
        .filter(DBLedger.customer_membership_id == membership_id)
        .one()
    )
    return int(minutes), int(uses)
