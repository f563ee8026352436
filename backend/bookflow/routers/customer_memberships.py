# backend/bookflow/routers/customer_memberships.py
"""
Customer memberships and their ledger.

Balances in responses are the ledger materialization; no endpoint
writes them directly.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..database import apply_transaction_timeouts, get_db, transient_store_errors
from ..dependencies import get_config, get_tenant
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.generated import (
    Bookings as DBBooking,
    CustomerMemberships as DBMembership,
    MembershipLedger as DBLedger,
)
from ..schemas.memberships import (
    ConsumeNextRequest,
    ConsumeNextResponse,
    CustomerMembershipRead,
    LedgerResponse,
    SubscribeRequest,
)
from ..services.events import emit_event
from ..services.membership_ledger import (
    consume_entitlement,
    find_booking_debit,
    ledger_totals,
    subscribe,
)
from ..services.slots import BookingConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customer-memberships", tags=["customer-memberships"])


def _get_membership(db: Session, tenant_id: int, membership_id: int) -> DBMembership:
    obj = (
        db.query(DBMembership)
        .options(joinedload(DBMembership.plan))
        .filter(DBMembership.id == membership_id, DBMembership.tenant_id == tenant_id)
        .first()
    )
    if not obj:
        raise NotFoundError("Membership not found for tenant.")
    return obj


@router.get("", response_model=list[CustomerMembershipRead])
def list_customer_memberships(
    customer_id: Optional[int] = Query(None, alias="customerId"),
    tenant=Depends(get_tenant),
    db: Session = Depends(get_db),
):
    query = (
        db.query(DBMembership)
        .options(joinedload(DBMembership.plan))
        .filter(DBMembership.tenant_id == tenant.id)
    )
    if customer_id is not None:
        query = query.filter(DBMembership.customer_id == customer_id)
    return query.order_by(DBMembership.created_at.desc(), DBMembership.id.desc()).all()


@router.post("/subscribe", response_model=CustomerMembershipRead, status_code=status.HTTP_201_CREATED)
def subscribe_customer(
    data: SubscribeRequest,
    response: Response,
    tenant=Depends(get_tenant),
    db: Session = Depends(get_db),
):
    """Start a membership from a plan. 200 with the existing one if already active."""
    try:
        membership, created = subscribe(db, tenant.id, data.customer_id, data.membership_plan_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    if not created:
        response.status_code = status.HTTP_200_OK
    return _get_membership(db, tenant.id, membership.id)


@router.patch("/{id}/archive", response_model=CustomerMembershipRead)
def archive_customer_membership(id: int, tenant=Depends(get_tenant), db: Session = Depends(get_db)):
    obj = _get_membership(db, tenant.id, id)
    if obj.status != "archived":
        obj.status = "archived"
        db.commit()
        logger.info(f"Membership {id} archived (tenant {tenant.id})")
    return _get_membership(db, tenant.id, id)


@router.post("/consume-next", response_model=ConsumeNextResponse)
def consume_next(
    data: ConsumeNextRequest,
    tenant=Depends(get_tenant),
    config: BookingConfig = Depends(get_config),
    db: Session = Depends(get_db),
):
    """
    Debit one eligible membership for a booking.

    A booking that already has a debit returns the current membership
    state with already_debited=true instead of debiting again.
    """
    if data.minutes_to_debit == 0 and data.uses_to_debit == 0:
        raise ValidationError("minutesToDebit or usesToDebit is required.")

    booking = db.query(DBBooking.id).filter(
        DBBooking.id == data.booking_id,
        DBBooking.tenant_id == tenant.id,
    ).first()
    if not booking:
        raise NotFoundError("Booking not found for tenant.")

    with transient_store_errors(db):
        try:
            apply_transaction_timeouts(db, config.lock_timeout_ms, config.statement_timeout_ms)
            debit = consume_entitlement(
                db,
                tenant.id,
                data.customer_id,
                required_minutes=data.minutes_to_debit,
                required_uses=data.uses_to_debit,
                booking_id=data.booking_id,
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = find_booking_debit(db, tenant.id, data.booking_id)
            if not existing:
                raise ConflictError("Booking already debited.")
            return _debit_response(db, tenant.id, existing.customer_membership_id,
                                   existing.minutes_delta, existing.uses_delta, True)
        except Exception:
            db.rollback()
            raise

    if not debit.already_debited:
        emit_event("membership_debited", {
            "tenant_id": tenant.id,
            "membership_id": debit.membership_id,
            "booking_id": data.booking_id,
        })
    return _debit_response(db, tenant.id, debit.membership_id,
                           debit.minutes_delta, debit.uses_delta, debit.already_debited)


def _debit_response(db: Session, tenant_id: int, membership_id: int, minutes: int, uses: int, already: bool) -> ConsumeNextResponse:
    membership = _get_membership(db, tenant_id, membership_id)
    return ConsumeNextResponse(
        membership=CustomerMembershipRead.model_validate(membership),
        minutes_delta=minutes,
        uses_delta=uses,
        already_debited=already,
    )


@router.get("/{id}/ledger", response_model=LedgerResponse)
def get_membership_ledger(id: int, tenant=Depends(get_tenant), db: Session = Depends(get_db)):
    membership = _get_membership(db, tenant.id, id)
    rows = (
        db.query(DBLedger)
        .filter(DBLedger.tenant_id == tenant.id, DBLedger.customer_membership_id == membership.id)
        .order_by(DBLedger.created_at.desc(), DBLedger.id.desc())
        .limit(200)
        .all()
    )
    minutes, uses = ledger_totals(db, membership.id)
    return LedgerResponse(membership_id=membership.id, minutes_total=minutes, uses_total=uses, ledger=rows)
