# backend/bookflow/routers/bookings.py

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import CustomerIdentity, get_config, get_customer_identity, get_tenant
from ..errors import NotFoundError
from ..schemas.bookings import (
    BookingCount,
    BookingCreate,
    BookingCursorRead,
    BookingPage,
    BookingRead,
    BookingStatusUpdate,
)
from ..services.booking_search import (
    BookingCursor,
    BookingSearch,
    count_bookings as count_matching,
    list_bookings as search_bookings,
)
from ..services.booking_tx import (
    BookingRequest,
    BookingTransactionManager,
    load_booking,
)
from ..services.clock import tenant_zone, to_utc_naive
from ..services.slots import BookingConfig

router = APIRouter(prefix="/bookings", tags=["bookings"])


def get_booking_search(
    scope: str = Query("upcoming", description="upcoming | past | range | all | latest"),
    status_filter: Optional[str] = Query(None, alias="status"),
    service_id: Optional[int] = Query(None, alias="serviceId"),
    staff_id: Optional[int] = Query(None, alias="staffId"),
    resource_id: Optional[int] = Query(None, alias="resourceId"),
    customer_id: Optional[int] = Query(None, alias="customerId"),
    text: Optional[str] = Query(None, alias="query", max_length=200),
    from_time: Optional[datetime] = Query(None, alias="from"),
    to_time: Optional[datetime] = Query(None, alias="to"),
    tenant=Depends(get_tenant),
) -> BookingSearch:
    """Query-string filters shared by the list and the count. Naive from/to are tenant-local."""
    zone = tenant_zone(tenant.timezone)
    return BookingSearch(
        scope=scope,
        status=(status_filter or "").strip().lower() or None,
        service_id=service_id,
        staff_id=staff_id,
        resource_id=resource_id,
        customer_id=customer_id,
        query=text,
        from_time=to_utc_naive(from_time, zone) if from_time else None,
        to_time=to_utc_naive(to_time, zone) if to_time else None,
    )


@router.get("", response_model=BookingPage)
def list_bookings(
    limit: int = Query(50, ge=1, le=200),
    cursor_start_time: Optional[datetime] = Query(None, alias="cursorStartTime"),
    cursor_created_at: Optional[datetime] = Query(None, alias="cursorCreatedAt"),
    cursor_id: Optional[int] = Query(None, alias="cursorId", gt=0),
    search: BookingSearch = Depends(get_booking_search),
    tenant=Depends(get_tenant),
    db: Session = Depends(get_db),
):
    """
    One page of bookings. Pass next_cursor back as cursorStartTime (or
    cursorCreatedAt for scope=latest) plus cursorId to get the next page.
    Cursor times are UTC, as returned.
    """
    cursor_at = cursor_created_at if search.by_created else cursor_start_time
    cursor = None
    if cursor_at is not None and cursor_id is not None:
        cursor = BookingCursor(at=to_utc_naive(cursor_at, timezone.utc), id=cursor_id)

    rows, next_cursor = search_bookings(db, tenant.id, search, limit=limit, cursor=cursor)

    page = BookingPage(bookings=[BookingRead.model_validate(row) for row in rows])
    if next_cursor:
        key = "created_at" if search.by_created else "start_time"
        page.next_cursor = BookingCursorRead(id=next_cursor.id, **{key: next_cursor.at})
    return page


@router.get("/count", response_model=BookingCount)
def count_bookings(
    search: BookingSearch = Depends(get_booking_search),
    tenant=Depends(get_tenant),
    db: Session = Depends(get_db),
):
    return BookingCount(count=count_matching(db, tenant.id, search))


@router.get("/{id}", response_model=BookingRead)
def get_booking(id: int, tenant=Depends(get_tenant), db: Session = Depends(get_db)):
    obj = load_booking(db, tenant.id, id)
    if not obj:
        raise NotFoundError("Booking not found")
    return obj


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    identity: CustomerIdentity = Depends(get_customer_identity),
    tenant=Depends(get_tenant),
    config: BookingConfig = Depends(get_config),
    db: Session = Depends(get_db),
):
    """
    Create a booking. 201 when created, 200 when the idempotency key
    matched an existing booking (returned unchanged).
    """
    key = (idempotency_key or data.idempotency_key or "").strip() or None

    req = BookingRequest(
        service_id=data.service_id,
        start_time=data.start_time,
        duration_minutes=data.duration_minutes,
        staff_id=data.staff_id,
        resource_id=data.resource_id,
        customer_email=identity.email,
        customer_name=identity.name,
        customer_phone=identity.phone,
        idempotency_key=key,
        customer_membership_id=data.customer_membership_id,
        require_membership=data.require_membership,
        auto_consume_membership=data.auto_consume_membership,
    )
    result = BookingTransactionManager(db, config).create(tenant, req)

    if not result.created:
        response.status_code = status.HTTP_200_OK
    return result.booking


@router.patch("/{id}/status", response_model=BookingRead)
def update_booking_status(
    id: int,
    data: BookingStatusUpdate,
    tenant=Depends(get_tenant),
    config: BookingConfig = Depends(get_config),
    db: Session = Depends(get_db),
):
    booking, _ = BookingTransactionManager(db, config).update_status(tenant, id, data.status.strip().lower())
    return booking


@router.delete("/{id}", response_model=BookingRead)
def cancel_booking(
    id: int,
    tenant=Depends(get_tenant),
    config: BookingConfig = Depends(get_config),
    db: Session = Depends(get_db),
):
    """Cancel (bookings are never hard-deleted)."""
    booking, _ = BookingTransactionManager(db, config).update_status(tenant, id, "cancelled")
    return booking
