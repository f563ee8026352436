# backend/bookflow/services/booking_search.py
"""
Booking lists for dashboards: scope, filters, text search, keyset pages.

Scopes:
- upcoming  start_time >= now, oldest first (default)
- past      start_time < now, newest first
- range     only the from/to bounds
- all       no implicit time bound, oldest first
- latest    no implicit time bound, newest created first

Pages are keyset pages on (start_time, id), or (created_at, id) for
latest, so rows inserted while paging never shift the window.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..errors import ValidationError
from ..models.generated import Bookings as DBBooking, Customers as DBCustomer
from .booking_tx import joined_options
from .clock import utcnow

BOOKING_SCOPES = ("upcoming", "past", "range", "all", "latest")


@dataclass
class BookingSearch:
    scope: str = "upcoming"
    status: Optional[str] = None
    service_id: Optional[int] = None
    staff_id: Optional[int] = None
    resource_id: Optional[int] = None
    customer_id: Optional[int] = None
    query: Optional[str] = None
    # naive UTC bounds on start_time, [from, to)
    from_time: Optional[datetime] = None
    to_time: Optional[datetime] = None

    def __post_init__(self):
        self.scope = (self.scope or "upcoming").strip().lower()
        if self.scope not in BOOKING_SCOPES:
            raise ValidationError(f"Invalid scope. Allowed: {', '.join(BOOKING_SCOPES)}")

    @property
    def by_created(self) -> bool:
        return self.scope == "latest"

    @property
    def newest_first(self) -> bool:
        return self.scope in ("past", "latest")


@dataclass
class BookingCursor:
    """Last row of the previous page: its sort time and id."""
    at: datetime
    id: int


def _filtered(db: Session, tenant_id: int, search: BookingSearch):
    query = db.query(DBBooking).filter(DBBooking.tenant_id == tenant_id)

    now = utcnow()
    if search.scope == "upcoming":
        query = query.filter(DBBooking.start_time >= now)
    elif search.scope == "past":
        query = query.filter(DBBooking.start_time < now)

    if search.from_time is not None:
        query = query.filter(DBBooking.start_time >= search.from_time)
    if search.to_time is not None:
        query = query.filter(DBBooking.start_time < search.to_time)

    if search.status and search.status != "all":
        query = query.filter(DBBooking.status == search.status)
    if search.service_id:
        query = query.filter(DBBooking.service_id == search.service_id)
    if search.staff_id:
        query = query.filter(DBBooking.staff_id == search.staff_id)
    if search.resource_id:
        query = query.filter(DBBooking.resource_id == search.resource_id)
    if search.customer_id:
        query = query.filter(DBBooking.customer_id == search.customer_id)

    text = (search.query or "").strip()
    if text:
        pattern = f"%{text}%"
        query = query.outerjoin(
            DBCustomer,
            and_(DBCustomer.id == DBBooking.customer_id, DBCustomer.tenant_id == DBBooking.tenant_id),
        ).filter(or_(
            DBBooking.booking_code.ilike(pattern),
            DBBooking.customer_name.ilike(pattern),
            DBBooking.customer_phone.ilike(pattern),
            DBBooking.customer_email.ilike(pattern),
            DBCustomer.name.ilike(pattern),
            DBCustomer.phone.ilike(pattern),
            DBCustomer.email.ilike(pattern),
        ))
    return query


def list_bookings(
    db: Session,
    tenant_id: int,
    search: Optional[BookingSearch] = None,
    limit: int = 50,
    cursor: Optional[BookingCursor] = None,
) -> tuple[list[DBBooking], Optional[BookingCursor]]:
    """
    One page of bookings joined with service/staff/resource names.

    Returns (rows, next_cursor); next_cursor is None on the last page.
    """
    search = search or BookingSearch()
    sort_col = DBBooking.created_at if search.by_created else DBBooking.start_time

    query = _filtered(db, tenant_id, search).options(*joined_options())

    if cursor is not None:
        if search.newest_first:
            after = or_(sort_col < cursor.at, and_(sort_col == cursor.at, DBBooking.id < cursor.id))
        else:
            after = or_(sort_col > cursor.at, and_(sort_col == cursor.at, DBBooking.id > cursor.id))
        query = query.filter(after)

    if search.newest_first:
        query = query.order_by(sort_col.desc(), DBBooking.id.desc())
    else:
        query = query.order_by(sort_col.asc(), DBBooking.id.asc())

    rows = query.limit(limit).all()

    next_cursor = None
    if len(rows) == limit:
        last = rows[-1]
        next_cursor = BookingCursor(
            at=last.created_at if search.by_created else last.start_time,
            id=last.id,
        )
    return rows, next_cursor


def count_bookings(db: Session, tenant_id: int, search: Optional[BookingSearch] = None) -> int:
    return _filtered(db, tenant_id, search or BookingSearch()).count()
