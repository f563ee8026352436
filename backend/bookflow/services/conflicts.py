# backend/bookflow/services/conflicts.py
"""
Booking conflict checks.

Overlap test for intervals A, B: A.start < B.end AND B.start < A.end
(half-open, touching edges do not conflict). Only pending/confirmed
bookings block time, and only the constraints for ids actually supplied
are applied: no staff id means no staff conflicts are checked.

Safe as an advisory pre-check (lock=False) and as the recheck inside the
inserting transaction (lock=True), where the matched rows are taken
FOR UPDATE. The inserting transaction must also hold the staff/resource
row locks, otherwise the check stays racy against concurrent inserts.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..database import supports_row_locks
from ..models.generated import Bookings as DBBooking
from .clock import utc_isoformat

BLOCKING_STATUSES = ("pending", "confirmed")


@dataclass
class ConflictResult:
    conflict: bool = False
    rows: list[dict] = field(default_factory=list)


def check_conflicts(
    db: Session,
    tenant_id: int,
    start: datetime,
    duration_minutes: int,
    staff_id: Optional[int] = None,
    resource_id: Optional[int] = None,
    exclude_booking_id: Optional[int] = None,
    lock: bool = False,
    limit: int = 20,
) -> ConflictResult:
    """
    Find non-cancelled bookings of the same staff or resource overlapping
    [start, start + duration).
    """
    if not tenant_id:
        raise ValueError("check_conflicts: tenant_id is required")
    if not duration_minutes or duration_minutes < 1:
        raise ValueError("check_conflicts: duration_minutes is required")

    if staff_id is None and resource_id is None:
        return ConflictResult()

    end = start + timedelta(minutes=duration_minutes)

    dimension = []
    if staff_id is not None:
        dimension.append(DBBooking.staff_id == staff_id)
    if resource_id is not None:
        dimension.append(DBBooking.resource_id == resource_id)

    query = (
        db.query(DBBooking)
        .filter(
            DBBooking.tenant_id == tenant_id,
            DBBooking.status.in_(BLOCKING_STATUSES),
            DBBooking.start_time < end,
            DBBooking.end_time > start,
            or_(*dimension),
        )
    )
    if exclude_booking_id is not None:
        query = query.filter(DBBooking.id != exclude_booking_id)

    query = query.order_by(DBBooking.start_time.asc(), DBBooking.id.asc()).limit(limit)
    if lock and supports_row_locks(db):
        query = query.with_for_update()

    rows = [_conflict_row(b, staff_id, resource_id) for b in query.all()]
    return ConflictResult(conflict=bool(rows), rows=rows)


def _conflict_row(booking: DBBooking, staff_id: Optional[int], resource_id: Optional[int]) -> dict:
    same_staff = staff_id is not None and booking.staff_id == staff_id
    same_resource = resource_id is not None and booking.resource_id == resource_id
    if same_staff and same_resource:
        kind = "both"
    elif same_staff:
        kind = "staff"
    else:
        kind = "resource"

    return {
        "id": booking.id,
        "start_time": utc_isoformat(booking.start_time),
        "duration_minutes": booking.duration_minutes,
        "status": booking.status,
        "service_id": booking.service_id,
        "staff_id": booking.staff_id,
        "resource_id": booking.resource_id,
        "kind": kind,
    }
