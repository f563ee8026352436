# backend/bookflow/services/blackouts.py
"""
Blackout windows: tenant-scoped closures [starts_at, ends_at).

A blackout scoped to a resource/staff/service only applies to that id;
a NULL scope column applies to everything.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models.generated import TenantBlackouts as DBBlackout
from .clock import utc_isoformat


def _scope_filter(column, value: Optional[int]):
    if value is None:
        return column.is_(None)
    return or_(column.is_(None), column == value)


def _active_overlapping(
    db: Session,
    tenant_id: int,
    starts_at: datetime,
    ends_at: datetime,
    resource_id: Optional[int],
    staff_id: Optional[int],
    service_id: Optional[int],
):
    return (
        db.query(DBBlackout)
        .filter(
            DBBlackout.tenant_id == tenant_id,
            DBBlackout.is_active == 1,
            DBBlackout.starts_at < ends_at,
            DBBlackout.ends_at > starts_at,
            _scope_filter(DBBlackout.resource_id, resource_id),
            _scope_filter(DBBlackout.staff_id, staff_id),
            _scope_filter(DBBlackout.service_id, service_id),
        )
        .order_by(DBBlackout.starts_at.asc(), DBBlackout.id.asc())
    )


def find_blackout_overlap(
    db: Session,
    tenant_id: int,
    starts_at: datetime,
    ends_at: datetime,
    resource_id: Optional[int] = None,
    staff_id: Optional[int] = None,
    service_id: Optional[int] = None,
) -> Optional[DBBlackout]:
    """First active blackout overlapping [starts_at, ends_at) for the given scope."""
    return _active_overlapping(db, tenant_id, starts_at, ends_at, resource_id, staff_id, service_id).first()


def list_blackouts_in_range(
    db: Session,
    tenant_id: int,
    starts_at: datetime,
    ends_at: datetime,
    resource_id: Optional[int] = None,
    staff_id: Optional[int] = None,
    service_id: Optional[int] = None,
) -> list[DBBlackout]:
    """All active blackouts overlapping the range for the given scope."""
    return _active_overlapping(db, tenant_id, starts_at, ends_at, resource_id, staff_id, service_id).all()


def blackout_to_dict(blackout: DBBlackout) -> dict:
    return {
        "id": blackout.id,
        "starts_at": utc_isoformat(blackout.starts_at),
        "ends_at": utc_isoformat(blackout.ends_at),
        "reason": blackout.reason,
        "resource_id": blackout.resource_id,
        "staff_id": blackout.staff_id,
        "service_id": blackout.service_id,
    }


def find_same_scope_overlap(
    db: Session,
    tenant_id: int,
    starts_at: datetime,
    ends_at: datetime,
    resource_id: Optional[int] = None,
    staff_id: Optional[int] = None,
    service_id: Optional[int] = None,
    ignore_id: Optional[int] = None,
) -> Optional[DBBlackout]:
    """Active blackout with exactly the same scope overlapping the window."""

    def same(column, value):
        return column.is_(None) if value is None else column == value

    query = db.query(DBBlackout).filter(
        DBBlackout.tenant_id == tenant_id,
        DBBlackout.is_active == 1,
        DBBlackout.starts_at < ends_at,
        DBBlackout.ends_at > starts_at,
        same(DBBlackout.resource_id, resource_id),
        same(DBBlackout.staff_id, staff_id),
        same(DBBlackout.service_id, service_id),
    )
    if ignore_id is not None:
        query = query.filter(DBBlackout.id != ignore_id)
    return query.first()
