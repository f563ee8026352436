# backend/bookflow/routers/tenant_hours.py
"""
Weekly opening hours per tenant (0 = Sunday .. 6 = Saturday).

close <= open is stored as given and read as an overnight window.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_tenant
from ..models.generated import TenantHours as DBTenantHours
from ..schemas.schedules import TenantHoursRead, TenantHoursUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenant-hours", tags=["tenant-hours"])


def _list_hours(db: Session, tenant_id: int) -> list[DBTenantHours]:
    return (
        db.query(DBTenantHours)
        .filter(DBTenantHours.tenant_id == tenant_id)
        .order_by(DBTenantHours.day_of_week.asc())
        .all()
    )


@router.get("", response_model=list[TenantHoursRead])
def get_tenant_hours(tenant=Depends(get_tenant), db: Session = Depends(get_db)):
    return _list_hours(db, tenant.id)


@router.put("", response_model=list[TenantHoursRead])
def put_tenant_hours(data: TenantHoursUpdate, tenant=Depends(get_tenant), db: Session = Depends(get_db)):
    """Upsert the given weekdays; days not in the body stay as they are."""
    existing = {row.day_of_week: row for row in _list_hours(db, tenant.id)}

    for day in data.hours:
        row = existing.get(day.day_of_week)
        if row is None:
            row = DBTenantHours(tenant_id=tenant.id, day_of_week=day.day_of_week)
            db.add(row)
            existing[day.day_of_week] = row
        row.open_time = None if day.is_closed else day.open_time
        row.close_time = None if day.is_closed else day.close_time
        row.is_closed = 1 if day.is_closed else 0

    db.commit()
    logger.info(f"Tenant {tenant.id} hours updated for {len(data.hours)} day(s)")
    return _list_hours(db, tenant.id)
