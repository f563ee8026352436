# backend/bookflow/routers/staff_schedule.py
"""
Staff weekly schedule and date overrides.

Blocks are same-day minute ranges (0..1440). Overrides:
OFF (no times), ADD_HOURS and CUSTOM_HOURS (start < end).
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_tenant
from ..errors import ConflictError, NotFoundError
from ..models.generated import (
    Staff as DBStaff,
    StaffScheduleOverrides as DBOverride,
    StaffSchedules as DBSchedule,
)
from ..schemas.schedules import (
    StaffOverrideCreate,
    StaffOverrideRead,
    StaffScheduleBlockRead,
    StaffScheduleUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/staff", tags=["staff-schedule"])


def _get_staff(db: Session, tenant_id: int, staff_id: int) -> DBStaff:
    staff = db.query(DBStaff).filter(DBStaff.id == staff_id, DBStaff.tenant_id == tenant_id).first()
    if not staff:
        raise NotFoundError("Staff not found for tenant.")
    return staff


def _list_blocks(db: Session, tenant_id: int, staff_id: int) -> list[DBSchedule]:
    return (
        db.query(DBSchedule)
        .filter(DBSchedule.tenant_id == tenant_id, DBSchedule.staff_id == staff_id)
        .order_by(DBSchedule.weekday.asc(), DBSchedule.start_minute.asc())
        .all()
    )


# ── Weekly schedule ──────────────────────────────────────────────────────


@router.get("/{staff_id}/schedule", response_model=list[StaffScheduleBlockRead])
def get_staff_schedule(staff_id: int, tenant=Depends(get_tenant), db: Session = Depends(get_db)):
    _get_staff(db, tenant.id, staff_id)
    return _list_blocks(db, tenant.id, staff_id)


@router.put("/{staff_id}/schedule", response_model=list[StaffScheduleBlockRead])
def put_staff_schedule(
    staff_id: int,
    data: StaffScheduleUpdate,
    tenant=Depends(get_tenant),
    db: Session = Depends(get_db),
):
    """Replace the whole weekly schedule."""
    _get_staff(db, tenant.id, staff_id)

    db.query(DBSchedule).filter(
        DBSchedule.tenant_id == tenant.id,
        DBSchedule.staff_id == staff_id,
    ).delete(synchronize_session=False)

    for block in data.blocks:
        db.add(DBSchedule(
            tenant_id=tenant.id,
            staff_id=staff_id,
            weekday=block.weekday,
            start_minute=block.start_minute,
            end_minute=block.end_minute,
        ))
    db.commit()
    logger.info(f"Staff {staff_id} schedule replaced with {len(data.blocks)} block(s)")
    return _list_blocks(db, tenant.id, staff_id)


# ── Date overrides ───────────────────────────────────────────────────────


@router.get("/{staff_id}/overrides", response_model=list[StaffOverrideRead])
def list_staff_overrides(staff_id: int, tenant=Depends(get_tenant), db: Session = Depends(get_db)):
    _get_staff(db, tenant.id, staff_id)
    return (
        db.query(DBOverride)
        .filter(DBOverride.tenant_id == tenant.id, DBOverride.staff_id == staff_id)
        .order_by(DBOverride.date.asc(), DBOverride.start_minute.asc())
        .all()
    )


@router.post("/{staff_id}/overrides", response_model=StaffOverrideRead, status_code=status.HTTP_201_CREATED)
def create_staff_override(
    staff_id: int,
    data: StaffOverrideCreate,
    tenant=Depends(get_tenant),
    db: Session = Depends(get_db),
):
    _get_staff(db, tenant.id, staff_id)

    # NULL minutes (OFF) never collide in the unique constraint, so check explicitly
    duplicate = db.query(DBOverride.id).filter(
        DBOverride.tenant_id == tenant.id,
        DBOverride.staff_id == staff_id,
        DBOverride.date == data.date,
        DBOverride.type == data.type,
        DBOverride.start_minute.is_(None) if data.start_minute is None else DBOverride.start_minute == data.start_minute,
        DBOverride.end_minute.is_(None) if data.end_minute is None else DBOverride.end_minute == data.end_minute,
    ).first()
    if duplicate:
        raise ConflictError("Override already exists for this date.")

    obj = DBOverride(tenant_id=tenant.id, staff_id=staff_id, **data.model_dump())
    db.add(obj)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Override already exists for this date.")
    db.refresh(obj)
    return obj


@router.delete("/{staff_id}/overrides/{override_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_staff_override(
    staff_id: int,
    override_id: int,
    tenant=Depends(get_tenant),
    db: Session = Depends(get_db),
):
    obj = db.query(DBOverride).filter(
        DBOverride.id == override_id,
        DBOverride.staff_id == staff_id,
        DBOverride.tenant_id == tenant.id,
    ).first()
    if not obj:
        raise NotFoundError("Override not found.")
    db.delete(obj)
    db.commit()
