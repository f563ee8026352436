# backend/bookflow/routers/tenant_blackouts.py
"""
Blackout windows. Times in the body are tenant-local unless they carry
an offset; storage is UTC. Delete is a soft delete.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_tenant
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.generated import (
    Resources as DBResource,
    Services as DBService,
    Staff as DBStaff,
    TenantBlackouts as DBBlackout,
)
from ..schemas.schedules import BlackoutCreate, BlackoutRead, BlackoutUpdate
from ..services.blackouts import blackout_to_dict, find_same_scope_overlap
from ..services.clock import tenant_zone, to_utc_naive, utcnow
from ..services.events import signal_booking_change

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenant-blackouts", tags=["tenant-blackouts"])


@router.get("", response_model=list[BlackoutRead])
def list_blackouts(
    include_inactive: bool = Query(False, alias="includeInactive"),
    tenant=Depends(get_tenant),
    db: Session = Depends(get_db),
):
    query = db.query(DBBlackout).filter(DBBlackout.tenant_id == tenant.id)
    if not include_inactive:
        query = query.filter(DBBlackout.is_active == 1)
    return query.order_by(DBBlackout.starts_at.asc(), DBBlackout.id.asc()).all()


def _check_scope(db: Session, tenant_id: int, model, obj_id: Optional[int], name: str) -> None:
    if obj_id is None:
        return
    found = db.query(model.id).filter(model.id == obj_id, model.tenant_id == tenant_id).first()
    if not found:
        raise ValidationError(f"{name} is not valid for this tenant.")


@router.post("", response_model=BlackoutRead, status_code=status.HTTP_201_CREATED)
def create_blackout(data: BlackoutCreate, tenant=Depends(get_tenant), db: Session = Depends(get_db)):
    zone = tenant_zone(tenant.timezone)
    starts_at = to_utc_naive(data.starts_at, zone)
    ends_at = to_utc_naive(data.ends_at, zone)
    if starts_at >= ends_at:
        raise ValidationError("startsAt must be before endsAt.")

    _check_scope(db, tenant.id, DBResource, data.resource_id, "resourceId")
    _check_scope(db, tenant.id, DBStaff, data.staff_id, "staffId")
    _check_scope(db, tenant.id, DBService, data.service_id, "serviceId")

    overlap = find_same_scope_overlap(
        db, tenant.id, starts_at, ends_at,
        resource_id=data.resource_id, staff_id=data.staff_id, service_id=data.service_id,
    )
    if overlap:
        raise ConflictError("Blackout overlaps an existing blackout.", blackout=blackout_to_dict(overlap))

    now = utcnow()
    obj = DBBlackout(
        tenant_id=tenant.id,
        starts_at=starts_at,
        ends_at=ends_at,
        reason=(data.reason or "").strip() or None,
        resource_id=data.resource_id,
        staff_id=data.staff_id,
        service_id=data.service_id,
        is_active=1,
        created_at=now,
        updated_at=now,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    logger.info(f"Blackout {obj.id} created for tenant {tenant.id}")

    signal_booking_change(db, tenant.id, "blackout_created", {"blackout_id": obj.id})
    return obj


@router.put("/{id}", response_model=BlackoutRead)
def update_blackout(
    id: int,
    data: BlackoutUpdate,
    tenant=Depends(get_tenant),
    db: Session = Depends(get_db),
):
    """Edit window, reason or active flag in place; the scope is fixed at creation."""
    obj = db.query(DBBlackout).filter(DBBlackout.id == id, DBBlackout.tenant_id == tenant.id).first()
    if not obj:
        raise NotFoundError("Blackout not found.")

    zone = tenant_zone(tenant.timezone)
    starts_at = to_utc_naive(data.starts_at, zone) if data.starts_at else obj.starts_at
    ends_at = to_utc_naive(data.ends_at, zone) if data.ends_at else obj.ends_at
    if starts_at >= ends_at:
        raise ValidationError("startsAt must be before endsAt.")

    is_active = obj.is_active if data.is_active is None else int(data.is_active)
    if is_active:
        overlap = find_same_scope_overlap(
            db, tenant.id, starts_at, ends_at,
            resource_id=obj.resource_id, staff_id=obj.staff_id, service_id=obj.service_id,
            ignore_id=obj.id,
        )
        if overlap:
            raise ConflictError("Blackout overlaps an existing blackout.", blackout=blackout_to_dict(overlap))

    obj.starts_at = starts_at
    obj.ends_at = ends_at
    if data.reason is not None:
        obj.reason = data.reason.strip() or None
    obj.is_active = is_active
    obj.updated_at = utcnow()
    db.commit()
    db.refresh(obj)
    logger.info(f"Blackout {obj.id} updated for tenant {tenant.id}")

    signal_booking_change(db, tenant.id, "blackout_updated", {"blackout_id": obj.id})
    return obj


@router.delete("/{id}", response_model=BlackoutRead)
def delete_blackout(id: int, tenant=Depends(get_tenant), db: Session = Depends(get_db)):
    obj = db.query(DBBlackout).filter(DBBlackout.id == id, DBBlackout.tenant_id == tenant.id).first()
    if not obj:
        raise NotFoundError("Blackout not found.")
    if obj.is_active:
        obj.is_active = 0
        obj.updated_at = utcnow()
        db.commit()
        signal_booking_change(db, tenant.id, "blackout_deleted", {"blackout_id": id})
    db.refresh(obj)
    return obj
