# backend/bookflow/routers/availability.py
"""
Availability API.

GET /availability?tenant&service&date&staff&resource
Read-only; intentionally empty answers carry meta.reason.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_config, get_tenant
from ..schemas.availability import AvailabilityResponse
from ..services.slots import BookingConfig, calculate_service_availability

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("", response_model=AvailabilityResponse)
def get_availability(
    service_id: int = Query(..., alias="service"),
    target_date: date = Query(..., alias="date"),
    staff_id: Optional[int] = Query(None, alias="staff"),
    resource_id: Optional[int] = Query(None, alias="resource"),
    tenant=Depends(get_tenant),
    config: BookingConfig = Depends(get_config),
    db: Session = Depends(get_db),
):
    """Slots for a service on a date, with capacity and blackout counts per slot."""
    result = calculate_service_availability(
        db=db,
        tenant=tenant,
        service_id=service_id,
        target_date=target_date,
        staff_id=staff_id,
        resource_id=resource_id,
        config=config,
    )
    return AvailabilityResponse(**result)
