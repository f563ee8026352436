# backend/bookflow/schemas/availability.py
"""
Pydantic schemas for the availability API.
"""

from typing import Optional
from pydantic import BaseModel, Field


class SlotRead(BaseModel):
    """One candidate slot on the grid."""
    time: str = Field(description="Local wall-clock start, HH:MM (past-midnight slots wrap)")
    label: str
    available: bool
    capacity: int
    overlaps: int
    blackout_hits: int
    starts_at: str = Field(description="UTC instant of the slot start (ISO 8601)")

    model_config = {"from_attributes": True}


class AvailabilityMeta(BaseModel):
    date: str
    service_id: int
    staff_id: Optional[int] = None
    resource_id: Optional[int] = None
    duration_minutes: int
    slot_interval_minutes: int
    max_parallel_bookings: int
    availability_basis: str
    timezone: str
    # staff_required | resource_required | tenant_closed | staff_unavailable
    reason: Optional[str] = None
    # weekly | off | custom_hours | unsupported; None when staff does not gate the service
    staff_schedule: Optional[str] = None


class AvailabilityResponse(BaseModel):
    slots: list[SlotRead]
    meta: AvailabilityMeta
