# backend/bookflow/schemas/bookings.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class BookingCreate(BaseModel):
    service_id: int
    start_time: datetime  # naive = tenant-local wall clock
    duration_minutes: Optional[int] = Field(None, ge=1)

    staff_id: Optional[int] = None
    resource_id: Optional[int] = None

    idempotency_key: Optional[str] = Field(None, max_length=200)

    customer_membership_id: Optional[int] = None
    require_membership: bool = False
    auto_consume_membership: bool = False

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class BookingStatusUpdate(BaseModel):
    status: str


class BookingRead(BaseModel):
    id: int
    tenant_id: int
    tenant_slug: Optional[str] = None
    service_id: Optional[int] = None
    service_name: Optional[str] = None
    staff_id: Optional[int] = None
    staff_name: Optional[str] = None
    resource_id: Optional[int] = None
    resource_name: Optional[str] = None
    customer_id: Optional[int] = None

    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: str

    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None

    booking_code: Optional[str] = None
    idempotency_key: Optional[str] = None
    customer_membership_id: Optional[int] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingCursorRead(BaseModel):
    start_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    id: int


class BookingPage(BaseModel):
    bookings: list[BookingRead]
    next_cursor: Optional[BookingCursorRead] = None


class BookingCount(BaseModel):
    count: int
