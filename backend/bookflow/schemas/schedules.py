# backend/bookflow/schemas/schedules.py
"""
Schemas for the engine inputs: tenant hours, staff schedules, overrides, blackouts.
"""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..models.generated import OVERRIDE_TYPES
from ..services.slots.config import time_str_to_minutes


class TenantHoursDay(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6)  # 0 = Sunday
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    is_closed: bool = False

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    @field_validator("open_time", "close_time")
    @classmethod
    def check_time(cls, v):
        if v is None or v == "":
            return None
        time_str_to_minutes(v)
        return v.strip()

    @model_validator(mode="after")
    def check_open(self):
        if not self.is_closed and (not self.open_time or not self.close_time):
            raise ValueError("openTime and closeTime are required unless isClosed")
        return self


class TenantHoursUpdate(BaseModel):
    hours: list[TenantHoursDay]


class TenantHoursRead(BaseModel):
    day_of_week: int
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    is_closed: bool

    model_config = {"from_attributes": True}


class StaffScheduleBlock(BaseModel):
    weekday: int = Field(..., ge=0, le=6)
    start_minute: int = Field(..., ge=0, le=1440)
    end_minute: int = Field(..., ge=0, le=1440)

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    @model_validator(mode="after")
    def check_order(self):
        if self.end_minute <= self.start_minute:
            raise ValueError("end_minute must be greater than start_minute")
        return self


class StaffScheduleBlockRead(BaseModel):
    weekday: int
    start_minute: int
    end_minute: int

    model_config = {"from_attributes": True}


class StaffScheduleUpdate(BaseModel):
    blocks: list[StaffScheduleBlock]


class StaffOverrideCreate(BaseModel):
    date: date
    type: str
    start_minute: Optional[int] = Field(None, ge=0, le=1440)
    end_minute: Optional[int] = Field(None, ge=0, le=1440)

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    @field_validator("type")
    @classmethod
    def check_type(cls, v):
        v = (v or "").strip().upper()
        if v not in OVERRIDE_TYPES:
            raise ValueError(f"type must be one of {', '.join(OVERRIDE_TYPES)}")
        return v

    @model_validator(mode="after")
    def check_times(self):
        if self.type == "OFF":
            self.start_minute = None
            self.end_minute = None
            return self
        if self.start_minute is None or self.end_minute is None:
            raise ValueError(f"{self.type} requires startMinute and endMinute")
        if self.end_minute <= self.start_minute:
            raise ValueError("endMinute must be greater than startMinute")
        return self


class StaffOverrideRead(BaseModel):
    id: int
    staff_id: int
    date: date
    type: str
    start_minute: Optional[int] = None
    end_minute: Optional[int] = None

    model_config = {"from_attributes": True}


class BlackoutCreate(BaseModel):
    starts_at: datetime  # naive = tenant-local wall clock
    ends_at: datetime
    reason: Optional[str] = None
    resource_id: Optional[int] = None
    staff_id: Optional[int] = None
    service_id: Optional[int] = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class BlackoutUpdate(BaseModel):
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    reason: Optional[str] = None
    is_active: Optional[bool] = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class BlackoutRead(BaseModel):
    id: int
    starts_at: datetime
    ends_at: datetime
    reason: Optional[str] = None
    resource_id: Optional[int] = None
    staff_id: Optional[int] = None
    service_id: Optional[int] = None
    is_active: int

    model_config = {"from_attributes": True}


class HeartbeatRead(BaseModel):
    tenant_id: int
    slug: str
    last_booking_change_at: Optional[datetime] = None
