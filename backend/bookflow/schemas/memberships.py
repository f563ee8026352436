# backend/bookflow/schemas/memberships.py

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class MembershipPlanCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    included_minutes: int = Field(0, ge=0)
    included_uses: int = Field(0, ge=0)
    validity_days: int = Field(30, ge=1)

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class MembershipPlanRead(BaseModel):
    id: int
    tenant_id: int
    name: str
    description: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    included_minutes: int
    included_uses: int
    validity_days: int
    is_active: int

    model_config = {"from_attributes": True}


class CustomerMembershipRead(BaseModel):
    id: int
    tenant_id: int
    customer_id: int
    plan_id: int
    plan_name: Optional[str] = None
    status: str
    minutes_remaining: int
    uses_remaining: int
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SubscribeRequest(BaseModel):
    customer_id: int = Field(..., gt=0)
    membership_plan_id: int = Field(..., gt=0)

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class ConsumeNextRequest(BaseModel):
    customer_id: int = Field(..., gt=0)
    booking_id: int = Field(..., gt=0)
    minutes_to_debit: int = Field(0, ge=0)
    uses_to_debit: int = Field(0, ge=0)

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class ConsumeNextResponse(BaseModel):
    membership: CustomerMembershipRead
    minutes_delta: int
    uses_delta: int
    already_debited: bool = False


class LedgerEntryRead(BaseModel):
    id: int
    created_at: datetime
    type: str
    minutes_delta: int
    uses_delta: int
    note: Optional[str] = None
    booking_id: Optional[int] = None

    model_config = {"from_attributes": True}


class LedgerResponse(BaseModel):
    membership_id: int
    minutes_total: int
    uses_total: int
    ledger: list[LedgerEntryRead]
