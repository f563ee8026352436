# backend/bookflow/dependencies.py
"""
Shared FastAPI dependencies: tenant scope, engine config, caller identity.

Identity arrives in headers set by the gateway after authentication;
this service never trusts a customer id from the request body.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Query, Request
from sqlalchemy.orm import Session

from .database import get_db
from .errors import AuthenticationRequired, ValidationError
from .models.generated import Tenants as DBTenant
from .services.slots.config import BookingConfig, get_booking_config


def resolve_tenant(db: Session, ref: str) -> Optional[DBTenant]:
    """Tenant by numeric id or slug."""
    ref = (ref or "").strip()
    if not ref:
        return None
    if ref.isdigit():
        return db.get(DBTenant, int(ref))
    return db.query(DBTenant).filter(DBTenant.slug == ref.lower()).first()


def get_tenant(
    tenant: str = Query(..., description="Tenant id or slug"),
    db: Session = Depends(get_db),
) -> DBTenant:
    obj = resolve_tenant(db, tenant)
    if not obj:
        raise ValidationError("Unknown tenant.")
    return obj


def get_config(request: Request) -> BookingConfig:
    """Config built at startup; falls back to the settings-only default."""
    config = getattr(request.app.state, "booking_config", None)
    return config or get_booking_config()


@dataclass
class CustomerIdentity:
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None


def get_customer_identity(
    x_customer_email: Optional[str] = Header(None),
    x_customer_name: Optional[str] = Header(None),
    x_customer_phone: Optional[str] = Header(None),
) -> CustomerIdentity:
    if not x_customer_email or not x_customer_email.strip():
        raise AuthenticationRequired()
    return CustomerIdentity(
        email=x_customer_email.strip().lower(),
        name=x_customer_name,
        phone=x_customer_phone,
    )
