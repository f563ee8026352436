# backend/bookflow/routers/tenants.py

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import NotFoundError
from ..models.generated import Tenants as DBTenant
from ..redis_client import redis_client
from ..schemas.schedules import HeartbeatRead

router = APIRouter(tags=["tenants"])


@router.get("/tenants/{slug}/heartbeat", response_model=HeartbeatRead)
def get_heartbeat(slug: str, db: Session = Depends(get_db)):
    """Polled by dashboards: changes whenever a tenant's bookings change."""
    tenant = db.query(DBTenant).filter(DBTenant.slug == slug.lower()).first()
    if not tenant:
        raise NotFoundError("Tenant not found")
    return HeartbeatRead(
        tenant_id=tenant.id,
        slug=tenant.slug,
        last_booking_change_at=tenant.last_booking_change_at,
    )


@router.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = True
    except Exception:
        database = False
    try:
        redis = bool(redis_client.ping())
    except Exception:
        redis = False
    return {"ok": database, "database": database, "redis": redis}
