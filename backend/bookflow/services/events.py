"""
backend/bookflow/services/events.py

Booking change signals for polling dashboards and queue consumers.

- tenants.last_booking_change_at: durable heartbeat column
- tenant:{id}:bookings:heartbeat: Redis marker with the same timestamp
- events:p2p: Redis list of booking events

Everything here is best-effort: failures are logged and swallowed, never
raised into the booking that triggered them.
"""

import json
import time
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..redis_client import redis_client
from .clock import utcnow, utc_isoformat

logger = logging.getLogger(__name__)

EVENTS_QUEUE = "events:p2p"


def heartbeat_key(tenant_id: int) -> str:
    return f"tenant:{tenant_id}:bookings:heartbeat"


def emit_event(event_type: str, payload: dict) -> None:
    """
    Emit a booking event.

    Pushed to Redis list `events:p2p` for the consumer loop.
    """
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis_client.rpush(EVENTS_QUEUE, json.dumps(event))
        logger.info(f"Event emitted: {event_type} → {EVENTS_QUEUE}")
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")


def bump_tenant_booking_change(db: Session, tenant_id: int) -> None:
    """
    Record that a tenant's bookings changed.

    Runs after the booking transaction has committed, in its own short
    transaction.
    """
    from ..models.generated import Tenants

    now = utcnow()
    try:
        db.execute(
            update(Tenants)
            .where(Tenants.id == tenant_id)
            .values(last_booking_change_at=now)
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning(f"Failed to bump booking heartbeat for tenant {tenant_id}: {e}")

    try:
        redis_client.set(heartbeat_key(tenant_id), utc_isoformat(now))
    except Exception as e:
        logger.warning(f"Failed to set Redis heartbeat for tenant {tenant_id}: {e}")


def signal_booking_change(db: Session, tenant_id: int, event_type: str, payload: dict) -> None:
    """Heartbeat + event for one committed booking change."""
    bump_tenant_booking_change(db, tenant_id)
    emit_event(event_type, {"tenant_id": tenant_id, **payload})
