# backend/bookflow/services/slots/availability.py
"""
Service availability calculation.

Calculates bookable slots for a (tenant, service, date, staff?, resource?)
query. Read-only; the booking transaction rechecks everything under locks.

Takes into account:
- Tenant weekly hours (overnight windows run past 24:00)
- Staff weekly schedule and date overrides (when the basis includes staff)
- Existing pending/confirmed bookings, counted per availability basis
- Active blackout windows

Slots past 24:00 belong to the next calendar day; "time" is the wall-clock
label (mod 1440) and "starts_at" is the actual UTC instant.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import NotFoundError, ValidationError
from ..blackouts import list_blackouts_in_range
from ..clock import local_minutes_to_utc, tenant_zone, utc_isoformat
from .calculator import Window, generate_slots_for_windows, intersect_windows, parse_window
from .config import BookingConfig, get_booking_config, label_from_minutes, minutes_to_time_str
from .schedule import ScheduleResolver, weekday_index

logger = logging.getLogger(__name__)

STAFF_BASES = ("staff", "both")
RESOURCE_BASES = ("resource", "both")


def calculate_service_availability(
    db: Session,
    tenant,
    service_id: int,
    target_date: date,
    staff_id: Optional[int] = None,
    resource_id: Optional[int] = None,
    config: BookingConfig | None = None,
) -> dict:
    """
    Calculate slots for a service on a date.

    Intentionally empty results carry meta["reason"] instead of raising:
    staff_required, resource_required, tenant_closed, staff_unavailable.

    Raises:
        NotFoundError: service does not exist for this tenant
        ValidationError: staff/resource id does not belong to the tenant
    """
    config = config or get_booking_config()

    # Step 1: Service parameters
    service = _get_service(db, tenant.id, service_id)
    if not service:
        raise NotFoundError("Service not found")

    duration = service.duration_minutes or 60
    step = service.slot_interval_minutes or duration
    capacity = max(service.max_parallel_bookings or 1, 1)
    basis = service.effective_availability_basis

    if staff_id is not None and not _get_staff(db, tenant.id, staff_id):
        raise ValidationError("staffId is not valid for this tenant")
    if resource_id is not None and not _get_resource(db, tenant.id, resource_id):
        raise ValidationError("resourceId is not valid for this tenant")

    meta = {
        "date": target_date.isoformat(),
        "service_id": service.id,
        "staff_id": staff_id,
        "resource_id": resource_id,
        "duration_minutes": duration,
        "slot_interval_minutes": step,
        "max_parallel_bookings": capacity,
        "availability_basis": basis,
        "timezone": tenant.timezone,
        "reason": None,
        "staff_schedule": None,
    }

    # Step 2: Required selections
    if basis in STAFF_BASES and staff_id is None:
        return _empty(meta, "staff_required")
    if basis in RESOURCE_BASES and resource_id is None:
        return _empty(meta, "resource_required")

    # Step 3: Day window from tenant hours
    weekday = weekday_index(target_date)
    window = _get_tenant_window(db, tenant.id, weekday)
    if window is None:
        return _empty(meta, "tenant_closed")

    windows: list[Window] = [window]
    if basis in STAFF_BASES:
        schedule = ScheduleResolver(db, config).resolve(tenant.id, staff_id, target_date, weekday)
        meta["staff_schedule"] = schedule.source
        if schedule.supported:
            # Staff blocks are same-day; an overnight tenant window is trimmed to today
            windows = intersect_windows(list(schedule.blocks), window)
            if not windows:
                return _empty(meta, "staff_unavailable")

    # Step 4: Candidate slots
    starts = generate_slots_for_windows(windows, step)
    if not starts:
        return _empty(meta, "tenant_closed")

    zone = tenant_zone(tenant.timezone)
    slot_ranges = [
        (t, local_minutes_to_utc(target_date, t, zone)) for t in starts
    ]
    range_start = slot_ranges[0][1]
    range_end = slot_ranges[-1][1] + timedelta(minutes=step)

    # Step 5: Bookings and blackouts touching the day
    if basis == "none":
        service_busy = _get_busy_intervals(db, tenant.id, range_start, range_end, service_id=service.id)
    if basis in STAFF_BASES:
        staff_busy = _get_busy_intervals(db, tenant.id, range_start, range_end, staff_id=staff_id)
    if basis in RESOURCE_BASES:
        resource_busy = _get_busy_intervals(db, tenant.id, range_start, range_end, resource_id=resource_id)

    blackouts = [
        (b.starts_at, b.ends_at)
        for b in list_blackouts_in_range(
            db, tenant.id, range_start, range_end,
            resource_id=resource_id, staff_id=staff_id, service_id=service.id,
        )
    ]

    # Step 6: Per-slot counts and availability
    slots = []
    for minute, slot_start in slot_ranges:
        slot_end = slot_start + timedelta(minutes=step)

        if basis == "none":
            overlaps = _count_overlaps(service_busy, slot_start, slot_end)
            under_capacity = overlaps < capacity
        elif basis == "staff":
            overlaps = _count_overlaps(staff_busy, slot_start, slot_end)
            under_capacity = overlaps < capacity
        elif basis == "resource":
            overlaps = _count_overlaps(resource_busy, slot_start, slot_end)
            under_capacity = overlaps < capacity
        else:
            staff_overlaps = _count_overlaps(staff_busy, slot_start, slot_end)
            resource_overlaps = _count_overlaps(resource_busy, slot_start, slot_end)
            overlaps = max(staff_overlaps, resource_overlaps)
            under_capacity = staff_overlaps < capacity and resource_overlaps < capacity

        blackout_hits = _count_overlaps(blackouts, slot_start, slot_end)

        slots.append({
            "time": minutes_to_time_str(minute),
            "label": label_from_minutes(minute),
            "available": under_capacity and blackout_hits == 0,
            "capacity": capacity,
            "overlaps": overlaps,
            "blackout_hits": blackout_hits,
            "starts_at": utc_isoformat(slot_start),
        })

    return {"slots": slots, "meta": meta}


def _empty(meta: dict, reason: str) -> dict:
    meta["reason"] = reason
    return {"slots": [], "meta": meta}


def _count_overlaps(intervals: list[tuple[datetime, datetime]], start: datetime, end: datetime) -> int:
    return sum(1 for b_start, b_end in intervals if b_start < end and start < b_end)


# ── Database helpers ─────────────────────────────────────────────────────


def _get_service(db: Session, tenant_id: int, service_id: int):
    """Get active service of the tenant."""
    from ...models.generated import Services
    return db.query(Services).filter(
        Services.id == service_id,
        Services.tenant_id == tenant_id,
        Services.is_active == 1,
    ).first()


def _get_staff(db: Session, tenant_id: int, staff_id: int):
    from ...models.generated import Staff
    return db.query(Staff).filter(Staff.id == staff_id, Staff.tenant_id == tenant_id).first()


def _get_resource(db: Session, tenant_id: int, resource_id: int):
    from ...models.generated import Resources
    return db.query(Resources).filter(Resources.id == resource_id, Resources.tenant_id == tenant_id).first()


def _get_tenant_window(db: Session, tenant_id: int, weekday: int) -> Window | None:
    """Normalized (open, close) for the weekday, or None when closed."""
    from ...models.generated import TenantHours

    row = db.query(TenantHours).filter(
        TenantHours.tenant_id == tenant_id,
        TenantHours.day_of_week == weekday,
    ).first()

    if not row or row.is_closed or not row.open_time or not row.close_time:
        return None

    try:
        return parse_window(row.open_time, row.close_time)
    except ValueError:
        logger.warning(
            f"Unparseable tenant hours for tenant {tenant_id} weekday {weekday}: "
            f"{row.open_time!r}-{row.close_time!r}"
        )
        return None


def _get_busy_intervals(
    db: Session,
    tenant_id: int,
    range_start: datetime,
    range_end: datetime,
    service_id: Optional[int] = None,
    staff_id: Optional[int] = None,
    resource_id: Optional[int] = None,
) -> list[tuple[datetime, datetime]]:
    """Pending/confirmed booking intervals overlapping the range, for one dimension."""
    from ...models.generated import Bookings

    query = db.query(Bookings.start_time, Bookings.end_time).filter(
        Bookings.tenant_id == tenant_id,
        Bookings.status.in_(["pending", "confirmed"]),
        Bookings.start_time < range_end,
        Bookings.end_time > range_start,
    )
    if service_id is not None:
        query = query.filter(Bookings.service_id == service_id)
    if staff_id is not None:
        query = query.filter(Bookings.staff_id == staff_id)
    if resource_id is not None:
        query = query.filter(Bookings.resource_id == resource_id)

    return [(row.start_time, row.end_time) for row in query.all()]
