"""Wall-clock helpers. The store keeps naive UTC; tenants think in local time."""

import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current time as naive UTC (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def tenant_zone(tz_name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown tenant timezone {tz_name!r}, falling back to UTC")
        return ZoneInfo("UTC")


def to_utc_naive(value: datetime, zone: ZoneInfo) -> datetime:
    """Aware datetimes are converted; naive ones are read as tenant-local."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=zone)
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def local_minutes_to_utc(target_date: date, minutes: int, zone: ZoneInfo) -> datetime:
    """Local midnight of target_date + minutes (may exceed a day) -> naive UTC."""
    local = datetime.combine(target_date, time.min) + timedelta(minutes=minutes)
    return to_utc_naive(local, zone)


def utc_isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")
