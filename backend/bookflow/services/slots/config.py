# backend/bookflow/services/slots/config.py
"""
Booking configuration and wall-clock time conversions.
"""

import logging
import re
from dataclasses import dataclass, replace
from functools import lru_cache

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

STAFF_SCHEDULE_TABLES = ("staff_schedules", "staff_schedule_overrides")


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for the availability & booking engine.

    Built once at startup and passed explicitly into services.

    Attributes:
        past_booking_grace_seconds: How far in the past a start may be and still be accepted
        lock_timeout_ms: lock_timeout for booking/ledger transactions (PostgreSQL)
        statement_timeout_ms: statement_timeout for booking/ledger transactions (PostgreSQL)
        staff_schedules_enabled: Whether staff schedule/override tables exist in this deployment
        max_conflict_rows: How many competing bookings a conflict reports
    """
    past_booking_grace_seconds: int = 60
    lock_timeout_ms: int = 5000
    statement_timeout_ms: int = 15000
    staff_schedules_enabled: bool = True
    max_conflict_rows: int = 20

    def __post_init__(self):
        """Validate configuration."""
        if self.past_booking_grace_seconds < 0:
            raise ValueError(
                f"past_booking_grace_seconds must be >= 0, got {self.past_booking_grace_seconds}"
            )
        if self.lock_timeout_ms <= 0 or self.statement_timeout_ms <= 0:
            raise ValueError("lock/statement timeouts must be positive")


def build_booking_config(settings, engine: Engine | None = None) -> BookingConfig:
    """
    Build the config from settings, probing the schema once if an engine is given.

    Missing staff schedule tables turn the staff schedule feature off, so the
    resolver reports "unsupported" instead of "no availability".
    """
    config = BookingConfig(
        past_booking_grace_seconds=settings.past_booking_grace_seconds,
        lock_timeout_ms=settings.lock_timeout_ms,
        statement_timeout_ms=settings.statement_timeout_ms,
        staff_schedules_enabled=settings.staff_schedules_enabled,
    )

    if engine is not None and config.staff_schedules_enabled:
        inspector = inspect(engine)
        missing = [t for t in STAFF_SCHEDULE_TABLES if not inspector.has_table(t)]
        if missing:
            logger.warning(f"Staff schedule tables missing ({', '.join(missing)}); using tenant hours only")
            config = replace(config, staff_schedules_enabled=False)

    return config


@lru_cache
def get_booking_config() -> BookingConfig:
    """Default config (singleton) built from settings, without a schema probe."""
    from ...config import settings
    return build_booking_config(settings)


# ── Time conversions ─────────────────────────────────────────────────────

_TIME_RE = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?(?::\d{2})?\s*([ap]\.?m\.?)?\s*$", re.IGNORECASE)


def time_str_to_minutes(value: str) -> int:
    """
    Convert "HH:MM" (24h) or "h:MM am/pm" (12h) to minutes from midnight.

    Midnight variants "00:00", "24:00" and "12:00 am" all normalize to 0.
    Seconds ("HH:MM:SS", as databases return TIME) are ignored.

    Raises:
        ValueError: unparseable or out-of-range value
    """
    match = _TIME_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid time: {value!r}")

    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    period = match.group(3)

    if minute > 59:
        raise ValueError(f"Invalid time: {value!r}")

    if period:
        if not 1 <= hour <= 12:
            raise ValueError(f"Invalid 12h time: {value!r}")
        is_pm = period.lower().startswith("p")
        hour = hour % 12 + (12 if is_pm else 0)
    elif hour > 24 or (hour == 24 and minute != 0):
        raise ValueError(f"Invalid time: {value!r}")

    return (hour * 60 + minute) % MINUTES_PER_DAY


def minutes_to_time_str(minutes: int) -> str:
    """Convert minutes to local wall-clock "HH:MM" (values past 24:00 wrap)."""
    minutes = minutes % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def label_from_minutes(minutes: int) -> str:
    """12h display label, e.g. 570 -> "9:30 AM"."""
    minutes = minutes % MINUTES_PER_DAY
    hour, minute = divmod(minutes, 60)
    period = "PM" if hour >= 12 else "AM"
    hour12 = (hour + 11) % 12 + 1
    return f"{hour12}:{minute:02d} {period}"
